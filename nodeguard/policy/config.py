"""Node role policy configuration (env/ConfigMap driven).

One `NodeRolePolicy` describes a deployed webhook variant: which groups are
privileged, which labels denote a node role, which operations are intercepted, and
the registration knobs the API server needs. The built-in variants live in
`DEFAULT_POLICIES`; env vars only narrow or override them.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Dict, FrozenSet, List, Optional, Tuple

from nodeguard.core.labels import RoleLabelScheme

ANONYMOUS_USERNAME = "system:unauthenticated"

SUPPORTED_OPERATIONS = ("UPDATE", "DELETE")


def _split_csv(raw: str) -> List[str]:
    return [x.strip() for x in (raw or "").split(",") if x.strip()]


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except Exception:
        return default


@dataclass(frozen=True)
class NodeRolePolicy:
    # Identity / routing
    name: str
    uri: str

    # Policy table
    privileged_groups: FrozenSet[str]
    roles: RoleLabelScheme
    anonymous_username: str = ANONYMOUS_USERNAME

    # Registration
    operations: Tuple[str, ...] = ("UPDATE",)
    timeout_seconds: int = 2
    match_policy: str = "Equivalent"
    failure_policy: str = "Ignore"
    side_effects: str = "None"
    api_groups: Tuple[str, ...] = ("",)

    @property
    def env_prefix(self) -> str:
        return "NODEGUARD_" + self.name.upper().replace("-", "_")


NODE_VALIDATION = NodeRolePolicy(
    name="node-validation",
    uri="/node-validation",
    privileged_groups=frozenset({"dedicated-admins"}),
    roles=RoleLabelScheme(
        value_keys=("node-role.kubernetes.io",),
        key_prefixes=("node-role.kubernetes.io/",),
    ),
    operations=("UPDATE", "DELETE"),
    timeout_seconds=1,
    match_policy="Exact",
    api_groups=("*",),
)

NODE_LABELS_VALIDATION = NodeRolePolicy(
    name="node-labels-validation",
    uri="/regularuser-validation",
    privileged_groups=frozenset({"dedicated-admin"}),
    roles=RoleLabelScheme(value_keys=("type",)),
    operations=("UPDATE",),
    timeout_seconds=2,
    match_policy="Equivalent",
)

DEFAULT_POLICIES: Dict[str, NodeRolePolicy] = {p.name: p for p in (NODE_VALIDATION, NODE_LABELS_VALIDATION)}


@dataclass(frozen=True)
class ServiceSettings:
    policies: Tuple[NodeRolePolicy, ...]
    host: str = "0.0.0.0"
    port: int = 8443
    log_level: str = "INFO"
    service_name: str = "nodeguard"
    service_namespace: str = "nodeguard"


def _apply_env_overrides(policy: NodeRolePolicy, anonymous_username: Optional[str]) -> NodeRolePolicy:
    groups = _split_csv(os.getenv(f"{policy.env_prefix}_PRIVILEGED_GROUPS", ""))
    ops = [o.upper() for o in _split_csv(os.getenv(f"{policy.env_prefix}_OPERATIONS", ""))]
    unknown_ops = [o for o in ops if o not in SUPPORTED_OPERATIONS]
    if unknown_ops:
        raise ValueError(f"{policy.env_prefix}_OPERATIONS: unsupported operation(s) {', '.join(unknown_ops)}")

    changes = {}
    if groups:
        changes["privileged_groups"] = frozenset(groups)
    if ops:
        changes["operations"] = tuple(ops)
    if anonymous_username:
        changes["anonymous_username"] = anonymous_username
    return replace(policy, **changes) if changes else policy


def load_policies() -> Tuple[NodeRolePolicy, ...]:
    """
    Load enabled node role policies from env (ConfigMap/Secret friendly).

    Recommended vars:
    - NODEGUARD_WEBHOOKS=node-validation,node-labels-validation
    - NODEGUARD_NODE_VALIDATION_PRIVILEGED_GROUPS=dedicated-admins
    - NODEGUARD_NODE_VALIDATION_OPERATIONS=UPDATE,DELETE
    - NODEGUARD_ANONYMOUS_USERNAME=system:unauthenticated
    """
    enabled = _split_csv(os.getenv("NODEGUARD_WEBHOOKS", "")) or list(DEFAULT_POLICIES)
    unknown = [n for n in enabled if n not in DEFAULT_POLICIES]
    if unknown:
        raise ValueError(
            f"NODEGUARD_WEBHOOKS: unknown webhook(s) {', '.join(unknown)} "
            f"(known: {', '.join(sorted(DEFAULT_POLICIES))})"
        )

    anonymous = (os.getenv("NODEGUARD_ANONYMOUS_USERNAME") or "").strip() or None
    out: List[NodeRolePolicy] = []
    seen = set()
    for name in enabled:
        if name in seen:
            continue
        seen.add(name)
        out.append(_apply_env_overrides(DEFAULT_POLICIES[name], anonymous))
    return tuple(out)


def load_service_settings() -> ServiceSettings:
    return ServiceSettings(
        policies=load_policies(),
        host=(os.getenv("NODEGUARD_HOST") or "").strip() or "0.0.0.0",
        port=max(1, min(_env_int("NODEGUARD_PORT", 8443), 65535)),
        log_level=((os.getenv("LOG_LEVEL") or "").strip() or "INFO").upper(),
        service_name=(os.getenv("NODEGUARD_SERVICE_NAME") or "").strip() or "nodeguard",
        service_namespace=(os.getenv("NODEGUARD_SERVICE_NAMESPACE") or "").strip() or "nodeguard",
    )
