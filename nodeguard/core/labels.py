"""Label extraction and node role classification.

Both steps return result values instead of raising: a node payload that does not
decode, or whose role labels contradict each other, is still a well-formed
admission request and must end in a policy verdict.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, FrozenSet, List, Literal, Mapping, Optional, Tuple

from pydantic import ValidationError

from nodeguard.core.models import NodeObject

NODE_KIND = "Node"

ObjectVersion = Literal["old", "new"]
LabelSnapshot = Mapping[str, str]

EMPTY_SNAPSHOT: LabelSnapshot = MappingProxyType({})


class RoleState(str, Enum):
    MASTER = "master"
    INFRA = "infra"
    WORKER = "worker"
    UNLABELED = "unlabeled"


PROTECTED_ROLE_STATES: FrozenSet[RoleState] = frozenset({RoleState.MASTER, RoleState.INFRA})


@dataclass(frozen=True)
class DecodeError:
    version: ObjectVersion
    detail: str

    @property
    def reason(self) -> str:
        return f"Failed to decode {self.version} node object: {self.detail}"


@dataclass(frozen=True)
class ExtractResult:
    snapshot: Optional[LabelSnapshot] = None
    error: Optional[DecodeError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class SnapshotPair:
    old: ExtractResult
    new: ExtractResult

    @property
    def error(self) -> Optional[DecodeError]:
        # Old version is reported first when both fail.
        return self.old.error or self.new.error


def _first_error_line(e: ValidationError) -> str:
    errs = e.errors()
    if not errs:
        return str(e)
    first = errs[0]
    loc = ".".join(str(p) for p in first.get("loc", ()))
    msg = first.get("msg", "invalid value")
    return f"{loc}: {msg}" if loc else msg


def decode_labels(raw: Any, version: ObjectVersion) -> ExtractResult:
    """
    Decode one node representation into an immutable label snapshot.

    `raw` may be JSON text (bytes/str) or an already-parsed mapping (the usual case
    when the object arrives embedded in an AdmissionReview body).
    """
    if raw is None:
        return ExtractResult(error=DecodeError(version, "object is missing"))

    payload: Any = raw
    if isinstance(raw, (bytes, bytearray)):
        try:
            payload = raw.decode("utf-8")
        except UnicodeDecodeError:
            return ExtractResult(error=DecodeError(version, "object is not valid UTF-8"))
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except (ValueError, RecursionError) as e:
            return ExtractResult(error=DecodeError(version, f"invalid JSON ({e})"))

    if not isinstance(payload, dict):
        return ExtractResult(error=DecodeError(version, f"expected a JSON object, got {type(payload).__name__}"))

    try:
        node = NodeObject.model_validate(payload)
    except ValidationError as e:
        return ExtractResult(error=DecodeError(version, _first_error_line(e)))

    if node.kind is not None and node.kind != NODE_KIND:
        return ExtractResult(error=DecodeError(version, f"unexpected kind {node.kind!r}"))

    labels = dict(node.metadata.labels or {})
    return ExtractResult(snapshot=MappingProxyType(labels))


def extract_snapshots(operation: str, old_raw: Any, new_raw: Any) -> SnapshotPair:
    """
    Decode old and new node versions for one request.

    DELETE carries no new object: its new snapshot is the empty mapping.
    """
    old = decode_labels(old_raw, "old")
    if (operation or "").upper() == "DELETE":
        return SnapshotPair(old=old, new=ExtractResult(snapshot=EMPTY_SNAPSHOT))

    return SnapshotPair(old=old, new=decode_labels(new_raw, "new"))


@dataclass(frozen=True)
class RoleLabelScheme:
    """
    Which labels denote a node role, and which role values are recognized.

    - value_keys: the label value names the role (`type=worker`).
    - key_prefixes: the key suffix names the role (`node-role.kubernetes.io/worker=""`).
    """

    value_keys: Tuple[str, ...] = ()
    key_prefixes: Tuple[str, ...] = ()
    master_values: FrozenSet[str] = frozenset({"master", "control-plane"})
    infra_values: FrozenSet[str] = frozenset({"infra"})
    worker_values: FrozenSet[str] = frozenset({"worker"})

    def state_for(self, value: str) -> Optional[RoleState]:
        if value in self.master_values:
            return RoleState.MASTER
        if value in self.infra_values:
            return RoleState.INFRA
        if value in self.worker_values:
            return RoleState.WORKER
        return None


@dataclass(frozen=True)
class RoleClassification:
    state: Optional[RoleState] = None
    error: Optional[str] = None
    indicators: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return self.error is None


def _role_indicators(labels: LabelSnapshot, scheme: RoleLabelScheme) -> List[Tuple[str, str]]:
    found: List[Tuple[str, str]] = []
    for key in sorted(labels):
        if key in scheme.value_keys:
            found.append((key, labels[key]))
            continue
        for prefix in scheme.key_prefixes:
            if key.startswith(prefix) and len(key) > len(prefix):
                found.append((key, key[len(prefix) :]))
                break
    return found


def classify_role(labels: LabelSnapshot, scheme: RoleLabelScheme) -> RoleClassification:
    indicators = _role_indicators(labels, scheme)
    if not indicators:
        return RoleClassification(state=RoleState.UNLABELED)

    names = tuple(f"{k}={v}" if k in scheme.value_keys else k for k, v in indicators)
    states = set()
    for key, value in indicators:
        state = scheme.state_for(value)
        if state is None:
            return RoleClassification(error=f"unrecognized node role {value!r} in label {key!r}", indicators=names)
        states.add(state)

    if len(states) > 1:
        roles = ", ".join(sorted(s.value for s in states))
        return RoleClassification(error=f"conflicting node roles ({roles})", indicators=names)
    return RoleClassification(state=states.pop(), indicators=names)
