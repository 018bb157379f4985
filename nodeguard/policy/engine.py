"""Node label transition policy.

Deterministic, first-match-wins evaluation over an ordered rule table. Each request
ends in exactly one Decision. The table and the policy config are immutable, so
evaluation is safe to call concurrently; callers serialize it anyway (see
`nodeguard.webhooks.node_labels`).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, FrozenSet, Iterable, Optional, Tuple

from nodeguard.core.labels import (
    PROTECTED_ROLE_STATES,
    LabelSnapshot,
    RoleClassification,
    RoleState,
    SnapshotPair,
    classify_role,
)
from nodeguard.policy.config import NodeRolePolicy

logger = logging.getLogger(__name__)

ALLOWED_REASON = "New label does not infringe on node properties"
UNAUTHENTICATED_REASON = "Unauthenticated"
UNAUTHORIZED_REASON = "UnauthorizedAction"
UNCLASSIFIABLE_REASON = "UnclassifiableNodeRole"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str
    request_id: str
    rule: str


@dataclass(frozen=True)
class EvaluationContext:
    username: str
    groups: FrozenSet[str]
    old_labels: LabelSnapshot
    new_labels: LabelSnapshot
    old_role: RoleClassification
    new_role: RoleClassification
    policy: NodeRolePolicy

    @property
    def privileged(self) -> bool:
        return bool(self.groups & self.policy.privileged_groups)


@dataclass(frozen=True)
class PolicyRule:
    name: str
    matches: Callable[[EvaluationContext], bool]
    allowed: bool
    reason: str
    log_message: str


def _is_anonymous(ctx: EvaluationContext) -> bool:
    return ctx.username == ctx.policy.anonymous_username


def _is_unclassifiable(ctx: EvaluationContext) -> bool:
    return not (ctx.old_role.ok and ctx.new_role.ok)


def _was_protected(ctx: EvaluationContext) -> bool:
    return ctx.old_role.state in PROTECTED_ROLE_STATES


def _worker_downgraded(ctx: EvaluationContext) -> bool:
    return ctx.old_role.state == RoleState.WORKER and ctx.new_role.state != RoleState.WORKER


def _escalated(ctx: EvaluationContext) -> bool:
    return ctx.new_role.state in PROTECTED_ROLE_STATES and ctx.old_role.state not in PROTECTED_ROLE_STATES


RULES: Tuple[PolicyRule, ...] = (
    PolicyRule(
        name="unauthenticated",
        matches=_is_anonymous,
        allowed=False,
        reason=UNAUTHENTICATED_REASON,
        log_message="anonymous identity made a webhook request; check RBAC rules",
    ),
    PolicyRule(
        name="not-privileged",
        matches=lambda ctx: not ctx.privileged,
        allowed=True,
        reason=ALLOWED_REASON,
        log_message="requester is outside the privileged groups",
    ),
    PolicyRule(
        name="unclassifiable-role",
        matches=_is_unclassifiable,
        allowed=False,
        reason=UNCLASSIFIABLE_REASON,
        log_message="cannot classify node role labels",
    ),
    PolicyRule(
        name="protected-role",
        matches=_was_protected,
        allowed=False,
        reason=UNAUTHORIZED_REASON,
        log_message="cannot edit master or infra nodes",
    ),
    PolicyRule(
        name="worker-downgrade",
        matches=_worker_downgraded,
        allowed=False,
        reason=UNAUTHORIZED_REASON,
        log_message="cannot remove or overwrite worker node role label",
    ),
    PolicyRule(
        name="role-escalation",
        matches=_escalated,
        allowed=False,
        reason=UNAUTHORIZED_REASON,
        log_message="cannot assign master or infra role to node",
    ),
)

DEFAULT_RULE = PolicyRule(
    name="default",
    matches=lambda _ctx: True,
    allowed=True,
    reason=ALLOWED_REASON,
    log_message="label change allowed",
)


def build_context(
    *,
    username: str,
    groups: Iterable[str],
    old_labels: LabelSnapshot,
    new_labels: LabelSnapshot,
    policy: NodeRolePolicy,
) -> EvaluationContext:
    return EvaluationContext(
        username=username,
        groups=frozenset(groups or ()),
        old_labels=old_labels,
        new_labels=new_labels,
        old_role=classify_role(old_labels, policy.roles),
        new_role=classify_role(new_labels, policy.roles),
        policy=policy,
    )


def first_match(ctx: EvaluationContext, rules: Tuple[PolicyRule, ...] = RULES) -> PolicyRule:
    for rule in rules:
        if rule.matches(ctx):
            return rule
    return DEFAULT_RULE


def evaluate(
    *,
    request_id: str,
    username: str,
    groups: Iterable[str],
    snapshots: SnapshotPair,
    policy: NodeRolePolicy,
    log: Optional[logging.Logger] = None,
) -> Decision:
    """
    Evaluate one request against the node role policy.

    A decode failure on either object version short-circuits before any rule runs:
    the verdict is a denial naming the failed version.
    """
    log = log or logger

    decode_error = snapshots.error
    if decode_error is not None:
        log.warning("uid=%s user=%s denied: %s", request_id, username, decode_error.reason)
        return Decision(allowed=False, reason=decode_error.reason, request_id=request_id, rule="decode-error")

    ctx = build_context(
        username=username,
        groups=groups,
        old_labels=snapshots.old.snapshot or {},
        new_labels=snapshots.new.snapshot or {},
        policy=policy,
    )
    rule = first_match(ctx)

    if rule.name == "unauthenticated":
        log.warning("uid=%s %s", request_id, rule.log_message)
    elif rule.name == "unclassifiable-role":
        failed = ctx.old_role if ctx.old_role.error else ctx.new_role
        log.info(
            "uid=%s user=%s %s: %s (labels: %s)",
            request_id,
            username,
            rule.log_message,
            failed.error,
            ", ".join(failed.indicators),
        )
    else:
        log.debug("uid=%s user=%s old=%s new=%s", request_id, username, dict(ctx.old_labels), dict(ctx.new_labels))
        log.info("uid=%s user=%s rule=%s %s", request_id, username, rule.name, rule.log_message)

    return Decision(allowed=rule.allowed, reason=rule.reason, request_id=request_id, rule=rule.name)
