"""Node role policy layer (env/ConfigMap driven).

- `config`: the per-variant policy table and its env overrides
- `engine`: ordered first-match rule evaluation producing a Decision
"""
from __future__ import annotations

from nodeguard.policy.config import DEFAULT_POLICIES, NodeRolePolicy, load_policies, load_service_settings
from nodeguard.policy.engine import Decision, evaluate

__all__ = [
    "DEFAULT_POLICIES",
    "Decision",
    "NodeRolePolicy",
    "evaluate",
    "load_policies",
    "load_service_settings",
]
