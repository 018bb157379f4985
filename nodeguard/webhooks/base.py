from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Tuple, runtime_checkable

from nodeguard.api.response import AdmissionResponse


class TransportError(Exception):
    """The wire request could not be parsed or is not one this webhook handles."""

    def __init__(self, message: str, *, code: int = 400, uid: Optional[str] = None, api_version: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.uid = uid
        self.api_version = api_version


@dataclass(frozen=True)
class RuleWithOperations:
    operations: Tuple[str, ...]
    api_groups: Tuple[str, ...] = ("",)
    api_versions: Tuple[str, ...] = ("*",)
    resources: Tuple[str, ...] = ("nodes", "nodes/*")
    scope: str = "*"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operations": list(self.operations),
            "apiGroups": list(self.api_groups),
            "apiVersions": list(self.api_versions),
            "resources": list(self.resources),
            "scope": self.scope,
        }


@runtime_checkable
class AdmissionWebhook(Protocol):
    """
    Contract every registered validating webhook implements.

    Registration metadata is read once at startup (routes, manifest);
    `handle_request` is called per inbound AdmissionReview body and must not raise.
    """

    @property
    def name(self) -> str: ...

    @property
    def uri(self) -> str: ...

    @property
    def timeout_seconds(self) -> int: ...

    @property
    def match_policy(self) -> str: ...

    @property
    def failure_policy(self) -> str: ...

    @property
    def side_effects(self) -> str: ...

    def rules(self) -> List[RuleWithOperations]: ...

    def handle_request(self, body: bytes) -> AdmissionResponse: ...

