"""AdmissionReview response envelopes.

Policy decisions always go out as HTTP 200 (the verdict is in `response.allowed`).
Malformed requests go out with a 4xx status and `status.reason`, so callers can tell
"the request was invalid" apart from "the policy denied the action".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from nodeguard.core.models import ADMISSION_API_VERSION, ADMISSION_API_VERSIONS
from nodeguard.policy.engine import Decision

_STATUS_REASONS = {
    400: "BadRequest",
    403: "Forbidden",
    415: "UnsupportedMediaType",
    422: "Invalid",
    500: "InternalError",
}


@dataclass(frozen=True)
class AdmissionResponse:
    status_code: int
    body: Dict[str, Any]

    @property
    def uid(self) -> str:
        return str((self.body.get("response") or {}).get("uid") or "")

    @property
    def allowed(self) -> bool:
        return bool((self.body.get("response") or {}).get("allowed"))

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400


def _api_version(api_version: Optional[str]) -> str:
    # Respond in the version we were asked in; the API server rejects a mismatch.
    return api_version if api_version in ADMISSION_API_VERSIONS else ADMISSION_API_VERSION


def _envelope(api_version: Optional[str], response: Dict[str, Any]) -> Dict[str, Any]:
    return {"apiVersion": _api_version(api_version), "kind": "AdmissionReview", "response": response}


def decision_response(decision: Decision, *, api_version: Optional[str] = None) -> AdmissionResponse:
    status: Dict[str, Any] = {"code": 200 if decision.allowed else 403, "message": decision.reason}
    if not decision.allowed:
        status["reason"] = _STATUS_REASONS[403]
    body = _envelope(
        api_version,
        {"uid": decision.request_id, "allowed": decision.allowed, "status": status},
    )
    return AdmissionResponse(status_code=200, body=body)


def errored_response(
    *,
    uid: Optional[str],
    code: int,
    message: str,
    api_version: Optional[str] = None,
) -> AdmissionResponse:
    status = {"code": code, "reason": _STATUS_REASONS.get(code, "Unknown"), "message": message}
    body = _envelope(api_version, {"uid": uid or "", "allowed": False, "status": status})
    return AdmissionResponse(status_code=code, body=body)
