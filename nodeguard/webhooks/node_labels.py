"""
Node role label webhook.

Intercepts UPDATE (and optionally DELETE) on `nodes` and applies the node role
policy from `nodeguard.policy.engine`. One instance per configured policy variant.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, List, Optional

from pydantic import ValidationError

from nodeguard.api.response import AdmissionResponse, decision_response, errored_response
from nodeguard.core.labels import NODE_KIND, extract_snapshots
from nodeguard.core.models import AdmissionRequest, AdmissionReview
from nodeguard.policy.config import NodeRolePolicy
from nodeguard.policy.engine import evaluate
from nodeguard.webhooks.base import RuleWithOperations, TransportError


def _recover_uid(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    req = payload.get("request")
    if not isinstance(req, dict):
        return None
    uid = req.get("uid")
    return uid if isinstance(uid, str) and uid else None


def parse_admission_review(body: bytes) -> AdmissionReview:
    """Parse an inbound AdmissionReview body, raising TransportError if it is unusable."""
    try:
        payload = json.loads(body)
    except (ValueError, RecursionError) as e:
        raise TransportError(f"Error parsing HTTP request body: {e}") from e

    api_version = payload.get("apiVersion") if isinstance(payload, dict) else None
    if not isinstance(payload, dict) or not isinstance(payload.get("request"), dict):
        raise TransportError("AdmissionReview has no request", uid=_recover_uid(payload), api_version=api_version)

    try:
        return AdmissionReview.model_validate(payload)
    except ValidationError as e:
        raise TransportError(
            f"Malformed AdmissionReview: {e.error_count()} validation error(s)",
            uid=_recover_uid(payload),
            api_version=api_version,
        ) from e


class NodeLabelWebhook:
    """
    Validates role label changes on nodes.

    The instance lock covers the whole parse/extract/evaluate/serialize sequence, so
    at most one request is evaluated at a time per instance. This keeps worst-case
    latency predictable under the API server's short per-call timeout.
    """

    def __init__(self, policy: NodeRolePolicy, *, logger: Optional[logging.Logger] = None) -> None:
        self._policy = policy
        self._lock = threading.Lock()
        self._log = logger or logging.getLogger(f"nodeguard.webhooks.{policy.name}")

    @property
    def policy(self) -> NodeRolePolicy:
        return self._policy

    @property
    def name(self) -> str:
        return self._policy.name

    @property
    def uri(self) -> str:
        return self._policy.uri

    @property
    def timeout_seconds(self) -> int:
        return self._policy.timeout_seconds

    @property
    def match_policy(self) -> str:
        return self._policy.match_policy

    @property
    def failure_policy(self) -> str:
        return self._policy.failure_policy

    @property
    def side_effects(self) -> str:
        return self._policy.side_effects

    def rules(self) -> List[RuleWithOperations]:
        return [RuleWithOperations(operations=self._policy.operations, api_groups=self._policy.api_groups)]

    def validate(self, review: AdmissionReview) -> None:
        """Is the incoming request one this webhook can judge at all?"""
        req: AdmissionRequest = review.request
        if not req.user_info.username:
            raise TransportError("Invalid request: missing username", uid=req.uid, api_version=review.api_version)
        if req.kind is not None and req.kind.kind and req.kind.kind != NODE_KIND:
            raise TransportError(
                f"Invalid request: unsupported kind {req.kind.kind!r}", uid=req.uid, api_version=review.api_version
            )
        if req.operation not in self._policy.operations:
            raise TransportError(
                f"Invalid request: operation {req.operation!r} is not handled by {self.name}",
                uid=req.uid,
                api_version=review.api_version,
            )

    def review(self, review: AdmissionReview) -> AdmissionResponse:
        """Decide one parsed and validated request."""
        req = review.request
        snapshots = extract_snapshots(req.operation, req.old_object, req.object)
        decision = evaluate(
            request_id=req.uid,
            username=req.user_info.username,
            groups=req.user_info.groups,
            snapshots=snapshots,
            policy=self._policy,
            log=self._log,
        )
        return decision_response(decision, api_version=review.api_version)

    def handle_request(self, body: bytes) -> AdmissionResponse:
        with self._lock:
            review: Optional[AdmissionReview] = None
            try:
                review = parse_admission_review(body)
                self.validate(review)
                return self.review(review)
            except TransportError as e:
                self._log.error("Rejecting request uid=%s: %s", e.uid or "-", e.message)
                return errored_response(uid=e.uid, code=e.code, message=e.message, api_version=e.api_version)
            except Exception as e:
                self._log.exception("Unexpected error handling admission request")
                return errored_response(
                    uid=review.request.uid if review else None,
                    code=500,
                    message=f"Internal error: {e}",
                    api_version=review.api_version if review else None,
                )
