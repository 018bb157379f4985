from __future__ import annotations

import logging
import threading
import time

import pytest

from nodeguard.policy.config import NODE_LABELS_VALIDATION, NODE_VALIDATION
from nodeguard.webhooks.base import AdmissionWebhook, TransportError
from nodeguard.webhooks.node_labels import NodeLabelWebhook, parse_admission_review
from reviews import body, review

ADMIN = ["system:authenticated", "dedicated-admin"]


@pytest.fixture
def webhook() -> NodeLabelWebhook:
    return NodeLabelWebhook(NODE_LABELS_VALIDATION)


def test_webhook_implements_contract(webhook: NodeLabelWebhook) -> None:
    assert isinstance(webhook, AdmissionWebhook)
    assert webhook.name == "node-labels-validation"
    assert webhook.uri == "/regularuser-validation"
    assert webhook.timeout_seconds == 2
    assert webhook.failure_policy == "Ignore"
    assert webhook.side_effects == "None"
    [rule] = webhook.rules()
    assert rule.operations == ("UPDATE",)
    assert rule.resources == ("nodes", "nodes/*")


def test_allowed_update_echoes_uid(webhook: NodeLabelWebhook) -> None:
    payload = review(old_labels={"type": "worker"}, new_labels={"type": "worker", "zone": "us-east"}, groups=ADMIN)
    resp = webhook.handle_request(body(payload))
    assert resp.status_code == 200
    assert resp.uid == payload["request"]["uid"]
    assert resp.allowed is True
    assert resp.body["response"]["status"]["message"] == "New label does not infringe on node properties"


def test_denied_update_echoes_uid(webhook: NodeLabelWebhook) -> None:
    payload = review(old_labels={"type": "worker"}, new_labels={}, groups=ADMIN, uid="deny-uid")
    resp = webhook.handle_request(body(payload))
    assert resp.status_code == 200
    assert resp.uid == "deny-uid"
    assert resp.allowed is False
    assert resp.body["response"]["status"]["message"] == "UnauthorizedAction"


def test_malformed_new_object_is_a_denial_not_a_transport_error(webhook: NodeLabelWebhook) -> None:
    payload = review(old_labels={"type": "worker"}, new_object={"metadata": {"labels": ["oops"]}}, groups=ADMIN)
    resp = webhook.handle_request(body(payload))
    assert resp.status_code == 200
    assert resp.allowed is False
    assert resp.uid == payload["request"]["uid"]
    assert resp.body["response"]["status"]["message"].startswith("Failed to decode new node object")


def test_unparseable_body_is_transport_error(webhook: NodeLabelWebhook) -> None:
    resp = webhook.handle_request(b"{this is not json")
    assert resp.status_code == 400
    assert resp.is_error
    assert resp.allowed is False
    assert resp.body["response"]["status"]["reason"] == "BadRequest"


def test_transport_error_echoes_uid_when_recoverable(webhook: NodeLabelWebhook) -> None:
    payload = review(old_labels={}, new_labels={})
    del payload["request"]["operation"]
    resp = webhook.handle_request(body(payload))
    assert resp.status_code == 400
    assert resp.uid == payload["request"]["uid"]


@pytest.mark.parametrize(
    "mutate,needle",
    [
        (lambda p: p["request"]["userInfo"].update(username=""), "username"),
        (lambda p: p["request"]["kind"].update(kind="Pod"), "Pod"),
        (lambda p: p["request"].update(operation="CREATE"), "CREATE"),
    ],
)
def test_invalid_requests_are_rejected_with_400(webhook: NodeLabelWebhook, mutate, needle) -> None:
    payload = review(old_labels={"type": "worker"}, new_labels={"type": "worker"}, groups=ADMIN, uid="bad-uid")
    mutate(payload)
    resp = webhook.handle_request(body(payload))
    assert resp.status_code == 400
    assert resp.uid == "bad-uid"
    assert needle in resp.body["response"]["status"]["message"]


def test_delete_is_out_of_scope_for_update_only_variant(webhook: NodeLabelWebhook) -> None:
    payload = review(old_labels={"type": "worker"}, operation="DELETE", groups=ADMIN)
    resp = webhook.handle_request(body(payload))
    assert resp.status_code == 400


def test_delete_on_node_validation_variant() -> None:
    wh = NodeLabelWebhook(NODE_VALIDATION)
    admins = ["dedicated-admins"]
    worker = review(old_labels={"node-role.kubernetes.io/worker": ""}, operation="DELETE", groups=admins)
    resp = wh.handle_request(body(worker))
    assert resp.status_code == 200
    assert resp.allowed is False

    unlabeled = review(old_labels={"kubernetes.io/hostname": "n1"}, operation="DELETE", groups=admins)
    assert wh.handle_request(body(unlabeled)).allowed is True


def test_parse_admission_review_accepts_v1beta1_and_missing_groups() -> None:
    payload = review(old_labels={}, new_labels={}, api_version="admission.k8s.io/v1beta1")
    payload["request"]["userInfo"]["groups"] = None
    payload["request"]["operation"] = "update"
    parsed = parse_admission_review(body(payload))
    assert parsed.api_version == "admission.k8s.io/v1beta1"
    assert parsed.request.operation == "UPDATE"
    assert parsed.request.user_info.groups == []


def test_parse_admission_review_without_request() -> None:
    with pytest.raises(TransportError) as ei:
        parse_admission_review(b'{"apiVersion": "admission.k8s.io/v1", "kind": "AdmissionReview"}')
    assert ei.value.code == 400
    assert ei.value.uid is None


def test_response_uses_request_api_version(webhook: NodeLabelWebhook) -> None:
    payload = review(old_labels={}, new_labels={}, api_version="admission.k8s.io/v1beta1")
    resp = webhook.handle_request(body(payload))
    assert resp.body["apiVersion"] == "admission.k8s.io/v1beta1"


def test_lock_is_released_after_every_kind_of_failure(webhook: NodeLabelWebhook, monkeypatch) -> None:
    webhook.handle_request(b"garbage")
    webhook.handle_request(body(review(old_object="nope", groups=ADMIN)))

    def _boom(_review):  # type: ignore[no-untyped-def]
        raise RuntimeError("boom")

    monkeypatch.setattr(webhook, "review", _boom)
    resp = webhook.handle_request(body(review(old_labels={}, new_labels={}, uid="keep-me")))
    assert resp.status_code == 500
    assert resp.uid == "keep-me"
    assert webhook._lock.acquire(blocking=False)
    webhook._lock.release()


def test_deeply_nested_body_is_transport_error(webhook: NodeLabelWebhook) -> None:
    resp = webhook.handle_request(b"[" * 200000 + b"]" * 200000)
    assert resp.status_code == 400
    assert resp.body["response"]["status"]["reason"] == "BadRequest"
    assert resp.uid == ""


def test_evaluations_do_not_interleave(monkeypatch) -> None:
    wh = NodeLabelWebhook(NODE_LABELS_VALIDATION)
    active = {"now": 0, "max": 0}
    guard = threading.Lock()
    real_review = wh.review

    def _slow_review(r):  # type: ignore[no-untyped-def]
        with guard:
            active["now"] += 1
            active["max"] = max(active["max"], active["now"])
        time.sleep(0.01)
        try:
            return real_review(r)
        finally:
            with guard:
                active["now"] -= 1

    monkeypatch.setattr(wh, "review", _slow_review)
    payload = body(review(old_labels={"type": "worker"}, new_labels={"type": "worker"}, groups=ADMIN))
    threads = [threading.Thread(target=wh.handle_request, args=(payload,)) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert active["max"] == 1


def test_injected_logger_receives_rejections(caplog) -> None:
    log = logging.getLogger("test.nodeguard.webhook")
    wh = NodeLabelWebhook(NODE_LABELS_VALIDATION, logger=log)
    with caplog.at_level(logging.ERROR, logger="test.nodeguard.webhook"):
        wh.handle_request(b"not json")
    assert any(r.name == "test.nodeguard.webhook" for r in caplog.records)
