"""Builders for AdmissionReview payloads used across tests."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

_MISSING = object()


def node(labels: Optional[Dict[str, str]] = None, *, name: str = "ip-10-0-1-23", kind: str = "Node") -> Dict[str, Any]:
    meta: Dict[str, Any] = {"name": name}
    if labels is not None:
        meta["labels"] = dict(labels)
    return {"apiVersion": "v1", "kind": kind, "metadata": meta}


def review(
    *,
    old_labels: Optional[Dict[str, str]] = None,
    new_labels: Optional[Dict[str, str]] = None,
    username: str = "alice",
    groups: Optional[List[str]] = None,
    operation: str = "UPDATE",
    uid: str = "705ab4f5-6393-11e8-b7cc-42010a800002",
    new_object: Any = _MISSING,
    old_object: Any = _MISSING,
    api_version: str = "admission.k8s.io/v1",
) -> Dict[str, Any]:
    req: Dict[str, Any] = {
        "uid": uid,
        "kind": {"group": "", "version": "v1", "kind": "Node"},
        "resource": {"group": "", "version": "v1", "resource": "nodes"},
        "name": "ip-10-0-1-23",
        "operation": operation,
        "userInfo": {"username": username, "groups": list(groups or [])},
        "oldObject": node(old_labels or {}) if old_object is _MISSING else old_object,
    }
    if operation != "DELETE":
        req["object"] = node(new_labels or {}) if new_object is _MISSING else new_object
    return {"apiVersion": api_version, "kind": "AdmissionReview", "request": req}


def body(payload: Dict[str, Any]) -> bytes:
    return json.dumps(payload).encode("utf-8")
