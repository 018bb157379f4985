"""Render the ValidatingWebhookConfiguration that registers our webhooks with the API server."""

from __future__ import annotations

import base64
from typing import Any, Dict, Optional

import yaml

from nodeguard.webhooks.registry import WebhookRegistry

CONFIGURATION_NAME = "nodeguard-validation"
WEBHOOK_DOMAIN = "nodeguard.io"


def _ca_bundle_b64(ca_bundle: Optional[bytes]) -> Optional[str]:
    if not ca_bundle:
        return None
    return base64.b64encode(ca_bundle).decode("ascii")


def render_validating_webhook_configuration(
    registry: WebhookRegistry,
    *,
    service_name: str,
    namespace: str,
    port: int = 443,
    ca_bundle: Optional[bytes] = None,
    name: str = CONFIGURATION_NAME,
) -> Dict[str, Any]:
    webhooks = []
    ca = _ca_bundle_b64(ca_bundle)
    for w in registry.webhooks:
        client_config: Dict[str, Any] = {
            "service": {"name": service_name, "namespace": namespace, "path": w.uri, "port": port},
        }
        if ca:
            client_config["caBundle"] = ca
        webhooks.append(
            {
                "name": f"{w.name}.{WEBHOOK_DOMAIN}",
                "admissionReviewVersions": ["v1", "v1beta1"],
                "clientConfig": client_config,
                "rules": [r.to_dict() for r in w.rules()],
                "failurePolicy": w.failure_policy,
                "matchPolicy": w.match_policy,
                "sideEffects": w.side_effects,
                "timeoutSeconds": w.timeout_seconds,
            }
        )
    return {
        "apiVersion": "admissionregistration.k8s.io/v1",
        "kind": "ValidatingWebhookConfiguration",
        "metadata": {"name": name},
        "webhooks": webhooks,
    }


def dump_yaml(manifest: Dict[str, Any]) -> str:
    return yaml.safe_dump(manifest, sort_keys=False, default_flow_style=False)
