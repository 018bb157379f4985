"""Validating admission webhooks served by nodeguard.

Webhooks are composed explicitly at startup (`build_registry`); nothing registers
itself on import.
"""

from nodeguard.webhooks.base import AdmissionWebhook, RuleWithOperations, TransportError
from nodeguard.webhooks.node_labels import NodeLabelWebhook
from nodeguard.webhooks.registry import WebhookRegistry, build_registry

__all__ = [
    "AdmissionWebhook",
    "NodeLabelWebhook",
    "RuleWithOperations",
    "TransportError",
    "WebhookRegistry",
    "build_registry",
]
