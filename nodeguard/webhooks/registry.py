from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from nodeguard.policy.config import NodeRolePolicy, load_policies
from nodeguard.webhooks.base import AdmissionWebhook
from nodeguard.webhooks.node_labels import NodeLabelWebhook


@dataclass
class WebhookRegistry:
    webhooks: List[AdmissionWebhook] = field(default_factory=list)

    def register(self, webhook: AdmissionWebhook) -> None:
        if not isinstance(webhook, AdmissionWebhook):
            raise TypeError(f"{type(webhook).__name__} does not implement AdmissionWebhook")
        for existing in self.webhooks:
            if existing.name == webhook.name:
                raise ValueError(f"webhook {webhook.name!r} is already registered")
            if existing.uri == webhook.uri:
                raise ValueError(f"webhook {webhook.name!r} reuses URI {webhook.uri!r} of {existing.name!r}")
        self.webhooks.append(webhook)

    def get(self, name: str) -> Optional[AdmissionWebhook]:
        for w in self.webhooks:
            if w.name == name:
                return w
        return None

    def by_uri(self) -> Dict[str, AdmissionWebhook]:
        return {w.uri: w for w in self.webhooks}

    def names(self) -> List[str]:
        return [w.name for w in self.webhooks]


def build_registry(
    policies: Optional[Iterable[NodeRolePolicy]] = None,
    *,
    logger: Optional[logging.Logger] = None,
) -> WebhookRegistry:
    """
    Explicit startup composition: one NodeLabelWebhook per enabled policy variant.

    When `policies` is omitted they are loaded from env (`load_policies`).
    """
    reg = WebhookRegistry()
    for policy in load_policies() if policies is None else policies:
        log = logger.getChild(policy.name) if logger is not None else None
        reg.register(NodeLabelWebhook(policy, logger=log))
    return reg
