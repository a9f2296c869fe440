"""Services layered on the engine."""

from stateflow.services.webhooks import WebhookSubscriber, subscriber_from_settings

__all__ = [
    "WebhookSubscriber",
    "subscriber_from_settings",
]
