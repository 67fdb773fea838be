"""Webhook schemas."""

from notifications.schemas.webhook.webhook_event import WebhookAck, WebhookEvent

__all__ = ["WebhookAck", "WebhookEvent"]
