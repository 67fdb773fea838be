"""Schemas for provider delivery-status webhooks."""

from typing import Any

from pydantic import Field

from notifications.schemas.base_schema_model import BaseSchemaModel


class WebhookEvent(BaseSchemaModel):
    """A provider event reduced to the fields the reconciler needs.

    Provider-specific envelopes (SendGrid arrays, Mailgun ``event-data``,
    SES notifications) are flattened into this shape before processing.
    """

    event: str = ""
    status: str = ""
    message_id: str | None = None
    recipient: str | None = None
    reason: str | None = None
    description: str | None = None
    timestamp: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    provider: str = "generic"

    @property
    def log_id(self) -> str | None:
        """Correlation id round-tripped through the provider, if any."""
        return self.metadata.get("logId") or self.metadata.get("log_id")


class WebhookAck(BaseSchemaModel):
    """Acknowledgement returned to the provider."""

    success: bool
    message: str
    processed: int = 0
