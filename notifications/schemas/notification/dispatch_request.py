"""Request schema for dispatching a notification."""

from datetime import datetime
from typing import Any

from pydantic import EmailStr, Field

from notifications.enums import Channel, Priority
from notifications.schemas.base_schema_model import BaseSchemaModel


class DispatchRequest(BaseSchemaModel):
    """Request to notify one or more recipients.

    ``type`` is kept as a plain string here; the dispatch service resolves it
    against the closed set of notification types so an unknown tag is
    reported as a field error on ``type``.

    Attributes:
        type: Notification type tag, for example ORDER_CONFIRMED.
        recipients: Email addresses, at least one.
        data: Type-specific template data.
        channel: Requested channel; only email (or all) is deliverable.
        priority: Queue priority tier.
        scheduled_time: Optional future send time.
        cc: Carbon-copy addresses added to every message.
        bcc: Blind carbon-copy addresses added to every message.
        reply_to: Reply-To address.
        source: Name of the calling system, recorded as provenance.
        requested_by: User or service on whose behalf the request is made.
    """

    type: str = Field(..., min_length=1)
    recipients: list[EmailStr] = Field(..., min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)
    channel: Channel = Channel.EMAIL
    priority: Priority = Priority.NORMAL
    scheduled_time: datetime | None = None
    cc: list[EmailStr] = Field(default_factory=list)
    bcc: list[EmailStr] = Field(default_factory=list)
    reply_to: EmailStr | None = None
    source: str | None = None
    requested_by: str | None = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "type": "ORDER_CONFIRMED",
                "recipients": ["customer@example.com"],
                "data": {
                    "orderNumber": "ORD-1001",
                    "name": "Ada",
                    "orderDate": "2024-05-01",
                    "orderTotal": 42.5,
                    "items": [{"name": "Mug", "quantity": 1, "price": 42.5}],
                    "orderUrl": "https://shop.example.com/orders/ORD-1001",
                },
                "priority": "normal",
            }
        }
    }
