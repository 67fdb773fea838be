"""Faker-backed builders for notification test data."""

from datetime import UTC, datetime, timedelta
from typing import Any

from faker import Faker

from notifications.enums import NotificationLogStatus, NotificationType
from notifications.schemas.notification import NotificationLogCreate

fake = Faker()


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime | None = None):
        self.current = now or datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


def order_confirmed_data(**overrides: Any) -> dict[str, Any]:
    """Valid ORDER_CONFIRMED data in wire (camelCase) form."""
    order_number = f"ORD-{fake.random_int(min=1000, max=9999)}"
    data = {
        "orderNumber": order_number,
        "name": fake.first_name(),
        "orderDate": fake.date(),
        "orderTotal": 42.5,
        "items": [{"name": "Mug", "quantity": 1, "price": 42.5}],
        "orderUrl": f"https://shop.example.com/orders/{order_number}",
    }
    data.update(overrides)
    return data


def password_reset_data(**overrides: Any) -> dict[str, Any]:
    """Valid PASSWORD_RESET data in wire form."""
    data = {
        "name": fake.first_name(),
        "resetUrl": f"https://shop.example.com/reset/{fake.uuid4()}",
        "expiresInHours": 1,
    }
    data.update(overrides)
    return data


def dispatch_request(
    notification_type: NotificationType = NotificationType.ORDER_CONFIRMED,
    recipients: list[str] | None = None,
    **overrides: Any,
) -> dict[str, Any]:
    """Raw dispatch request body."""
    data = (
        password_reset_data()
        if notification_type == NotificationType.PASSWORD_RESET
        else order_confirmed_data()
    )
    body = {
        "type": notification_type.value,
        "recipients": recipients or [fake.email()],
        "data": data,
        "source": "test-suite",
    }
    body.update(overrides)
    return body


def log_create(
    status: NotificationLogStatus = NotificationLogStatus.QUEUED,
    notification_type: NotificationType = NotificationType.ORDER_CONFIRMED,
    **overrides: Any,
) -> NotificationLogCreate:
    """Log creation data with a stored rendered payload."""
    fields: dict[str, Any] = {
        "to": fake.email(),
        "type": notification_type,
        "status": status,
        "payload": {
            "subject": fake.sentence(),
            "html": f"<p>{fake.paragraph()}</p>",
            "text": fake.paragraph(),
            "templateVars": order_confirmed_data(),
            "cc": [],
            "bcc": [],
            "replyTo": None,
            "from": "noreply@example.com",
        },
        "job_id": fake.uuid4(),
    }
    fields.update(overrides)
    return NotificationLogCreate(**fields)
