"""Exception handling utilities for the notification dispatch service."""

from notifications.exceptions.handlers import custom_exception_handler
from notifications.exceptions.notification_exceptions import (
    ConcurrentUpdateError,
    InvalidStateTransitionError,
    NotFoundError,
    NotificationError,
    PermanentSendFailure,
    QueueUnavailableError,
    SendFailure,
    TemplateNotFoundError,
    TransientSendFailure,
    ValidationError,
    WebhookSignatureError,
)

__all__ = [
    "ConcurrentUpdateError",
    "InvalidStateTransitionError",
    "NotFoundError",
    "NotificationError",
    "PermanentSendFailure",
    "QueueUnavailableError",
    "SendFailure",
    "TemplateNotFoundError",
    "TransientSendFailure",
    "ValidationError",
    "WebhookSignatureError",
    "custom_exception_handler",
]
