"""Notification-related enumerations.

This module contains enums for notification types, log statuses, delivery
priorities and channels, queue job states and the canonical webhook event
vocabulary used throughout the notification dispatch service.
"""

from enum import Enum


class NotificationType(str, Enum):
    """Closed set of notification kinds the service can dispatch.

    Every member has exactly one data schema and one email template.
    """

    ORDER_CONFIRMED = "ORDER_CONFIRMED"
    ORDER_SHIPPED = "ORDER_SHIPPED"
    ORDER_DELIVERED = "ORDER_DELIVERED"
    ORDER_CANCELED = "ORDER_CANCELED"
    PASSWORD_RESET = "PASSWORD_RESET"
    PASSWORD_CHANGED = "PASSWORD_CHANGED"
    ACCOUNT_VERIFICATION = "ACCOUNT_VERIFICATION"
    USER_REGISTERED = "USER_REGISTERED"
    INVENTORY_ALERT = "INVENTORY_ALERT"
    REVIEW_REQUESTED = "REVIEW_REQUESTED"
    SYSTEM_ALERT = "SYSTEM_ALERT"

    @property
    def template_id(self) -> str:
        """Template identifier derived from the type tag."""
        return self.value.lower().replace("_", "-")


class NotificationLogStatus(str, Enum):
    """Lifecycle status of a single notification log entry.

    QUEUED -> SENDING -> SENT is the happy path. FAILED and ERROR are
    terminal failure states, RETRYING marks a scheduled re-attempt and
    CANCELED is reachable only by explicit operator action.
    """

    QUEUED = "QUEUED"
    SENDING = "SENDING"
    SENT = "SENT"
    FAILED = "FAILED"
    ERROR = "ERROR"
    RETRYING = "RETRYING"
    CANCELED = "CANCELED"


PENDING_STATUSES = frozenset(
    {
        NotificationLogStatus.QUEUED,
        NotificationLogStatus.SENDING,
        NotificationLogStatus.RETRYING,
    }
)
RETRYABLE_STATUSES = frozenset(
    {NotificationLogStatus.FAILED, NotificationLogStatus.ERROR}
)
CANCELABLE_STATUSES = PENDING_STATUSES
SENDABLE_STATUSES = PENDING_STATUSES


class Priority(str, Enum):
    """Delivery priority tier requested by the caller."""

    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def level(self) -> int:
        """Numeric queue priority; lower values are served first."""
        return PRIORITY_LEVELS[self.value]


# Keyed by value so plain strings from validated schemas resolve too
PRIORITY_LEVELS = {
    Priority.HIGH.value: 1,
    Priority.NORMAL.value: 2,
    Priority.LOW.value: 3,
}


class Channel(str, Enum):
    """Requested delivery channel."""

    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"
    ALL = "all"


DELIVERABLE_CHANNELS = frozenset({Channel.EMAIL.value, Channel.ALL.value})


class JobState(str, Enum):
    """Queue-internal state of a delivery job."""

    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"


class CanonicalEvent(str, Enum):
    """Provider-agnostic webhook event vocabulary."""

    DELIVERED = "delivered"
    OPENED = "opened"
    CLICKED = "clicked"
    BOUNCED = "bounced"
    BLOCKED = "blocked"
    SPAM_COMPLAINT = "spam-complaint"
    DEFERRED = "deferred"
    DELAYED = "delayed"
    DROPPED = "dropped"
    UNKNOWN = "unknown"


class OverallJobStatus(str, Enum):
    """Aggregate status reported for a dispatch job across its logs."""

    WAITING = "waiting"
    ACTIVE = "active"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"
