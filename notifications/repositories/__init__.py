"""Notification log repositories."""

from notifications.repositories.in_memory_notification_log_repository import (
    InMemoryNotificationLogRepository,
)
from notifications.repositories.notification_log_repository import (
    DEFAULT_CLEANUP_STATUSES,
    NotificationLogRepository,
    merge_update,
)

__all__ = [
    "DEFAULT_CLEANUP_STATUSES",
    "InMemoryNotificationLogRepository",
    "NotificationLogRepository",
    "merge_update",
]
