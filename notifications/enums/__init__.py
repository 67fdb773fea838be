"""Enumerations for the notification dispatch service."""

from notifications.enums.health import HealthStatus, ReadinessState
from notifications.enums.notification import (
    CANCELABLE_STATUSES,
    DELIVERABLE_CHANNELS,
    PENDING_STATUSES,
    PRIORITY_LEVELS,
    RETRYABLE_STATUSES,
    SENDABLE_STATUSES,
    CanonicalEvent,
    Channel,
    JobState,
    NotificationLogStatus,
    NotificationType,
    OverallJobStatus,
    Priority,
)

__all__ = [
    "CANCELABLE_STATUSES",
    "DELIVERABLE_CHANNELS",
    "PENDING_STATUSES",
    "PRIORITY_LEVELS",
    "RETRYABLE_STATUSES",
    "SENDABLE_STATUSES",
    "CanonicalEvent",
    "Channel",
    "HealthStatus",
    "JobState",
    "NotificationLogStatus",
    "NotificationType",
    "OverallJobStatus",
    "Priority",
    "ReadinessState",
]
