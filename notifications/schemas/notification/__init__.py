"""Notification schemas."""

from notifications.schemas.notification.admin_operations import (
    CancelRequest,
    CancelResult,
    CleanupRequest,
    CleanupResult,
    NotificationStats,
    RetryBulkFilters,
    RetryBulkRequest,
    RetryBulkResult,
    RetryRequest,
    RetryResult,
)
from notifications.schemas.notification.dispatch_request import DispatchRequest
from notifications.schemas.notification.dispatch_result import (
    DispatchResult,
    JobStatusResponse,
)
from notifications.schemas.notification.notification_log_entry import (
    NotificationLogCreate,
    NotificationLogEntry,
    NotificationLogUpdate,
)
from notifications.schemas.notification.notification_log_query import (
    NotificationLogFilters,
    NotificationLogPage,
    NotificationLogQueryOptions,
)
from notifications.schemas.notification.template_info import TemplateInfo

__all__ = [
    "CancelRequest",
    "CancelResult",
    "CleanupRequest",
    "CleanupResult",
    "DispatchRequest",
    "DispatchResult",
    "JobStatusResponse",
    "NotificationLogCreate",
    "NotificationLogEntry",
    "NotificationLogFilters",
    "NotificationLogPage",
    "NotificationLogQueryOptions",
    "NotificationLogUpdate",
    "NotificationStats",
    "RetryBulkFilters",
    "RetryBulkRequest",
    "RetryBulkResult",
    "RetryRequest",
    "RetryResult",
    "TemplateInfo",
]
