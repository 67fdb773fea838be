"""Request and response schemas for operator retry, cancel and cleanup."""

from datetime import datetime

from pydantic import Field

from notifications.constants import (
    DEFAULT_BULK_RETRY_LIMIT,
    DEFAULT_CLEANUP_DAYS,
    DEFAULT_CLEANUP_LIMIT,
)
from notifications.enums import NotificationLogStatus, NotificationType
from notifications.schemas.base_schema_model import BaseSchemaModel


class RetryRequest(BaseSchemaModel):
    """Optional body of a single-log retry request."""

    requested_by: str | None = None


class RetryResult(BaseSchemaModel):
    """Outcome of a single-log retry."""

    log_id: str
    job_id: str
    status: NotificationLogStatus


class RetryBulkFilters(BaseSchemaModel):
    """Selects failed logs for a bulk retry."""

    start_date: datetime | None = None
    end_date: datetime | None = None
    types: list[NotificationType] | None = None
    status: list[NotificationLogStatus] | None = None


class RetryBulkRequest(BaseSchemaModel):
    """Bulk retry by explicit ids or by filters."""

    ids: list[str] | None = Field(default=None, min_length=1)
    filters: RetryBulkFilters | None = None
    limit: int = Field(default=DEFAULT_BULK_RETRY_LIMIT, ge=1, le=500)
    requested_by: str | None = None


class RetryBulkResult(BaseSchemaModel):
    """Outcome of a bulk retry; per-log failures are reported, not raised."""

    retried_count: int
    job_ids: list[str] = Field(default_factory=list)
    errors: dict[str, str] = Field(default_factory=dict)


class CancelRequest(BaseSchemaModel):
    """Optional body of a cancel request."""

    requested_by: str | None = None


class CancelResult(BaseSchemaModel):
    """Outcome of a cancel request."""

    canceled: bool
    log_id: str
    job_removed: bool = False


class CleanupRequest(BaseSchemaModel):
    """Retention sweep parameters."""

    older_than_days: int = Field(default=DEFAULT_CLEANUP_DAYS, ge=0)
    include_statuses: list[NotificationLogStatus] | None = None
    exclude_statuses: list[NotificationLogStatus] | None = None
    limit: int = Field(default=DEFAULT_CLEANUP_LIMIT, ge=1)


class CleanupResult(BaseSchemaModel):
    """Outcome of a retention sweep."""

    deleted_count: int
    cutoff: datetime
    statuses: list[NotificationLogStatus]


class NotificationStats(BaseSchemaModel):
    """Delivery statistics over a trailing window.

    ``pending`` counts QUEUED, SENDING and RETRYING logs; ``failed`` counts
    FAILED and ERROR logs.
    """

    total: int
    sent: int
    failed: int
    pending: int
    canceled: int
    delivery_rate: float
    period_days: int
    since: datetime
