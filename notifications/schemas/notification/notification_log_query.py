"""Filter, paging and result schemas for notification log queries."""

from datetime import datetime
from typing import Literal

from pydantic import Field, field_validator

from notifications.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from notifications.enums import NotificationLogStatus, NotificationType
from notifications.schemas.base_schema_model import BaseSchemaModel
from notifications.schemas.notification.notification_log_entry import (
    NotificationLogEntry,
)

SortField = Literal[
    "created_at", "updated_at", "sent_at", "retry_count", "status", "type", "to"
]


class NotificationLogFilters(BaseSchemaModel):
    """Composable filters over notification logs; all given filters must match."""

    status: list[NotificationLogStatus] | None = None
    type: list[NotificationType] | None = None
    to: str | None = None
    created_at_start: datetime | None = None
    created_at_end: datetime | None = None
    sent_at_start: datetime | None = None
    sent_at_end: datetime | None = None
    retry_count_min: int | None = Field(default=None, ge=0)
    retry_count_max: int | None = Field(default=None, ge=0)
    job_id: str | None = None

    @field_validator("status", "type", mode="before")
    @classmethod
    def _wrap_single_value(cls, value):
        if value is None or isinstance(value, list | tuple | set | frozenset):
            return value
        if isinstance(value, str) and "," in value:
            return [part.strip() for part in value.split(",") if part.strip()]
        return [value]

    def matches(self, entry: NotificationLogEntry) -> bool:
        """Check whether a log entry satisfies every filter that is set.

        Args:
            entry: The log entry to test.

        Returns:
            True when the entry matches.
        """
        if self.status and entry.status not in self.status:
            return False
        if self.type and entry.type not in self.type:
            return False
        if self.to and entry.to.lower() != self.to.lower():
            return False
        if self.job_id and entry.job_id != self.job_id:
            return False
        if self.created_at_start and entry.created_at < self.created_at_start:
            return False
        if self.created_at_end and entry.created_at > self.created_at_end:
            return False
        if self.sent_at_start or self.sent_at_end:
            if entry.sent_at is None:
                return False
            if self.sent_at_start and entry.sent_at < self.sent_at_start:
                return False
            if self.sent_at_end and entry.sent_at > self.sent_at_end:
                return False
        if self.retry_count_min is not None and entry.retry_count < self.retry_count_min:
            return False
        if self.retry_count_max is not None and entry.retry_count > self.retry_count_max:
            return False
        return True


class NotificationLogQueryOptions(BaseSchemaModel):
    """Paging and sorting for log queries. Pages are 1-based."""

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
    sort_by: SortField = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"

    @property
    def offset(self) -> int:
        """Number of matching rows skipped before this page."""
        return (self.page - 1) * self.limit


class NotificationLogPage(BaseSchemaModel):
    """One page of log query results."""

    logs: list[NotificationLogEntry]
    total: int
    page: int
    limit: int
    total_pages: int
