"""Read and delete access to notification log history."""

import math

import structlog

from notifications.exceptions import NotFoundError
from notifications.repositories import NotificationLogRepository
from notifications.schemas.notification import (
    NotificationLogEntry,
    NotificationLogFilters,
    NotificationLogPage,
    NotificationLogQueryOptions,
)

logger = structlog.get_logger(__name__)


class NotificationLogService:
    """Paged queries and single-log lookups over the log store."""

    def __init__(self, repository: NotificationLogRepository):
        self.repository = repository

    def query(
        self,
        filters: NotificationLogFilters | None = None,
        options: NotificationLogQueryOptions | None = None,
    ) -> NotificationLogPage:
        """Return one page of logs matching the filters.

        Args:
            filters: Filters to apply; all given filters must match.
            options: Page, page size and sort order.

        Returns:
            The page together with the total match count.
        """
        options = options or NotificationLogQueryOptions()
        logs, total = self.repository.find_all(filters, options)
        return NotificationLogPage(
            logs=logs,
            total=total,
            page=options.page,
            limit=options.limit,
            total_pages=math.ceil(total / options.limit) if total else 0,
        )

    def get(self, log_id: str) -> NotificationLogEntry:
        log = self.repository.find_by_id(log_id)
        if log is None:
            raise NotFoundError("Notification log", log_id)
        return log

    def delete(self, log_id: str) -> None:
        """Permanently delete a log.

        Raises:
            NotFoundError: If the log does not exist.
        """
        if not self.repository.delete(log_id):
            raise NotFoundError("Notification log", log_id)
        logger.info("notification_log_deleted", log_id=log_id)

    def history_for_recipient(
        self, to: str, options: NotificationLogQueryOptions | None = None
    ) -> NotificationLogPage:
        """Page through every log sent to one address."""
        return self.query(NotificationLogFilters(to=to), options)
