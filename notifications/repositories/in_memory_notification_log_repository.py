"""Process-local notification log store for tests and development."""

import threading
from collections.abc import Callable, Collection
from datetime import datetime
from typing import Any

from notifications.clock import Clock, SystemClock, generate_id
from notifications.enums import NotificationLogStatus
from notifications.repositories.notification_log_repository import (
    DEFAULT_CLEANUP_STATUSES,
    Mutation,
    NotificationLogRepository,
    merge_update,
    sort_entries,
)
from notifications.schemas.notification import (
    NotificationLogCreate,
    NotificationLogEntry,
    NotificationLogFilters,
    NotificationLogQueryOptions,
)


def _latest(entries: list[NotificationLogEntry]) -> NotificationLogEntry | None:
    # Insertion order breaks ties between logs created at the same instant
    if not entries:
        return None
    return max(enumerate(entries), key=lambda pair: (pair[1].created_at, pair[0]))[1]


class InMemoryNotificationLogRepository(NotificationLogRepository):
    """Dictionary-backed repository guarded by a single lock.

    Entries are copied on the way in and out so callers cannot mutate the
    store behind the lock.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        id_generator: Callable[[], str] = generate_id,
    ):
        """Initialize the repository.

        Args:
            clock: Source of timestamps; defaults to the system clock.
            id_generator: Produces ids for new logs.
        """
        super().__init__(clock or SystemClock())
        self.id_generator = id_generator
        self._logs: dict[str, NotificationLogEntry] = {}
        self._lock = threading.RLock()

    def _snapshot(self) -> list[NotificationLogEntry]:
        with self._lock:
            return [entry.model_copy(deep=True) for entry in self._logs.values()]

    def create(self, data: NotificationLogCreate) -> NotificationLogEntry:
        now = self.clock.now()
        entry = NotificationLogEntry(
            id=self.id_generator(),
            created_at=now,
            updated_at=now,
            **data.model_dump(),
        )
        with self._lock:
            self._logs[entry.id] = entry
        return entry.model_copy(deep=True)

    def find_by_id(self, log_id: str) -> NotificationLogEntry | None:
        with self._lock:
            entry = self._logs.get(log_id)
            return entry.model_copy(deep=True) if entry else None

    def find_by_job_id(self, job_id: str) -> list[NotificationLogEntry]:
        matches = [entry for entry in self._snapshot() if entry.job_id == job_id]
        return sorted(matches, key=lambda entry: entry.created_at)

    def find_by_metadata(self, key: str, value: Any) -> NotificationLogEntry | None:
        matches = [
            entry for entry in self._snapshot() if entry.metadata.get(key) == value
        ]
        return _latest(matches)

    def find_latest_for_recipient(self, to: str) -> NotificationLogEntry | None:
        matches = [
            entry for entry in self._snapshot() if entry.to.lower() == to.lower()
        ]
        return _latest(matches)

    def delete(self, log_id: str) -> bool:
        with self._lock:
            return self._logs.pop(log_id, None) is not None

    def find_all(
        self,
        filters: NotificationLogFilters | None = None,
        options: NotificationLogQueryOptions | None = None,
    ) -> tuple[list[NotificationLogEntry], int]:
        filters = filters or NotificationLogFilters()
        options = options or NotificationLogQueryOptions()
        matching = [entry for entry in self._snapshot() if filters.matches(entry)]
        ordered = sort_entries(matching, options)
        return ordered[options.offset : options.offset + options.limit], len(matching)

    def count(self, filters: NotificationLogFilters | None = None) -> int:
        filters = filters or NotificationLogFilters()
        return sum(1 for entry in self._snapshot() if filters.matches(entry))

    def find_failed_for_retry(self, limit: int) -> list[NotificationLogEntry]:
        now = self.clock.now()
        due = [
            entry
            for entry in self._snapshot()
            if entry.status == NotificationLogStatus.FAILED
            and (entry.next_retry_at is None or entry.next_retry_at <= now)
        ]
        due.sort(key=lambda entry: (entry.retry_count, entry.created_at))
        return due[:limit]

    def delete_old_logs(
        self,
        older_than: datetime,
        statuses: Collection[str] | None = None,
        limit: int | None = None,
    ) -> int:
        allowed = (
            {NotificationLogStatus(status).value for status in statuses}
            if statuses is not None
            else DEFAULT_CLEANUP_STATUSES
        )
        with self._lock:
            candidates = sorted(
                (
                    entry
                    for entry in self._logs.values()
                    if entry.created_at < older_than and entry.status in allowed
                ),
                key=lambda entry: entry.created_at,
            )
            if limit is not None:
                candidates = candidates[:limit]
            for entry in candidates:
                del self._logs[entry.id]
        return len(candidates)

    def _mutate(
        self,
        log_id: str,
        mutation: Mutation,
        expected_version: int | None = None,
    ) -> NotificationLogEntry | None:
        with self._lock:
            current = self._logs.get(log_id)
            if current is None:
                return None
            self._check_version(current, expected_version)
            patch = mutation(current.model_copy(deep=True))
            if patch is None:
                return current.model_copy(deep=True)
            updated = merge_update(current, patch, self.clock.now())
            self._logs[log_id] = updated
            return updated.model_copy(deep=True)

    def clear(self) -> None:
        """Remove every log."""
        with self._lock:
            self._logs.clear()
