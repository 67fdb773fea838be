"""Notification log repository contract and shared mutation rules.

Every mutation goes through ``_mutate``, which implementations must run
serialized per log id (a lock, or a row lock inside a transaction). The
state-changing operations are built on it here so that all backends apply
the same rules:

- ``metadata`` patches are shallow-merged, never replace the stored dict.
- ``error_log`` patches are appended, never replace the stored list.
- ``retry_count`` never decreases.
- ``sent_at`` is set once; a log reaching SENT without it gets ``now``.
- ``updated_at`` is refreshed and ``version`` incremented on every change.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Collection, Iterable
from datetime import datetime
from typing import Any

import structlog

from notifications.clock import Clock
from notifications.enums import NotificationLogStatus
from notifications.exceptions import ConcurrentUpdateError, InvalidStateTransitionError
from notifications.schemas.notification import (
    NotificationLogCreate,
    NotificationLogEntry,
    NotificationLogFilters,
    NotificationLogQueryOptions,
    NotificationLogUpdate,
)
from notifications.services.retry_policy import RetryPolicy

logger = structlog.get_logger(__name__)

Mutation = Callable[[NotificationLogEntry], NotificationLogUpdate | None]

# Retention sweeps keep failures by default so unresolved problems stay visible
DEFAULT_CLEANUP_STATUSES = frozenset(
    status.value
    for status in NotificationLogStatus
    if status != NotificationLogStatus.FAILED
)


def merge_update(
    current: NotificationLogEntry,
    patch: NotificationLogUpdate,
    now: datetime,
) -> NotificationLogEntry:
    """Apply a patch to a log entry with merge semantics.

    Args:
        current: The stored entry.
        patch: Fields to change; unset fields are ignored.
        now: Mutation time.

    Returns:
        A new entry with the patch applied.
    """
    data = current.model_dump()
    for field, value in patch.model_dump(exclude_unset=True).items():
        if field == "metadata":
            data["metadata"] = {**data["metadata"], **(value or {})}
        elif field == "error_log":
            data["error_log"] = [*data["error_log"], *(value or [])]
        elif field == "retry_count":
            if value is not None:
                data["retry_count"] = max(data["retry_count"], value)
        elif field == "sent_at":
            if data["sent_at"] is None and value is not None:
                data["sent_at"] = value
        elif field in {"status", "to", "payload"}:
            if value is not None:
                data[field] = value
        else:
            data[field] = value

    if data["status"] == NotificationLogStatus.SENT and data["sent_at"] is None:
        data["sent_at"] = now
    data["updated_at"] = now
    data["version"] = current.version + 1
    return NotificationLogEntry.model_validate(data)


def metadata_changes(
    current: NotificationLogEntry,
    metadata: dict[str, Any] | None = None,
    append: dict[str, Any] | None = None,
    nested: dict[str, dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Metadata patch derived from the stored metadata.

    Args:
        current: The stored entry, read under the per-log lock.
        metadata: Top-level keys to set.
        append: Items appended to the list stored under each key.
        nested: Dicts shallow-merged into the dict stored under each key.

    Returns:
        The keys to merge into the stored metadata.
    """
    changes = dict(metadata or {})
    for key, item in (append or {}).items():
        changes[key] = [*current.metadata.get(key, []), item]
    for key, values in (nested or {}).items():
        changes[key] = {**current.metadata.get(key, {}), **values}
    return changes


def sort_entries(
    entries: Iterable[NotificationLogEntry],
    options: NotificationLogQueryOptions,
) -> list[NotificationLogEntry]:
    """Sort entries by the requested field; entries missing it always go last."""
    present = []
    missing = []
    for entry in entries:
        (missing if getattr(entry, options.sort_by) is None else present).append(entry)
    present.sort(
        key=lambda entry: getattr(entry, options.sort_by),
        reverse=options.sort_order == "desc",
    )
    return present + missing


class NotificationLogRepository(ABC):
    """Storage contract for notification logs.

    Lookups return detached ``NotificationLogEntry`` copies; callers never
    hold references into the store.
    """

    def __init__(self, clock: Clock):
        """Initialize the repository.

        Args:
            clock: Source of mutation timestamps.
        """
        self.clock = clock

    @abstractmethod
    def create(self, data: NotificationLogCreate) -> NotificationLogEntry:
        """Persist a new log entry and return it with id and timestamps."""

    @abstractmethod
    def find_by_id(self, log_id: str) -> NotificationLogEntry | None:
        """Return the log with the given id, if any."""

    @abstractmethod
    def find_by_job_id(self, job_id: str) -> list[NotificationLogEntry]:
        """Return every log attached to a queue job, oldest first."""

    @abstractmethod
    def find_by_metadata(self, key: str, value: Any) -> NotificationLogEntry | None:
        """Return the most recently created log whose ``metadata[key]`` equals value."""

    @abstractmethod
    def find_latest_for_recipient(self, to: str) -> NotificationLogEntry | None:
        """Return the most recently created log for a recipient address."""

    @abstractmethod
    def delete(self, log_id: str) -> bool:
        """Delete a log; returns False when it did not exist."""

    @abstractmethod
    def find_all(
        self,
        filters: NotificationLogFilters | None = None,
        options: NotificationLogQueryOptions | None = None,
    ) -> tuple[list[NotificationLogEntry], int]:
        """Filter, then sort, then paginate.

        Returns:
            The requested page and the total number of matching logs.
        """

    @abstractmethod
    def count(self, filters: NotificationLogFilters | None = None) -> int:
        """Count logs matching the filters."""

    @abstractmethod
    def find_failed_for_retry(self, limit: int) -> list[NotificationLogEntry]:
        """FAILED logs whose retry time is unset or past.

        Ordered by ascending retry count, then ascending creation time.
        """

    @abstractmethod
    def delete_old_logs(
        self,
        older_than: datetime,
        statuses: Collection[str] | None = None,
        limit: int | None = None,
    ) -> int:
        """Delete logs created before ``older_than`` whose status is in ``statuses``.

        ``statuses`` defaults to every status except FAILED. Oldest logs are
        deleted first, up to ``limit``.

        Returns:
            Number of deleted logs.
        """

    @abstractmethod
    def _mutate(
        self,
        log_id: str,
        mutation: Mutation,
        expected_version: int | None = None,
    ) -> NotificationLogEntry | None:
        """Read, patch and write one log atomically.

        ``mutation`` receives the current entry and returns a patch, or None
        for no change; exceptions it raises abort the mutation.

        Returns:
            The updated entry, or None when the log does not exist.
        """

    def _check_version(
        self, current: NotificationLogEntry, expected_version: int | None
    ) -> None:
        if expected_version is not None and current.version != expected_version:
            raise ConcurrentUpdateError(current.id, current.status, expected_version)

    def update(
        self,
        log_id: str,
        patch: NotificationLogUpdate,
        expected_version: int | None = None,
    ) -> NotificationLogEntry | None:
        """Apply a partial update with merge semantics.

        Args:
            log_id: Log to update.
            patch: Fields to change.
            expected_version: When given, the update fails with
                ``ConcurrentUpdateError`` unless the stored version matches.

        Returns:
            The updated entry, or None when the log does not exist.
        """
        return self._mutate(log_id, lambda _current: patch, expected_version)

    def update_status(
        self,
        log_id: str,
        status: NotificationLogStatus,
        error: str | None = None,
        expected: Collection[str] | None = None,
        metadata: dict[str, Any] | None = None,
        append_metadata: dict[str, Any] | None = None,
        next_retry_at: datetime | None = None,
        job_id: str | None = None,
    ) -> NotificationLogEntry | None:
        """Set a log's status, optionally as a compare-and-set.

        Args:
            log_id: Log to update.
            status: New status.
            error: Error message appended to the error log.
            expected: Statuses the log must currently be in.
            metadata: Metadata merged into the log.
            append_metadata: Items appended to the metadata list under each key.
            next_retry_at: Retry time to record with the new status.
            job_id: Queue job now responsible for the log.

        Returns:
            The updated entry, or None when the log does not exist.

        Raises:
            InvalidStateTransitionError: If ``expected`` is given and the
                current status is not in it.
        """

        def mutation(current: NotificationLogEntry) -> NotificationLogUpdate:
            if expected is not None and current.status not in expected:
                raise InvalidStateTransitionError(
                    log_id, current.status, f"move to {NotificationLogStatus(status).value}"
                )
            changes: dict[str, Any] = {"status": status}
            if error:
                changes["error_log"] = [error]
            if metadata or append_metadata:
                changes["metadata"] = metadata_changes(
                    current, metadata=metadata, append=append_metadata
                )
            if next_retry_at is not None:
                changes["next_retry_at"] = next_retry_at
            if job_id is not None:
                changes["job_id"] = job_id
            return NotificationLogUpdate(**changes)

        return self._mutate(log_id, mutation)

    def merge_metadata(
        self,
        log_id: str,
        metadata: dict[str, Any] | None = None,
        append: dict[str, Any] | None = None,
        nested: dict[str, dict[str, Any]] | None = None,
    ) -> NotificationLogEntry | None:
        """Update metadata that depends on its stored value.

        Lists and nested dicts are extended from the value read inside the
        serialized mutation, so concurrent callers never drop each other's
        entries.

        Args:
            log_id: Log to update.
            metadata: Top-level keys to set.
            append: Items appended to the list stored under each key.
            nested: Dicts shallow-merged into the dict stored under each key.

        Returns:
            The updated entry, or None when the log does not exist.
        """

        def mutation(current: NotificationLogEntry) -> NotificationLogUpdate:
            return NotificationLogUpdate(
                metadata=metadata_changes(
                    current, metadata=metadata, append=append, nested=nested
                )
            )

        return self._mutate(log_id, mutation)

    def mark_as_sent(
        self, log_id: str, metadata: dict[str, Any] | None = None
    ) -> NotificationLogEntry | None:
        """Mark a log SENT; ``sent_at`` keeps its first value if already set."""

        def mutation(_current: NotificationLogEntry) -> NotificationLogUpdate:
            return NotificationLogUpdate(
                status=NotificationLogStatus.SENT,
                sent_at=self.clock.now(),
                next_retry_at=None,
                metadata=metadata or {},
            )

        return self._mutate(log_id, mutation)

    def record_failed_attempt(
        self,
        log_id: str,
        error: str,
        max_retries: int,
        base_delay_ms: int,
        permanent: bool = False,
    ) -> NotificationLogEntry | None:
        """Record a failed delivery attempt and decide what happens next.

        The error is always appended. A permanent failure ends in FAILED
        without consuming retry budget. A transient failure increments
        ``retry_count`` (never beyond ``max_retries + 1``) and ends in
        RETRYING with ``next_retry_at = now + base_delay_ms * 2^(retry_count-1)``
        while ``retry_count <= max_retries``, otherwise in FAILED.

        Args:
            log_id: Log that failed.
            error: Error message.
            max_retries: Business-level retry budget.
            base_delay_ms: Delay before the first retry.
            permanent: Skip retry scheduling entirely.

        Returns:
            The updated entry, or None when the log does not exist.
        """
        policy = RetryPolicy(max_retries=max_retries, base_delay_ms=base_delay_ms)

        def mutation(current: NotificationLogEntry) -> NotificationLogUpdate:
            if permanent:
                return NotificationLogUpdate(
                    status=NotificationLogStatus.FAILED,
                    error_log=[error],
                    next_retry_at=None,
                )
            retry_count = min(current.retry_count + 1, max_retries + 1)
            if policy.allows(retry_count):
                return NotificationLogUpdate(
                    status=NotificationLogStatus.RETRYING,
                    error_log=[error],
                    retry_count=retry_count,
                    next_retry_at=policy.next_retry_at(self.clock.now(), retry_count),
                )
            return NotificationLogUpdate(
                status=NotificationLogStatus.FAILED,
                error_log=[error],
                retry_count=retry_count,
                next_retry_at=None,
            )

        entry = self._mutate(log_id, mutation)
        if entry is not None:
            logger.info(
                "notification_log_failure_recorded",
                log_id=log_id,
                status=entry.status,
                retry_count=entry.retry_count,
                next_retry_at=entry.next_retry_at.isoformat()
                if entry.next_retry_at
                else None,
                permanent=permanent,
            )
        return entry
