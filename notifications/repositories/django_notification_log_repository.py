"""Relational notification log store backed by the NotificationLog model."""

import re
import uuid
from collections.abc import Callable, Collection
from datetime import datetime
from typing import Any

from django.db import transaction
from django.db.models import F, Q, QuerySet

from notifications.clock import Clock, SystemClock, generate_id
from notifications.enums import NotificationLogStatus
from notifications.models import NotificationLog
from notifications.repositories.notification_log_repository import (
    DEFAULT_CLEANUP_STATUSES,
    Mutation,
    NotificationLogRepository,
    merge_update,
)
from notifications.schemas.notification import (
    NotificationLogCreate,
    NotificationLogEntry,
    NotificationLogFilters,
    NotificationLogQueryOptions,
)

MUTABLE_FIELDS = [
    "to",
    "payload",
    "status",
    "updated_at",
    "sent_at",
    "error_log",
    "retry_count",
    "next_retry_at",
    "job_id",
    "metadata",
    "version",
]

_METADATA_KEY = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _to_entry(row: NotificationLog) -> NotificationLogEntry:
    return NotificationLogEntry(
        id=str(row.id),
        to=row.to,
        type=row.type,
        payload=row.payload or {},
        status=row.status,
        created_at=row.created_at,
        updated_at=row.updated_at,
        sent_at=row.sent_at,
        error_log=list(row.error_log or []),
        retry_count=row.retry_count,
        next_retry_at=row.next_retry_at,
        job_id=row.job_id,
        metadata=row.metadata or {},
        version=row.version,
    )


def _parse_pk(log_id: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(log_id))
    except ValueError:
        return None


def apply_filters(
    queryset: QuerySet[NotificationLog], filters: NotificationLogFilters
) -> QuerySet[NotificationLog]:
    """Translate log filters into queryset lookups.

    Args:
        queryset: Base queryset.
        filters: Filters to apply; unset filters are ignored.

    Returns:
        The filtered queryset.
    """
    if filters.status:
        queryset = queryset.filter(status__in=filters.status)
    if filters.type:
        queryset = queryset.filter(type__in=filters.type)
    if filters.to:
        queryset = queryset.filter(to__iexact=filters.to)
    if filters.job_id:
        queryset = queryset.filter(job_id=filters.job_id)
    if filters.created_at_start:
        queryset = queryset.filter(created_at__gte=filters.created_at_start)
    if filters.created_at_end:
        queryset = queryset.filter(created_at__lte=filters.created_at_end)
    if filters.sent_at_start:
        queryset = queryset.filter(sent_at__gte=filters.sent_at_start)
    if filters.sent_at_end:
        queryset = queryset.filter(sent_at__lte=filters.sent_at_end)
    if filters.retry_count_min is not None:
        queryset = queryset.filter(retry_count__gte=filters.retry_count_min)
    if filters.retry_count_max is not None:
        queryset = queryset.filter(retry_count__lte=filters.retry_count_max)
    return queryset


class DjangoNotificationLogRepository(NotificationLogRepository):
    """Repository persisting logs through the Django ORM.

    Mutations lock the row with ``select_for_update`` inside a transaction,
    which serializes concurrent webhook, worker and operator writes to the
    same log.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        id_generator: Callable[[], str] = generate_id,
    ):
        """Initialize the repository.

        Args:
            clock: Source of timestamps; defaults to the system clock.
            id_generator: Produces UUID strings for new logs.
        """
        super().__init__(clock or SystemClock())
        self.id_generator = id_generator

    def create(self, data: NotificationLogCreate) -> NotificationLogEntry:
        now = self.clock.now()
        row = NotificationLog.objects.create(
            id=uuid.UUID(self.id_generator()),
            created_at=now,
            updated_at=now,
            **data.model_dump(),
        )
        return _to_entry(row)

    def find_by_id(self, log_id: str) -> NotificationLogEntry | None:
        pk = _parse_pk(log_id)
        if pk is None:
            return None
        row = NotificationLog.objects.filter(pk=pk).first()
        return _to_entry(row) if row else None

    def find_by_job_id(self, job_id: str) -> list[NotificationLogEntry]:
        rows = NotificationLog.objects.filter(job_id=job_id).order_by("created_at")
        return [_to_entry(row) for row in rows]

    def find_by_metadata(self, key: str, value: Any) -> NotificationLogEntry | None:
        if not _METADATA_KEY.match(key):
            raise ValueError(f"Unsupported metadata key: {key!r}")
        row = (
            NotificationLog.objects.filter(**{f"metadata__{key}": value})
            .order_by("-created_at")
            .first()
        )
        return _to_entry(row) if row else None

    def find_latest_for_recipient(self, to: str) -> NotificationLogEntry | None:
        row = (
            NotificationLog.objects.filter(to__iexact=to)
            .order_by("-created_at")
            .first()
        )
        return _to_entry(row) if row else None

    def delete(self, log_id: str) -> bool:
        pk = _parse_pk(log_id)
        if pk is None:
            return False
        deleted, _ = NotificationLog.objects.filter(pk=pk).delete()
        return deleted > 0

    def find_all(
        self,
        filters: NotificationLogFilters | None = None,
        options: NotificationLogQueryOptions | None = None,
    ) -> tuple[list[NotificationLogEntry], int]:
        options = options or NotificationLogQueryOptions()
        queryset = apply_filters(
            NotificationLog.objects.all(), filters or NotificationLogFilters()
        )
        total = queryset.count()
        sort_field = F(options.sort_by)
        ordering = (
            sort_field.desc(nulls_last=True)
            if options.sort_order == "desc"
            else sort_field.asc(nulls_last=True)
        )
        page = queryset.order_by(ordering, "created_at", "id")[
            options.offset : options.offset + options.limit
        ]
        return [_to_entry(row) for row in page], total

    def count(self, filters: NotificationLogFilters | None = None) -> int:
        return apply_filters(
            NotificationLog.objects.all(), filters or NotificationLogFilters()
        ).count()

    def find_failed_for_retry(self, limit: int) -> list[NotificationLogEntry]:
        now = self.clock.now()
        rows = (
            NotificationLog.objects.filter(status=NotificationLogStatus.FAILED.value)
            .filter(Q(next_retry_at__isnull=True) | Q(next_retry_at__lte=now))
            .order_by("retry_count", "created_at")[:limit]
        )
        return [_to_entry(row) for row in rows]

    def delete_old_logs(
        self,
        older_than: datetime,
        statuses: Collection[str] | None = None,
        limit: int | None = None,
    ) -> int:
        allowed = (
            [NotificationLogStatus(status).value for status in statuses]
            if statuses is not None
            else sorted(DEFAULT_CLEANUP_STATUSES)
        )
        ids = NotificationLog.objects.filter(
            created_at__lt=older_than, status__in=allowed
        ).order_by("created_at").values_list("id", flat=True)
        if limit is not None:
            ids = ids[:limit]
        deleted, _ = NotificationLog.objects.filter(id__in=list(ids)).delete()
        return deleted

    def _mutate(
        self,
        log_id: str,
        mutation: Mutation,
        expected_version: int | None = None,
    ) -> NotificationLogEntry | None:
        pk = _parse_pk(log_id)
        if pk is None:
            return None
        with transaction.atomic():
            row = NotificationLog.objects.select_for_update().filter(pk=pk).first()
            if row is None:
                return None
            current = _to_entry(row)
            self._check_version(current, expected_version)
            patch = mutation(current.model_copy(deep=True))
            if patch is None:
                return current
            updated = merge_update(current, patch, self.clock.now())
            for field in MUTABLE_FIELDS:
                setattr(row, field, getattr(updated, field))
            row.save(update_fields=MUTABLE_FIELDS)
            return updated
