"""Operator actions on notification logs and the delivery queue."""

from collections.abc import Callable, Collection
from datetime import timedelta
from typing import Any

import structlog

from notifications.clock import Clock, SystemClock, generate_id
from notifications.config.dispatch_config import DispatchConfig
from notifications.constants import (
    COMPLETED_JOB_RETENTION_SECONDS,
    DEFAULT_BULK_RETRY_LIMIT,
    DEFAULT_CLEANUP_DAYS,
    DEFAULT_CLEANUP_LIMIT,
    DEFAULT_STATS_DAYS,
    MAX_PAGE_SIZE,
)
from notifications.enums import (
    CANCELABLE_STATUSES,
    PENDING_STATUSES,
    RETRYABLE_STATUSES,
    NotificationLogStatus,
    NotificationType,
    Priority,
)
from notifications.exceptions import (
    InvalidStateTransitionError,
    NotFoundError,
    NotificationError,
    QueueUnavailableError,
    ValidationError,
)
from notifications.queues import DeliveryQueue
from notifications.repositories import DEFAULT_CLEANUP_STATUSES, NotificationLogRepository
from notifications.schemas.notification import (
    CancelResult,
    CleanupResult,
    NotificationLogEntry,
    NotificationLogFilters,
    NotificationLogQueryOptions,
    NotificationLogUpdate,
    NotificationStats,
    RetryBulkFilters,
    RetryBulkResult,
    RetryResult,
)
from notifications.schemas.queue import EnqueueOptions, QueueCounts
from notifications.services.notification_service import (
    queue_job_for,
    validate_notification_data,
)
from notifications.services.template_renderer import RenderedContent, TemplateRenderer

logger = structlog.get_logger(__name__)


class NotificationAdminService:
    """Retry, cancel, cleanup and statistics for operators.

    Status changes go through compare-and-set updates on the log store, so
    an operator action racing a worker or a webhook either wins cleanly or
    fails with ``InvalidStateTransitionError``.
    """

    def __init__(
        self,
        repository: NotificationLogRepository,
        queue: DeliveryQueue,
        renderer: TemplateRenderer,
        clock: Clock | None = None,
        config: DispatchConfig | None = None,
        id_generator: Callable[[], str] = generate_id,
    ):
        self.repository = repository
        self.queue = queue
        self.renderer = renderer
        self.clock = clock or SystemClock()
        self.config = config or DispatchConfig()
        self.id_generator = id_generator

    def _get(self, log_id: str) -> NotificationLogEntry:
        log = self.repository.find_by_id(log_id)
        if log is None:
            raise NotFoundError("Notification log", log_id)
        return log

    def _content_for(self, log: NotificationLogEntry) -> RenderedContent:
        payload = log.payload or {}
        if payload.get("subject") and (payload.get("html") or payload.get("text")):
            return RenderedContent(
                subject=payload["subject"],
                html=payload.get("html") or "",
                text=payload.get("text") or "",
            )
        template_vars = payload.get("templateVars")
        if template_vars is None:
            raise ValidationError.for_field(
                "payload",
                f"Notification log {log.id} has no stored content to resend",
                code="missing_content",
            )
        notification_type = NotificationType(log.type)
        data = validate_notification_data(notification_type, template_vars)
        return self.renderer.render(
            notification_type.template_id, data.template_variables()
        )

    def retry(self, log_id: str, requested_by: str | None = None) -> RetryResult:
        """Re-queue a FAILED or ERROR notification at high priority.

        Args:
            log_id: Log to retry.
            requested_by: Operator recorded in the retry history.

        Returns:
            The log id and the new job id.

        Raises:
            NotFoundError: If the log does not exist.
            InvalidStateTransitionError: If the log is not FAILED or ERROR.
            QueueUnavailableError: If the job could not be enqueued; the log
                is returned to its previous status.
        """
        log = self._get(log_id)
        if log.status not in RETRYABLE_STATUSES:
            raise InvalidStateTransitionError(
                log_id,
                log.status,
                "retry",
                detail="only FAILED or ERROR notifications can be retried",
            )
        content = self._content_for(log)

        previous_status = log.status
        attempt = {
            "attempted_at": self.clock.now().isoformat(),
            "requested_by": requested_by,
            "previous_status": previous_status,
        }
        self.repository.update_status(
            log_id,
            NotificationLogStatus.RETRYING,
            expected=RETRYABLE_STATUSES,
            metadata={"retry": attempt},
            append_metadata={"retry_history": attempt},
        )

        job_id = self.id_generator()
        self.repository.update(
            log_id, NotificationLogUpdate(job_id=job_id, next_retry_at=None)
        )
        try:
            job_id = self.queue.enqueue(
                queue_job_for(log, content, Priority.HIGH),
                EnqueueOptions(job_id=job_id),
            )
        except Exception as e:
            message = e.message if isinstance(e, NotificationError) else str(e)
            self.repository.update(
                log_id,
                NotificationLogUpdate(
                    status=previous_status,
                    job_id=log.job_id,
                    error_log=[f"Retry enqueue failed: {message}"],
                ),
            )
            logger.error("notification_retry_failed", log_id=log_id, error=message)
            raise

        logger.info(
            "notification_retry_queued",
            log_id=log_id,
            job_id=job_id,
            previous_status=previous_status,
            requested_by=requested_by,
        )
        return RetryResult(
            log_id=log_id, job_id=job_id, status=NotificationLogStatus.RETRYING
        )

    def retry_bulk(
        self,
        ids: list[str] | None = None,
        filters: RetryBulkFilters | None = None,
        limit: int = DEFAULT_BULK_RETRY_LIMIT,
        requested_by: str | None = None,
    ) -> RetryBulkResult:
        """Retry many logs; per-log failures are collected, not raised.

        Logs are taken from ``ids`` when given, otherwise from ``filters``
        (restricted to FAILED and ERROR), otherwise from the logs due for
        retry.
        """
        if ids:
            candidates = list(dict.fromkeys(ids))[:limit]
        elif filters is not None:
            candidates = [log.id for log in self._find_by_bulk_filters(filters, limit)]
        else:
            candidates = [log.id for log in self.repository.find_failed_for_retry(limit)]

        job_ids: list[str] = []
        errors: dict[str, str] = {}
        for log_id in candidates:
            try:
                job_ids.append(self.retry(log_id, requested_by).job_id)
            except NotificationError as e:
                errors[log_id] = e.message

        logger.info(
            "notification_bulk_retry_completed",
            candidates=len(candidates),
            retried=len(job_ids),
            failed=len(errors),
            requested_by=requested_by,
        )
        return RetryBulkResult(retried_count=len(job_ids), job_ids=job_ids, errors=errors)

    def _find_by_bulk_filters(
        self, filters: RetryBulkFilters, limit: int
    ) -> list[NotificationLogEntry]:
        retryable = {status.value for status in RETRYABLE_STATUSES}
        statuses = (
            [status for status in filters.status if status in retryable]
            if filters.status
            else sorted(retryable)
        )
        if not statuses:
            return []
        log_filters = NotificationLogFilters(
            status=statuses,
            type=filters.types,
            created_at_start=filters.start_date,
            created_at_end=filters.end_date,
        )
        found: list[NotificationLogEntry] = []
        page = 1
        while len(found) < limit:
            logs, total = self.repository.find_all(
                log_filters,
                NotificationLogQueryOptions(
                    page=page,
                    limit=MAX_PAGE_SIZE,
                    sort_by="created_at",
                    sort_order="asc",
                ),
            )
            found.extend(logs)
            if not logs or page * MAX_PAGE_SIZE >= total:
                break
            page += 1
        return found[:limit]

    def cancel(self, log_id: str, requested_by: str | None = None) -> CancelResult:
        """Cancel a notification that has not been delivered yet.

        Raises:
            NotFoundError: If the log does not exist.
            InvalidStateTransitionError: If the log is SENT, FAILED, ERROR
                or already CANCELED.
        """
        log = self._get(log_id)
        try:
            updated = self.repository.update_status(
                log_id,
                NotificationLogStatus.CANCELED,
                expected=CANCELABLE_STATUSES,
                metadata={
                    "canceled_at": self.clock.now().isoformat(),
                    "canceled_by": requested_by,
                },
            )
        except InvalidStateTransitionError as e:
            raise InvalidStateTransitionError(
                log_id,
                e.current_status,
                "cancel",
                detail="only QUEUED, SENDING or RETRYING notifications can be canceled",
            ) from e
        if updated is None:
            raise NotFoundError("Notification log", log_id)

        job_removed = False
        if log.job_id:
            try:
                job_removed = self.queue.remove(log.job_id)
            except QueueUnavailableError as e:
                logger.warning(
                    "notification_job_remove_failed",
                    log_id=log_id,
                    job_id=log.job_id,
                    error=e.message,
                )

        logger.info(
            "notification_canceled",
            log_id=log_id,
            job_id=log.job_id,
            job_removed=job_removed,
            requested_by=requested_by,
        )
        return CancelResult(canceled=True, log_id=log_id, job_removed=job_removed)

    def cleanup(
        self,
        older_than_days: int = DEFAULT_CLEANUP_DAYS,
        include_statuses: Collection[str] | None = None,
        exclude_statuses: Collection[str] | None = None,
        limit: int = DEFAULT_CLEANUP_LIMIT,
    ) -> CleanupResult:
        """Delete logs older than the retention window.

        Statuses default to everything except FAILED when neither
        ``include_statuses`` nor ``exclude_statuses`` is given; otherwise
        they are the included statuses (all when omitted) minus the
        excluded ones.
        """
        if include_statuses is None and exclude_statuses is None:
            statuses = set(DEFAULT_CLEANUP_STATUSES)
        else:
            included = (
                {NotificationLogStatus(status).value for status in include_statuses}
                if include_statuses is not None
                else {status.value for status in NotificationLogStatus}
            )
            excluded = {
                NotificationLogStatus(status).value for status in exclude_statuses or []
            }
            statuses = included - excluded

        cutoff = self.clock.now() - timedelta(days=older_than_days)
        deleted = (
            self.repository.delete_old_logs(cutoff, statuses, limit) if statuses else 0
        )
        logger.info(
            "notification_logs_cleaned_up",
            deleted_count=deleted,
            cutoff=cutoff.isoformat(),
            statuses=sorted(statuses),
        )
        return CleanupResult(deleted_count=deleted, cutoff=cutoff, statuses=sorted(statuses))

    def stats(self, since_days: int = DEFAULT_STATS_DAYS) -> NotificationStats:
        """Delivery statistics for logs created in the trailing window."""
        since = self.clock.now() - timedelta(days=since_days)

        def count(*statuses: Any) -> int:
            return self.repository.count(
                NotificationLogFilters(
                    status=list(statuses) or None, created_at_start=since
                )
            )

        total = count()
        sent = count(NotificationLogStatus.SENT)
        failed = count(NotificationLogStatus.FAILED, NotificationLogStatus.ERROR)
        pending = count(*sorted(PENDING_STATUSES, key=lambda status: status.value))
        canceled = count(NotificationLogStatus.CANCELED)
        return NotificationStats(
            total=total,
            sent=sent,
            failed=failed,
            pending=pending,
            canceled=canceled,
            delivery_rate=round(sent / total * 100, 2) if total else 0.0,
            period_days=since_days,
            since=since,
        )

    def queue_metrics(self) -> dict[str, QueueCounts]:
        return self.queue.metrics()

    def retry_failed_jobs(self) -> int:
        """Move every failed queue job back to waiting."""
        return self.queue.retry_failed()

    def clean_completed_jobs(
        self,
        older_than: timedelta = timedelta(seconds=COMPLETED_JOB_RETENTION_SECONDS),
        limit: int = DEFAULT_CLEANUP_LIMIT,
    ) -> int:
        """Drop completed queue jobs past the retention window."""
        return self.queue.clean_completed(older_than, limit)
