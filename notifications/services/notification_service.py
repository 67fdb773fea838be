"""Notification dispatch: validate, render, log and enqueue per recipient.

A dispatch request is checked in full (type, data, channel, template and
queue availability) before anything is written, so a rejected request has
no side effects. Recipients are then processed independently: one failing
recipient is reported in the result without affecting the others.
"""

import threading
import time
from collections.abc import Callable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import datetime
from typing import Any

import pydantic
import structlog

from notifications.clock import Clock, SystemClock, generate_id
from notifications.config.dispatch_config import DispatchConfig
from notifications.enums import (
    DELIVERABLE_CHANNELS,
    NotificationLogStatus,
    NotificationType,
    OverallJobStatus,
    Priority,
)
from notifications.exceptions import (
    NotFoundError,
    NotificationError,
    QueueUnavailableError,
    ValidationError,
)
from notifications.exceptions.handlers import format_pydantic_errors
from notifications.queues import DeliveryQueue
from notifications.repositories import NotificationLogRepository
from notifications.schemas.notification import (
    DispatchRequest,
    DispatchResult,
    JobStatusResponse,
    NotificationLogCreate,
    NotificationLogEntry,
    NotificationLogUpdate,
)
from notifications.schemas.notification.data import NotificationData, data_schema_for
from notifications.schemas.queue import EnqueueOptions, QueueJob
from notifications.services.template_renderer import RenderedContent, TemplateRenderer

logger = structlog.get_logger(__name__)

_POLL_INTERVAL = 0.05


def build_payload(
    content: RenderedContent,
    template_vars: dict[str, Any],
    cc: list[str] | None = None,
    bcc: list[str] | None = None,
    reply_to: str | None = None,
    from_address: str | None = None,
) -> dict[str, Any]:
    """Log payload holding everything needed to resend the message."""
    return {
        "subject": content.subject,
        "html": content.html,
        "text": content.text,
        "templateVars": template_vars,
        "cc": list(cc or []),
        "bcc": list(bcc or []),
        "replyTo": reply_to,
        "from": from_address,
    }


def queue_job_for(
    log: NotificationLogEntry,
    content: RenderedContent,
    priority: Priority | str = Priority.NORMAL,
    scheduled_time: datetime | None = None,
) -> QueueJob:
    """Build the queue job delivering a log's message."""
    payload = log.payload or {}
    return QueueJob(
        to=log.to,
        cc=payload.get("cc") or [],
        bcc=payload.get("bcc") or [],
        from_address=payload.get("from"),
        reply_to=payload.get("replyTo"),
        subject=content.subject,
        html=content.html,
        text=content.text,
        priority=priority,
        scheduled_time=scheduled_time,
        metadata={"log_id": log.id, "notification_type": log.type},
    )


def validate_notification_data(
    notification_type: NotificationType, data: dict[str, Any]
) -> NotificationData:
    """Validate request data against the type's schema.

    Raises:
        ValidationError: With one field error per invalid data field.
    """
    try:
        return data_schema_for(notification_type).model_validate(data)
    except pydantic.ValidationError as e:
        errors = [
            {**error, "field": f"data.{error['field']}" if error["field"] else "data"}
            for error in format_pydantic_errors(e)
        ]
        raise ValidationError(
            f"Invalid data for notification type {notification_type.value}",
            errors=errors,
        ) from e


def overall_status(logs: list[NotificationLogEntry]) -> OverallJobStatus:
    """Aggregate per-log statuses into one job status."""
    statuses = {NotificationLogStatus(log.status) for log in logs}
    if statuses == {NotificationLogStatus.SENT}:
        return OverallJobStatus.COMPLETED
    if NotificationLogStatus.RETRYING in statuses:
        return OverallJobStatus.RETRYING
    if NotificationLogStatus.SENDING in statuses:
        return OverallJobStatus.ACTIVE
    if NotificationLogStatus.QUEUED in statuses:
        return OverallJobStatus.WAITING
    if statuses & {NotificationLogStatus.FAILED, NotificationLogStatus.ERROR}:
        return OverallJobStatus.FAILED
    if statuses == {NotificationLogStatus.CANCELED}:
        return OverallJobStatus.CANCELED
    return OverallJobStatus.COMPLETED


class _RecipientFailure(Exception):
    def __init__(self, recipient: str, message: str):
        self.recipient = recipient
        self.message = message
        super().__init__(message)


class NotificationDispatchService:
    """Fans a notification request out to per-recipient logs and jobs."""

    def __init__(
        self,
        repository: NotificationLogRepository,
        queue: DeliveryQueue,
        renderer: TemplateRenderer,
        clock: Clock | None = None,
        config: DispatchConfig | None = None,
        id_generator: Callable[[], str] = generate_id,
        release_thread_resources: Callable[[], None] | None = None,
    ):
        """Initialize the service.

        Args:
            repository: Notification log store.
            queue: Delivery queue receiving one job per recipient.
            renderer: Template renderer.
            clock: Source of timestamps; defaults to the system clock.
            config: Concurrency, timeout and queue settings.
            id_generator: Produces queue job ids.
            release_thread_resources: Called at the end of every fan-out
                task, for example to close per-thread database connections.
        """
        self.repository = repository
        self.queue = queue
        self.renderer = renderer
        self.clock = clock or SystemClock()
        self.config = config or DispatchConfig()
        self.id_generator = id_generator
        self.release_thread_resources = release_thread_resources

    def dispatch(self, request: DispatchRequest | dict[str, Any]) -> DispatchResult:
        """Validate a request and queue one delivery per recipient.

        Args:
            request: The dispatch request, parsed or raw.

        Returns:
            Job and log ids of the recipients that were queued plus one
            error string per recipient that was not.

        Raises:
            ValidationError: Malformed request, unknown type, invalid data
                or an undeliverable channel.
            TemplateNotFoundError: No template for the type.
            QueueUnavailableError: The queue is down and degraded mode is
                not allowed.
        """
        if not isinstance(request, DispatchRequest):
            try:
                request = DispatchRequest.model_validate(request)
            except pydantic.ValidationError as e:
                raise ValidationError(
                    "Invalid notification request", errors=format_pydantic_errors(e)
                ) from e

        try:
            notification_type = NotificationType(request.type)
        except ValueError as e:
            raise ValidationError.for_field(
                "type", f"Unknown notification type: {request.type}", code="unknown_type"
            ) from e

        if request.channel not in DELIVERABLE_CHANNELS:
            raise ValidationError.for_field(
                "channel",
                f"Channel {request.channel} is not supported; use email",
                code="unsupported_channel",
            )

        data = validate_notification_data(notification_type, request.data)
        template = self.renderer.get_template(notification_type.template_id)

        if not self.queue.is_available():
            if not self.config.degraded_queue_allowed:
                raise QueueUnavailableError("Delivery queue is unavailable")
            logger.warning("delivery_queue_degraded", notification_type=notification_type.value)

        variables = data.template_variables()
        recipients = [str(address) for address in request.recipients]

        def send_one(recipient: str) -> tuple[str, str]:
            return self._dispatch_recipient(
                recipient, notification_type, template.id, variables, request
            )

        results = self._fan_out(recipients, send_one)

        result = DispatchResult(
            success=not results["errors"],
            job_ids=results["job_ids"],
            log_ids=results["log_ids"],
            errors=results["errors"],
        )
        logger.info(
            "notification_dispatched",
            notification_type=notification_type.value,
            recipients=len(recipients),
            queued=len(result.job_ids),
            failed=len(result.errors),
            source=request.source,
        )
        return result

    def _dispatch_recipient(
        self,
        recipient: str,
        notification_type: NotificationType,
        template_id: str,
        variables: dict[str, Any],
        request: DispatchRequest,
    ) -> tuple[str, str]:
        try:
            content = self.renderer.render(template_id, variables)
            job_id = self.id_generator()
            log = self.repository.create(
                NotificationLogCreate(
                    to=recipient,
                    type=notification_type,
                    payload=build_payload(
                        content,
                        request.data,
                        cc=request.cc,
                        bcc=request.bcc,
                        reply_to=request.reply_to,
                        from_address=self.config.default_from,
                    ),
                    status=NotificationLogStatus.QUEUED,
                    job_id=job_id,
                    metadata={
                        "source": request.source,
                        "requested_by": request.requested_by,
                        "priority": request.priority,
                        "channel": request.channel,
                        "scheduled_time": request.scheduled_time.isoformat()
                        if request.scheduled_time
                        else None,
                        "cc": list(request.cc),
                        "bcc": list(request.bcc),
                        "reply_to": request.reply_to,
                    },
                )
            )
        except NotificationError as e:
            raise _RecipientFailure(recipient, e.message) from e

        try:
            queued_id = self.queue.enqueue(
                queue_job_for(log, content, request.priority, request.scheduled_time),
                EnqueueOptions(job_id=job_id),
            )
            if queued_id != job_id:
                self.repository.update(log.id, NotificationLogUpdate(job_id=queued_id))
        except Exception as e:
            message = e.message if isinstance(e, NotificationError) else str(e)
            self.repository.update_status(
                log.id, NotificationLogStatus.ERROR, error=f"Failed to queue: {message}"
            )
            raise _RecipientFailure(recipient, message) from e

        logger.info(
            "notification_queued",
            log_id=log.id,
            job_id=queued_id,
            recipient=recipient,
            notification_type=notification_type.value,
        )
        return log.id, queued_id

    def _fan_out(
        self,
        recipients: list[str],
        send_one: Callable[[str], tuple[str, str]],
    ) -> dict[str, list[str]]:
        results: dict[str, list[str]] = {"job_ids": [], "log_ids": [], "errors": []}

        def collect(recipient: str, future_result: Callable[[], tuple[str, str]]) -> None:
            try:
                log_id, job_id = future_result()
            except _RecipientFailure as e:
                results["errors"].append(
                    f"Failed to queue notification for {recipient}: {e.message}"
                )
                return
            except Exception as e:
                logger.exception("notification_dispatch_failed", recipient=recipient)
                results["errors"].append(
                    f"Failed to queue notification for {recipient}: {e}"
                )
                return
            results["log_ids"].append(log_id)
            results["job_ids"].append(job_id)

        timeout = self.config.recipient_timeout
        started: dict[int, float] = {}
        lock = threading.Lock()

        def run(index: int, recipient: str) -> tuple[str, str]:
            with lock:
                started[index] = time.monotonic()
            try:
                return send_one(recipient)
            finally:
                if self.release_thread_resources is not None:
                    self.release_thread_resources()

        executor = ThreadPoolExecutor(
            max_workers=max(1, min(self.config.concurrency, len(recipients))),
            thread_name_prefix="dispatch",
        )
        try:
            pending: dict[Future, int] = {
                executor.submit(run, index, recipient): index
                for index, recipient in enumerate(recipients)
            }
            while pending:
                done, _ = wait(
                    pending, timeout=_POLL_INTERVAL, return_when=FIRST_COMPLETED
                )
                # Submission order keeps results stable for a single worker
                for future in [future for future in pending if future in done]:
                    collect(recipients[pending.pop(future)], future.result)

                now = time.monotonic()
                with lock:
                    expired = [
                        future
                        for future, index in pending.items()
                        if index in started and now - started[index] > timeout
                    ]
                for future in expired:
                    recipient = recipients[pending.pop(future)]
                    results["errors"].append(
                        f"Failed to queue notification for {recipient}: "
                        f"timed out after {timeout:g}s"
                    )
                    logger.warning(
                        "notification_dispatch_timed_out",
                        recipient=recipient,
                        timeout_seconds=timeout,
                    )
                    future.add_done_callback(self._mark_orphan_error)
        finally:
            executor.shutdown(wait=False)
        return results

    def _mark_orphan_error(self, future: Future) -> None:
        # A timed-out recipient that later finished must not be delivered
        if future.cancelled() or future.exception() is not None:
            return
        log_id, job_id = future.result()
        self.queue.remove(job_id)
        self.repository.update_status(
            log_id,
            NotificationLogStatus.ERROR,
            error="Dispatch timed out before the notification was queued",
        )

    def get_status(self, job_id: str) -> JobStatusResponse:
        """Aggregate the delivery status of every log attached to a job.

        Raises:
            NotFoundError: If no log references the job.
        """
        logs = self.repository.find_by_job_id(job_id)
        if not logs:
            raise NotFoundError("Job", job_id)
        sent = sum(1 for log in logs if log.status == NotificationLogStatus.SENT)
        return JobStatusResponse(
            job_id=job_id,
            status=overall_status(logs),
            progress=round(sent / len(logs) * 100, 2),
            total=len(logs),
            sent=sent,
            logs=logs,
        )
