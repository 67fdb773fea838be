"""Background delivery of queued notification emails.

``DeliveryWorker`` drives a notification log through SENDING to SENT or
one of the failure states. ``send_email_job`` is the function RQ workers
execute; the in-memory queue calls ``DeliveryWorker.process`` directly.
"""

from typing import Any

import structlog
from rq import get_current_job

from notifications.clock import Clock, SystemClock, generate_id
from notifications.enums import (
    SENDABLE_STATUSES,
    NotificationLogStatus,
)
from notifications.exceptions import (
    InvalidStateTransitionError,
    QueueUnavailableError,
    TransientSendFailure,
)
from notifications.logging.context import job_context
from notifications.queues import DeliveryQueue
from notifications.repositories import NotificationLogRepository
from notifications.schemas.notification import (
    NotificationLogEntry,
    NotificationLogUpdate,
)
from notifications.schemas.queue import EnqueueOptions, QueueJob
from notifications.services.mail_transport import MailTransport, OutboundEmail
from notifications.services.retry_policy import (
    ErrorClassifier,
    QueueRetryPolicy,
    RetryPolicy,
)

logger = structlog.get_logger(__name__)


class DeliveryWorker:
    """Sends one queued job and records the outcome on its log.

    Transient failures are first retried by the queue itself; only once
    the queue's attempts are used up is a business-level retry recorded and
    a fresh job scheduled for ``next_retry_at``.
    """

    def __init__(
        self,
        repository: NotificationLogRepository,
        transport: MailTransport,
        classifier: ErrorClassifier,
        retry_policy: RetryPolicy,
        queue: DeliveryQueue | None = None,
        clock: Clock | None = None,
        queue_retry_policy: QueueRetryPolicy | None = None,
    ):
        self.repository = repository
        self.transport = transport
        self.classifier = classifier
        self.retry_policy = retry_policy
        self.queue = queue
        self.clock = clock or SystemClock()
        self.queue_retry_policy = queue_retry_policy or QueueRetryPolicy()

    def process(
        self,
        job: QueueJob,
        attempt: int | None = None,
        max_attempts: int | None = None,
    ) -> None:
        """Deliver a job.

        Args:
            job: The queued message.
            attempt: 1-based queue attempt number; defaults to the job's
                ``attempts_made``.
            max_attempts: Queue attempts allowed; defaults to the job's
                ``max_attempts``.

        Raises:
            TransientSendFailure: When the send failed transiently and the
                queue still has attempts left.
        """
        attempt = attempt or job.attempts_made or 1
        max_attempts = max_attempts or job.max_attempts
        log_id = job.log_id
        if not log_id:
            logger.error("delivery_job_without_log", job_id=job.id)
            return

        log = self.repository.find_by_id(log_id)
        if log is None:
            logger.warning("notification_log_not_found", log_id=log_id, job_id=job.id)
            return
        if log.status in (NotificationLogStatus.SENT, NotificationLogStatus.CANCELED):
            logger.info(
                "delivery_skipped", log_id=log_id, job_id=job.id, status=log.status
            )
            return
        if log.job_id and job.id and log.job_id != job.id:
            logger.info(
                "stale_delivery_job_skipped",
                log_id=log_id,
                job_id=job.id,
                current_job_id=log.job_id,
            )
            return

        message = self._build_message(job, log)
        if message is None:
            self.repository.update_status(
                log_id,
                NotificationLogStatus.ERROR,
                error="Missing email content (subject and body are required)",
            )
            logger.error("notification_content_missing", log_id=log_id, job_id=job.id)
            return

        try:
            self.repository.update_status(
                log_id, NotificationLogStatus.SENDING, expected=SENDABLE_STATUSES
            )
        except InvalidStateTransitionError as e:
            logger.info(
                "delivery_skipped", log_id=log_id, job_id=job.id, status=e.current_status
            )
            return

        # A cancel may land between the transition and the send
        current = self.repository.find_by_id(log_id)
        if current is None or current.status == NotificationLogStatus.CANCELED:
            logger.info("delivery_canceled_before_send", log_id=log_id, job_id=job.id)
            return

        try:
            receipt = self.transport.send(message)
        except Exception as e:
            self._handle_failure(job, log_id, e, attempt, max_attempts)
            return

        self.repository.mark_as_sent(
            log_id,
            metadata={
                "message_id": receipt.message_id,
                "provider": receipt.provider,
                "accepted_at": receipt.accepted_at.isoformat(),
            },
        )
        logger.info(
            "notification_sent_successfully",
            log_id=log_id,
            job_id=job.id,
            recipient_email=message.to,
            attempt=attempt,
        )

    def _build_message(
        self, job: QueueJob, log: NotificationLogEntry
    ) -> OutboundEmail | None:
        payload = log.payload or {}
        subject = job.subject or payload.get("subject")
        html = job.html or payload.get("html")
        text = job.text or payload.get("text") or ""
        if not subject or not (html or text):
            return None
        return OutboundEmail(
            to=job.to or log.to,
            subject=subject,
            html=html or "",
            text=text,
            from_address=job.from_address or payload.get("from"),
            reply_to=job.reply_to or payload.get("replyTo"),
            cc=list(job.cc or payload.get("cc") or []),
            bcc=list(job.bcc or payload.get("bcc") or []),
            headers={"X-Notification-Log-ID": log.id},
        )

    def _handle_failure(
        self,
        job: QueueJob,
        log_id: str,
        error: Exception,
        attempt: int,
        max_attempts: int,
    ) -> None:
        message = str(error) or error.__class__.__name__

        if self.classifier.is_permanent(error):
            self.repository.record_failed_attempt(
                log_id,
                message,
                self.retry_policy.max_retries,
                self.retry_policy.base_delay_ms,
                permanent=True,
            )
            logger.warning(
                "notification_send_failed_permanently",
                log_id=log_id,
                job_id=job.id,
                error=message,
            )
            return

        if attempt < max_attempts:
            self.repository.update_status(
                log_id,
                NotificationLogStatus.RETRYING,
                error=message,
                next_retry_at=self.clock.now()
                + self.queue_retry_policy.backoff_for(attempt),
            )
            logger.warning(
                "notification_send_failed_queue_retry",
                log_id=log_id,
                job_id=job.id,
                attempt=attempt,
                max_attempts=max_attempts,
                error=message,
            )
            raise TransientSendFailure(message) from error

        entry = self.repository.record_failed_attempt(
            log_id,
            message,
            self.retry_policy.max_retries,
            self.retry_policy.base_delay_ms,
        )
        if entry is None:
            return
        if entry.status == NotificationLogStatus.RETRYING:
            self._schedule_retry(job, entry)
        else:
            logger.error(
                "notification_retries_exhausted",
                log_id=log_id,
                job_id=job.id,
                retry_count=entry.retry_count,
                error=message,
            )

    def _schedule_retry(self, job: QueueJob, entry: NotificationLogEntry) -> None:
        if self.queue is None:
            logger.warning("notification_retry_not_scheduled", log_id=entry.id)
            return
        job_id = generate_id()
        self.repository.update(entry.id, NotificationLogUpdate(job_id=job_id))
        retry_job = job.model_copy(update={"id": None, "scheduled_time": entry.next_retry_at})
        try:
            job_id = self.queue.enqueue(retry_job, EnqueueOptions(job_id=job_id))
        except QueueUnavailableError as e:
            self.repository.update_status(
                entry.id,
                NotificationLogStatus.FAILED,
                error=f"Failed to schedule retry: {e.message}",
            )
            logger.error(
                "notification_retry_enqueue_failed", log_id=entry.id, error=e.message
            )
            return
        logger.info(
            "notification_retry_scheduled",
            log_id=entry.id,
            job_id=job_id,
            retry_count=entry.retry_count,
            next_retry_at=entry.next_retry_at.isoformat() if entry.next_retry_at else None,
        )


def _attempt_numbers(payload: dict[str, Any]) -> tuple[str | None, int, int]:
    rq_job = get_current_job()
    max_attempts = int(payload.get("max_attempts") or 1)
    if rq_job is None:
        return payload.get("id"), 1, max_attempts
    if rq_job.retries_left is None:
        return rq_job.id, 1, max_attempts
    attempt = max(max_attempts - rq_job.retries_left, 1)
    return rq_job.id, attempt, max_attempts


def send_email_job(job_payload: dict[str, Any]) -> None:
    """Deliver one queued email.

    This job is executed by RQ workers. The attempt number is derived from
    the retries RQ has left for the current job.

    Args:
        job_payload: Serialized ``QueueJob``.

    Raises:
        TransientSendFailure: So RQ retries the job while attempts remain.
    """
    from notifications.container import get_container

    job_id, attempt, max_attempts = _attempt_numbers(job_payload)
    job = QueueJob.model_validate(job_payload).model_copy(update={"id": job_id})
    with job_context(job_id or ""):
        get_container().delivery_worker.process(job, attempt, max_attempts)
