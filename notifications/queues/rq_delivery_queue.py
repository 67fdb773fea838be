"""Redis-backed delivery queue using django-rq.

Priority classes map onto the ``high``, ``default`` and ``low`` RQ queues;
workers must listen on them in that order (``manage.py rqworker high default
low --with-scheduler``) for high-priority jobs to be served first. Scheduled
jobs and queue-level retries need the RQ scheduler.
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import django_rq
import structlog
from redis.exceptions import RedisError
from rq import Queue, Retry
from rq.exceptions import NoSuchJobError
from rq.job import Job

from notifications.clock import Clock, SystemClock, generate_id
from notifications.constants import (
    COMPLETED_JOB_RETENTION_SECONDS,
    FAILED_JOB_RETENTION_SECONDS,
)
from notifications.enums import JobState, Priority
from notifications.exceptions import QueueUnavailableError
from notifications.queues.delivery_queue import DeliveryQueue
from notifications.schemas.queue import EnqueueOptions, QueueCounts, QueueJob
from notifications.services.retry_policy import QueueRetryPolicy

logger = structlog.get_logger(__name__)

SEND_EMAIL_JOB = "notifications.jobs.email_jobs.send_email_job"

PRIORITY_QUEUES = {
    Priority.HIGH.value: "high",
    Priority.NORMAL.value: "default",
    Priority.LOW.value: "low",
}

# RQ job status -> queue job state
_RQ_STATES = {
    "queued": JobState.WAITING.value,
    "scheduled": JobState.DELAYED.value,
    "deferred": JobState.DELAYED.value,
    "started": JobState.ACTIVE.value,
    "finished": JobState.COMPLETED.value,
    "failed": JobState.FAILED.value,
    "stopped": JobState.FAILED.value,
    "canceled": JobState.CANCELED.value,
}

_REMOVABLE_STATUSES = {"queued", "scheduled", "deferred"}


def _aware(value: datetime | None) -> datetime | None:
    # Older RQ releases store naive UTC timestamps
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _status_of(job: Job) -> str:
    status = job.get_status()
    return getattr(status, "value", status) or "queued"


class RqDeliveryQueue(DeliveryQueue):
    """Delivery queue on top of RQ queues managed by django-rq."""

    def __init__(
        self,
        clock: Clock | None = None,
        allow_degraded: bool = False,
        id_generator: Callable[[], str] = generate_id,
        queue_factory: Callable[[str], Queue] = django_rq.get_queue,
        job_func: str = SEND_EMAIL_JOB,
    ):
        """Initialize the queue.

        Args:
            clock: Source of timestamps; defaults to the system clock.
            allow_degraded: Return job ids even when Redis rejects the
                enqueue, logging ``delivery_queue_degraded`` instead of
                raising.
            id_generator: Produces job ids when none is given.
            queue_factory: Returns the RQ queue for a queue name.
            job_func: Dotted path of the function workers run per job.
        """
        self.clock = clock or SystemClock()
        self.allow_degraded = allow_degraded
        self.id_generator = id_generator
        self.queue_factory = queue_factory
        self.job_func = job_func
        self._degraded: dict[str, int] = {name: 0 for name in PRIORITY_QUEUES.values()}
        self._closed = False

    def _queue_for(self, priority: str) -> Queue:
        return self.queue_factory(PRIORITY_QUEUES[Priority(priority).value])

    def _queues(self) -> list[Queue]:
        return [self.queue_factory(name) for name in PRIORITY_QUEUES.values()]

    @property
    def connection(self):
        return self.queue_factory(PRIORITY_QUEUES[Priority.NORMAL.value]).connection

    def enqueue(self, job: QueueJob, options: EnqueueOptions | None = None) -> str:
        options = options or EnqueueOptions()
        if self._closed:
            raise QueueUnavailableError("Delivery queue is closed")

        now = self.clock.now()
        job_id = options.job_id or self.id_generator()
        job = job.model_copy(
            update={
                "id": job_id,
                "created_at": now,
                "max_attempts": options.attempts,
            }
        )
        policy = QueueRetryPolicy(
            attempts=options.attempts, backoff_base_ms=options.backoff_base_ms
        )
        payload = job.model_dump(mode="json")
        enqueue_kwargs: dict[str, Any] = {
            "job_id": job_id,
            "result_ttl": COMPLETED_JOB_RETENTION_SECONDS,
            "failure_ttl": FAILED_JOB_RETENTION_SECONDS,
            "meta": {
                "log_id": job.log_id,
                "notification_type": job.metadata.get("notification_type"),
                "priority": job.priority,
            },
        }
        if options.attempts > 1:
            enqueue_kwargs["retry"] = Retry(
                max=options.attempts - 1,
                interval=[int(seconds) for seconds in policy.intervals_seconds()],
            )

        queue_name = PRIORITY_QUEUES[Priority(job.priority).value]
        try:
            queue = self._queue_for(job.priority)
            if job.scheduled_time is not None and job.scheduled_time > now:
                queue.enqueue_at(
                    job.scheduled_time, self.job_func, payload, **enqueue_kwargs
                )
            else:
                queue.enqueue(self.job_func, payload, **enqueue_kwargs)
        except RedisError as exc:
            if not self.allow_degraded:
                logger.error(
                    "delivery_queue_unavailable",
                    job_id=job_id,
                    queue=queue_name,
                    error=str(exc),
                )
                raise QueueUnavailableError(
                    f"Delivery queue unavailable: {exc}"
                ) from exc
            self._degraded[queue_name] += 1
            logger.warning(
                "delivery_queue_degraded",
                job_id=job_id,
                log_id=job.log_id,
                queue=queue_name,
                error=str(exc),
            )
            return job_id

        logger.debug(
            "delivery_job_enqueued",
            job_id=job_id,
            log_id=job.log_id,
            queue=queue_name,
            scheduled_time=job.scheduled_time.isoformat()
            if job.scheduled_time
            else None,
        )
        return job_id

    def _fetch(self, job_id: str) -> Job | None:
        try:
            return Job.fetch(job_id, connection=self.connection)
        except NoSuchJobError:
            return None
        except RedisError as exc:
            raise QueueUnavailableError(f"Delivery queue unavailable: {exc}") from exc

    def get_job(self, job_id: str) -> QueueJob | None:
        rq_job = self._fetch(job_id)
        if rq_job is None or not rq_job.args:
            return None
        status = _status_of(rq_job)
        stored = QueueJob.model_validate(rq_job.args[0])
        retries_used = 0
        if rq_job.retries_left is not None:
            retries_used = max(stored.max_attempts - 1 - rq_job.retries_left, 0)
        ran = status in {"started", "finished", "failed", "stopped"}
        return stored.model_copy(
            update={
                "state": _RQ_STATES.get(status, JobState.WAITING.value),
                "attempts_made": retries_used + (1 if ran else 0),
                "processed_at": _aware(rq_job.started_at),
                "finished_at": _aware(rq_job.ended_at),
                "failed_reason": self._failure_reason(rq_job)
                if status == "failed"
                else None,
            }
        )

    @staticmethod
    def _failure_reason(rq_job: Job) -> str | None:
        exc_info = rq_job.exc_info
        if not exc_info:
            return None
        return exc_info.strip().splitlines()[-1]

    def close(self) -> None:
        self._closed = True
        logger.info("delivery_queue_closed", backend="rq")

    def metrics(self) -> dict[str, QueueCounts]:
        try:
            return {
                queue.name: QueueCounts(
                    waiting=queue.count,
                    active=queue.started_job_registry.count,
                    delayed=queue.scheduled_job_registry.count
                    + queue.deferred_job_registry.count,
                    failed=queue.failed_job_registry.count,
                    completed=queue.finished_job_registry.count,
                    degraded=self._degraded.get(queue.name, 0),
                )
                for queue in self._queues()
            }
        except RedisError as exc:
            raise QueueUnavailableError(f"Delivery queue unavailable: {exc}") from exc

    def retry_failed(self) -> int:
        requeued = 0
        try:
            for queue in self._queues():
                registry = queue.failed_job_registry
                for job_id in registry.get_job_ids():
                    registry.requeue(job_id)
                    requeued += 1
        except RedisError as exc:
            raise QueueUnavailableError(f"Delivery queue unavailable: {exc}") from exc
        if requeued:
            logger.info("failed_jobs_requeued", count=requeued)
        return requeued

    def clean_completed(self, older_than: timedelta, limit: int = 1000) -> int:
        cutoff = self.clock.now() - older_than
        removed = 0
        try:
            for queue in self._queues():
                registry = queue.finished_job_registry
                job_ids = registry.get_job_ids()
                for rq_job in Job.fetch_many(job_ids, connection=queue.connection):
                    if removed >= limit:
                        return removed
                    if rq_job is None:
                        continue
                    ended_at = _aware(rq_job.ended_at)
                    if ended_at is not None and ended_at <= cutoff:
                        registry.remove(rq_job, delete_job=True)
                        removed += 1
        except RedisError as exc:
            raise QueueUnavailableError(f"Delivery queue unavailable: {exc}") from exc
        return removed

    def remove(self, job_id: str) -> bool:
        rq_job = self._fetch(job_id)
        if rq_job is None or _status_of(rq_job) not in _REMOVABLE_STATUSES:
            return False
        try:
            rq_job.cancel()
            rq_job.delete()
        except RedisError as exc:
            logger.warning("delivery_job_remove_failed", job_id=job_id, error=str(exc))
            return False
        logger.info("delivery_job_removed", job_id=job_id)
        return True

    def is_available(self) -> bool:
        if self._closed:
            return False
        try:
            return bool(self.connection.ping())
        except RedisError:
            return False
