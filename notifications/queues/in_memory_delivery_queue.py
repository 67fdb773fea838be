"""Process-local delivery queue with an explicit job state machine."""

import heapq
import itertools
import threading
from collections.abc import Callable
from datetime import datetime, timedelta

import structlog

from notifications.clock import Clock, SystemClock, generate_id
from notifications.constants import (
    COMPLETED_JOB_RETENTION_SECONDS,
    FAILED_JOB_RETENTION_SECONDS,
)
from notifications.enums import PRIORITY_LEVELS, JobState, Priority
from notifications.exceptions import PermanentSendFailure, QueueUnavailableError
from notifications.queues.delivery_queue import DeliveryQueue, JobHandler
from notifications.schemas.queue import EnqueueOptions, QueueCounts, QueueJob
from notifications.services.retry_policy import QueueRetryPolicy

logger = structlog.get_logger(__name__)

DEFAULT_QUEUE_NAME = "email-delivery"


class InMemoryDeliveryQueue(DeliveryQueue):
    """Priority heap plus delayed set, processed by a handler callback.

    Jobs move waiting -> active -> completed, or active -> delayed when a
    queue-level retry is scheduled, or active -> failed once attempts run
    out. Jobs are processed synchronously with ``process_next``/``drain`` or
    by a background thread started with ``start``.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        handler: JobHandler | None = None,
        id_generator: Callable[[], str] = generate_id,
        name: str = DEFAULT_QUEUE_NAME,
        poll_interval: float = 0.05,
    ):
        """Initialize the queue.

        Args:
            clock: Source of timestamps; defaults to the system clock.
            handler: Called with each job when it becomes active. Raising
                fails the attempt.
            id_generator: Produces job ids when none is given.
            name: Queue name reported by ``metrics``.
            poll_interval: Seconds the background worker sleeps when idle.
        """
        self.clock = clock or SystemClock()
        self.handler = handler
        self.id_generator = id_generator
        self.name = name
        self.poll_interval = poll_interval

        self._jobs: dict[str, QueueJob] = {}
        self._policies: dict[str, QueueRetryPolicy] = {}
        self._waiting: list[tuple[int, int, str]] = []
        self._delayed: dict[str, datetime] = {}
        self._sequence = itertools.count()
        self._lock = threading.RLock()
        self._stop = threading.Event()
        self._worker: threading.Thread | None = None
        self._closed = False

    def set_handler(self, handler: JobHandler) -> None:
        self.handler = handler

    def enqueue(self, job: QueueJob, options: EnqueueOptions | None = None) -> str:
        options = options or EnqueueOptions()
        if self._closed:
            raise QueueUnavailableError(f"Queue {self.name} is closed")

        now = self.clock.now()
        job_id = options.job_id or self.id_generator()
        delayed = job.scheduled_time is not None and job.scheduled_time > now
        stored = job.model_copy(
            update={
                "id": job_id,
                "state": JobState.DELAYED.value if delayed else JobState.WAITING.value,
                "attempts_made": 0,
                "max_attempts": options.attempts,
                "created_at": now,
                "processed_at": None,
                "finished_at": None,
                "failed_reason": None,
            },
            deep=True,
        )
        with self._lock:
            self._jobs[job_id] = stored
            self._policies[job_id] = QueueRetryPolicy(
                attempts=options.attempts, backoff_base_ms=options.backoff_base_ms
            )
            if delayed:
                self._delayed[job_id] = job.scheduled_time
            else:
                self._push(stored)

        logger.debug(
            "delivery_job_enqueued",
            job_id=job_id,
            log_id=stored.log_id,
            priority=stored.priority,
            delayed=delayed,
        )
        return job_id

    def _push(self, job: QueueJob) -> None:
        level = PRIORITY_LEVELS[Priority(job.priority).value]
        heapq.heappush(self._waiting, (level, next(self._sequence), job.id))

    def _promote_due(self, now: datetime) -> None:
        due = sorted(
            (when, job_id) for job_id, when in self._delayed.items() if when <= now
        )
        for _when, job_id in due:
            del self._delayed[job_id]
            job = self._jobs[job_id]
            job.state = JobState.WAITING.value
            self._push(job)

    def _collect_garbage(self, now: datetime) -> None:
        completed_cutoff = now - timedelta(seconds=COMPLETED_JOB_RETENTION_SECONDS)
        failed_cutoff = now - timedelta(seconds=FAILED_JOB_RETENTION_SECONDS)
        expired = [
            job_id
            for job_id, job in self._jobs.items()
            if job.finished_at is not None
            and (
                (
                    job.state in (JobState.COMPLETED.value, JobState.CANCELED.value)
                    and job.finished_at <= completed_cutoff
                )
                or (job.state == JobState.FAILED and job.finished_at <= failed_cutoff)
            )
        ]
        for job_id in expired:
            self._forget(job_id)

    def _forget(self, job_id: str) -> None:
        self._jobs.pop(job_id, None)
        self._policies.pop(job_id, None)
        self._delayed.pop(job_id, None)

    def _claim_next(self) -> QueueJob | None:
        with self._lock:
            now = self.clock.now()
            self._promote_due(now)
            self._collect_garbage(now)
            while self._waiting:
                _level, _seq, job_id = heapq.heappop(self._waiting)
                job = self._jobs.get(job_id)
                if job is None or job.state != JobState.WAITING:
                    continue
                job.state = JobState.ACTIVE.value
                job.attempts_made += 1
                job.processed_at = now
                return job.model_copy(deep=True)
        return None

    def process_next(self) -> QueueJob | None:
        """Run the handler on the next due job.

        Returns:
            The job as it stood after the attempt, or None when nothing is
            due.
        """
        job = self._claim_next()
        if job is None:
            return None
        if self.handler is None:
            raise RuntimeError(f"Queue {self.name} has no handler")

        try:
            self.handler(job)
        except Exception as exc:
            return self._record_failure(job, exc)
        return self._record_completion(job)

    def _record_completion(self, job: QueueJob) -> QueueJob:
        with self._lock:
            stored = self._jobs[job.id]
            stored.state = JobState.COMPLETED.value
            stored.finished_at = self.clock.now()
            return stored.model_copy(deep=True)

    def _record_failure(self, job: QueueJob, exc: Exception) -> QueueJob:
        with self._lock:
            stored = self._jobs[job.id]
            policy = self._policies[job.id]
            stored.failed_reason = str(exc)
            if isinstance(exc, PermanentSendFailure) or not policy.has_attempts_left(
                stored.attempts_made
            ):
                stored.state = JobState.FAILED.value
                stored.finished_at = self.clock.now()
                logger.warning(
                    "delivery_job_failed",
                    job_id=job.id,
                    log_id=job.log_id,
                    attempts_made=stored.attempts_made,
                    error=str(exc),
                )
            else:
                stored.state = JobState.DELAYED.value
                self._delayed[job.id] = self.clock.now() + policy.backoff_for(
                    stored.attempts_made
                )
                logger.info(
                    "delivery_job_retry_scheduled",
                    job_id=job.id,
                    log_id=job.log_id,
                    attempts_made=stored.attempts_made,
                    error=str(exc),
                )
            return stored.model_copy(deep=True)

    def drain(self, max_jobs: int | None = None) -> int:
        """Process due jobs until none are left.

        Jobs delayed into the future are not waited for.

        Args:
            max_jobs: Upper bound on the number of jobs processed.

        Returns:
            Number of jobs processed.
        """
        processed = 0
        while max_jobs is None or processed < max_jobs:
            if self.process_next() is None:
                break
            processed += 1
        return processed

    def start(self) -> None:
        """Process jobs on a daemon thread until ``close`` is called."""
        if self._worker is not None:
            return
        self._stop.clear()
        self._worker = threading.Thread(
            target=self._run, name=f"{self.name}-worker", daemon=True
        )
        self._worker.start()
        logger.info("delivery_worker_started", queue=self.name)

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                job = self.process_next()
            except RuntimeError:
                logger.exception("delivery_worker_stopped", queue=self.name)
                return
            if job is None:
                self._stop.wait(self.poll_interval)

    def close(self) -> None:
        self._closed = True
        self._stop.set()
        if self._worker is not None:
            self._worker.join(timeout=5)
            self._worker = None
        logger.info("delivery_queue_closed", queue=self.name)

    def get_job(self, job_id: str) -> QueueJob | None:
        with self._lock:
            self._collect_garbage(self.clock.now())
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    def metrics(self) -> dict[str, QueueCounts]:
        with self._lock:
            self._collect_garbage(self.clock.now())
            counts = {state.value: 0 for state in JobState}
            for job in self._jobs.values():
                counts[job.state] += 1
        return {
            self.name: QueueCounts(
                waiting=counts[JobState.WAITING.value],
                active=counts[JobState.ACTIVE.value],
                delayed=counts[JobState.DELAYED.value],
                failed=counts[JobState.FAILED.value],
                completed=counts[JobState.COMPLETED.value],
            )
        }

    def retry_failed(self) -> int:
        with self._lock:
            failed = [job for job in self._jobs.values() if job.state == JobState.FAILED]
            for job in failed:
                job.state = JobState.WAITING.value
                job.attempts_made = 0
                job.failed_reason = None
                job.finished_at = None
                self._push(job)
        if failed:
            logger.info("failed_jobs_requeued", queue=self.name, count=len(failed))
        return len(failed)

    def clean_completed(self, older_than: timedelta, limit: int = 1000) -> int:
        cutoff = self.clock.now() - older_than
        with self._lock:
            finished = sorted(
                (
                    job
                    for job in self._jobs.values()
                    if job.state == JobState.COMPLETED
                    and job.finished_at is not None
                    and job.finished_at <= cutoff
                ),
                key=lambda job: job.finished_at,
            )[:limit]
            for job in finished:
                self._forget(job.id)
        return len(finished)

    def remove(self, job_id: str) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.state not in (
                JobState.WAITING.value,
                JobState.DELAYED.value,
            ):
                return False
            job.state = JobState.CANCELED.value
            job.finished_at = self.clock.now()
            self._delayed.pop(job_id, None)
        logger.info("delivery_job_removed", job_id=job_id, queue=self.name)
        return True

    def is_available(self) -> bool:
        return not self._closed
