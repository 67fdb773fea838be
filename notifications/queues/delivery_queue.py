"""Delivery queue contract.

A delivery queue carries rendered messages from the request path to an
asynchronous worker. Implementations share these semantics:

- Priority tiers map high -> 1, normal -> 2, low -> 3; lower levels are
  served first and each tier is FIFO.
- A job whose ``scheduled_time`` is in the future is held as delayed until
  it is due; a past or missing time means immediately.
- Each job gets a fixed number of delivery attempts with exponential
  backoff between them, independent of business-level retries.
- Completed jobs are kept for 24 hours, failed jobs for 7 days.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import timedelta

from notifications.schemas.queue import EnqueueOptions, QueueCounts, QueueJob

JobHandler = Callable[[QueueJob], None]


class DeliveryQueue(ABC):
    """Abstract priority- and delay-aware job queue."""

    @abstractmethod
    def enqueue(self, job: QueueJob, options: EnqueueOptions | None = None) -> str:
        """Add a job without waiting for its delivery.

        Args:
            job: The rendered message; its ``id`` is ignored.
            options: Attempt count, backoff and an explicit job id.

        Returns:
            The job id.

        Raises:
            QueueUnavailableError: If the backend cannot accept the job.
        """

    @abstractmethod
    def get_job(self, job_id: str) -> QueueJob | None:
        """Return the job with its queue state, or None if unknown or expired."""

    @abstractmethod
    def close(self) -> None:
        """Stop accepting jobs and release backend resources."""

    @abstractmethod
    def metrics(self) -> dict[str, QueueCounts]:
        """Job counts per named queue."""

    @abstractmethod
    def retry_failed(self) -> int:
        """Move every failed job back to waiting; returns how many moved."""

    @abstractmethod
    def clean_completed(self, older_than: timedelta, limit: int = 1000) -> int:
        """Drop completed jobs finished longer ago than ``older_than``."""

    @abstractmethod
    def remove(self, job_id: str) -> bool:
        """Best-effort removal of a job that has not started.

        Returns:
            True when the job was removed; False when it is unknown or has
            already been picked up by a worker.
        """

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the backend can currently accept jobs."""
