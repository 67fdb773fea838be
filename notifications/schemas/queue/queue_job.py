"""Delivery queue job and metrics schemas."""

from datetime import datetime
from typing import Any

from pydantic import Field

from notifications.constants import QUEUE_BACKOFF_BASE_MS, QUEUE_MAX_ATTEMPTS
from notifications.enums import JobState, Priority
from notifications.schemas.base_schema_model import BaseSchemaModel


class QueueJob(BaseSchemaModel):
    """A rendered message awaiting delivery.

    Addressing and content are fixed at enqueue time; ``metadata`` links the
    job back to its notification log through ``log_id``. The queue owns
    ``state``, ``attempts_made`` and the timestamps.
    """

    id: str | None = None
    to: str
    cc: list[str] = Field(default_factory=list)
    bcc: list[str] = Field(default_factory=list)
    from_address: str | None = None
    reply_to: str | None = None
    subject: str
    html: str
    text: str = ""
    priority: Priority = Priority.NORMAL
    scheduled_time: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    state: JobState = JobState.WAITING
    attempts_made: int = 0
    max_attempts: int = QUEUE_MAX_ATTEMPTS
    created_at: datetime | None = None
    processed_at: datetime | None = None
    finished_at: datetime | None = None
    failed_reason: str | None = None

    @property
    def log_id(self) -> str | None:
        """Id of the notification log this job delivers."""
        return self.metadata.get("log_id")


class EnqueueOptions(BaseSchemaModel):
    """Per-enqueue overrides of the queue defaults."""

    job_id: str | None = None
    attempts: int = Field(default=QUEUE_MAX_ATTEMPTS, ge=1)
    backoff_base_ms: int = Field(default=QUEUE_BACKOFF_BASE_MS, ge=0)


class QueueCounts(BaseSchemaModel):
    """Job counts for one named queue."""

    waiting: int = 0
    active: int = 0
    delayed: int = 0
    failed: int = 0
    completed: int = 0
    degraded: int = 0
