"""Response schemas for dispatch and job status lookups."""

from pydantic import Field

from notifications.enums import OverallJobStatus
from notifications.schemas.base_schema_model import BaseSchemaModel
from notifications.schemas.notification.notification_log_entry import (
    NotificationLogEntry,
)


class DispatchResult(BaseSchemaModel):
    """Outcome of a dispatch call.

    ``job_ids`` and ``log_ids`` hold only successful recipients, in
    completion order; ``success`` is False when any recipient failed.
    """

    success: bool
    job_ids: list[str] = Field(default_factory=list)
    log_ids: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class JobStatusResponse(BaseSchemaModel):
    """Aggregate delivery status of every log attached to a job."""

    job_id: str
    status: OverallJobStatus
    progress: float
    total: int
    sent: int
    logs: list[NotificationLogEntry]
