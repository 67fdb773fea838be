"""Notification log record schema."""

from datetime import datetime
from typing import Any

from pydantic import Field

from notifications.enums import NotificationLogStatus, NotificationType
from notifications.schemas.base_schema_model import BaseSchemaModel


class NotificationLogEntry(BaseSchemaModel):
    """One delivery attempt record for one recipient of one notification.

    Attributes:
        id: Opaque identifier assigned at creation.
        to: Recipient address.
        type: Notification type tag.
        payload: Rendered subject/html/text, template variables and addressing
            extras, stored as-is for replay.
        status: Current lifecycle status.
        created_at: Creation time.
        updated_at: Time of the last mutation.
        sent_at: Time of the first transition to SENT.
        error_log: Append-only error history.
        retry_count: Number of recorded transient failed attempts.
        next_retry_at: When the next business-level retry is due.
        job_id: Queue job currently or last processing this log.
        metadata: Provenance, retry history and webhook engagement data.
        version: Incremented on every mutation.
    """

    id: str
    to: str
    type: NotificationType
    payload: dict[str, Any] = Field(default_factory=dict)
    status: NotificationLogStatus = NotificationLogStatus.QUEUED
    created_at: datetime
    updated_at: datetime
    sent_at: datetime | None = None
    error_log: list[str] = Field(default_factory=list)
    retry_count: int = Field(default=0, ge=0)
    next_retry_at: datetime | None = None
    job_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    version: int = Field(default=1, ge=1)


class NotificationLogCreate(BaseSchemaModel):
    """Fields supplied by the caller when a log entry is created."""

    to: str
    type: NotificationType
    payload: dict[str, Any] = Field(default_factory=dict)
    status: NotificationLogStatus = NotificationLogStatus.QUEUED
    job_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class NotificationLogUpdate(BaseSchemaModel):
    """Partial update applied with merge semantics.

    ``metadata`` is shallow-merged into the stored metadata and
    ``error_log`` entries are appended; every other field set on the patch
    replaces the stored value. Unset fields are left untouched.
    """

    to: str | None = None
    payload: dict[str, Any] | None = None
    status: NotificationLogStatus | None = None
    sent_at: datetime | None = None
    error_log: list[str] | None = None
    retry_count: int | None = Field(default=None, ge=0)
    next_retry_at: datetime | None = None
    job_id: str | None = None
    metadata: dict[str, Any] | None = None
