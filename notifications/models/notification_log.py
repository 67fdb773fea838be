"""NotificationLog model: persisted delivery tracking per recipient.

Rows are only mutated through ``DjangoNotificationLogRepository``, which
serializes updates per row and applies merge semantics.
"""

import uuid
from typing import ClassVar

from django.db import models

from notifications.enums import NotificationLogStatus, NotificationType


class NotificationLog(models.Model):
    """One delivery record per recipient per notification.

    Attributes:
        id: UUID primary key, assigned at creation.
        to: Recipient address.
        type: Notification type tag.
        payload: Rendered content, template variables and addressing extras.
        status: Lifecycle status.
        created_at: Creation time.
        updated_at: Time of the last mutation.
        sent_at: First time the log reached SENT.
        error_log: Append-only list of error strings.
        retry_count: Recorded transient failed attempts.
        next_retry_at: When the next business-level retry is due.
        job_id: Queue job processing this log.
        metadata: Provenance, retry history and webhook data.
        version: Incremented on every mutation.
    """

    STATUS_CHOICES: ClassVar[list[tuple[str, str]]] = [
        (status.value, status.value) for status in NotificationLogStatus
    ]
    TYPE_CHOICES: ClassVar[list[tuple[str, str]]] = [
        (kind.value, kind.value) for kind in NotificationType
    ]

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique log identifier",
    )
    to = models.CharField(
        max_length=320,
        help_text="Recipient address",
    )
    type = models.CharField(
        max_length=50,
        choices=TYPE_CHOICES,
        help_text="Notification type tag",
    )
    payload = models.JSONField(
        default=dict,
        blank=True,
        help_text="Rendered content and template variables",
    )
    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=NotificationLogStatus.QUEUED.value,
        help_text="Lifecycle status",
    )
    created_at = models.DateTimeField(
        help_text="When the log was created",
    )
    updated_at = models.DateTimeField(
        help_text="When the log was last mutated",
    )
    sent_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the log first reached SENT",
    )
    error_log = models.JSONField(
        default=list,
        blank=True,
        help_text="Append-only error history",
    )
    retry_count = models.PositiveIntegerField(
        default=0,
        help_text="Recorded transient failed attempts",
    )
    next_retry_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the next retry is due",
    )
    job_id = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        help_text="Queue job processing this log",
    )
    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Provenance, retry history and webhook data",
    )
    version = models.PositiveIntegerField(
        default=1,
        help_text="Incremented on every mutation",
    )

    class Meta:
        """Django model metadata."""

        db_table = "notification_logs"
        ordering: ClassVar[list[str]] = ["-created_at"]
        indexes: ClassVar[list] = [
            models.Index(
                fields=["status", "-created_at"], name="notificatio_status_4d5a0e_idx"
            ),
            models.Index(fields=["job_id"], name="notificatio_job_id_7c1f2b_idx"),
            models.Index(fields=["to", "-created_at"], name="notificatio_to_9e3b6a_idx"),
            models.Index(
                fields=["status", "next_retry_at"],
                name="notificatio_status_a81c4d_idx",
            ),
        ]

    def __str__(self) -> str:
        """Return string representation of the log."""
        return f"{self.type} to {self.to} - {self.status}"

    def __repr__(self) -> str:
        """Return detailed representation of the log."""
        return (
            f"<NotificationLog(id={self.id}, type={self.type}, "
            f"status={self.status}, retry_count={self.retry_count})>"
        )
