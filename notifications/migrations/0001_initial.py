import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="NotificationLog",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique log identifier",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("to", models.CharField(help_text="Recipient address", max_length=320)),
                (
                    "type",
                    models.CharField(
                        choices=[
                            ("ORDER_CONFIRMED", "ORDER_CONFIRMED"),
                            ("ORDER_SHIPPED", "ORDER_SHIPPED"),
                            ("ORDER_DELIVERED", "ORDER_DELIVERED"),
                            ("ORDER_CANCELED", "ORDER_CANCELED"),
                            ("PASSWORD_RESET", "PASSWORD_RESET"),
                            ("PASSWORD_CHANGED", "PASSWORD_CHANGED"),
                            ("ACCOUNT_VERIFICATION", "ACCOUNT_VERIFICATION"),
                            ("USER_REGISTERED", "USER_REGISTERED"),
                            ("INVENTORY_ALERT", "INVENTORY_ALERT"),
                            ("REVIEW_REQUESTED", "REVIEW_REQUESTED"),
                            ("SYSTEM_ALERT", "SYSTEM_ALERT"),
                        ],
                        help_text="Notification type tag",
                        max_length=50,
                    ),
                ),
                (
                    "payload",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Rendered content and template variables",
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("QUEUED", "QUEUED"),
                            ("SENDING", "SENDING"),
                            ("SENT", "SENT"),
                            ("FAILED", "FAILED"),
                            ("ERROR", "ERROR"),
                            ("RETRYING", "RETRYING"),
                            ("CANCELED", "CANCELED"),
                        ],
                        default="QUEUED",
                        help_text="Lifecycle status",
                        max_length=20,
                    ),
                ),
                ("created_at", models.DateTimeField(help_text="When the log was created")),
                (
                    "updated_at",
                    models.DateTimeField(help_text="When the log was last mutated"),
                ),
                (
                    "sent_at",
                    models.DateTimeField(
                        blank=True, help_text="When the log first reached SENT", null=True
                    ),
                ),
                (
                    "error_log",
                    models.JSONField(
                        blank=True, default=list, help_text="Append-only error history"
                    ),
                ),
                (
                    "retry_count",
                    models.PositiveIntegerField(
                        default=0, help_text="Recorded transient failed attempts"
                    ),
                ),
                (
                    "next_retry_at",
                    models.DateTimeField(
                        blank=True, help_text="When the next retry is due", null=True
                    ),
                ),
                (
                    "job_id",
                    models.CharField(
                        blank=True,
                        help_text="Queue job processing this log",
                        max_length=100,
                        null=True,
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Provenance, retry history and webhook data",
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1, help_text="Incremented on every mutation"
                    ),
                ),
            ],
            options={
                "db_table": "notification_logs",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "-created_at"],
                        name="notificatio_status_4d5a0e_idx",
                    ),
                    models.Index(fields=["job_id"], name="notificatio_job_id_7c1f2b_idx"),
                    models.Index(
                        fields=["to", "-created_at"], name="notificatio_to_9e3b6a_idx"
                    ),
                    models.Index(
                        fields=["status", "next_retry_at"],
                        name="notificatio_status_a81c4d_idx",
                    ),
                ],
            },
        ),
    ]
