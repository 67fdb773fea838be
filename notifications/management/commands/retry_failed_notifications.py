"""Re-queue failed notifications from the command line."""

from django.core.management.base import BaseCommand, CommandError

from notifications.constants import DEFAULT_BULK_RETRY_LIMIT
from notifications.container import get_container
from notifications.enums import NotificationType
from notifications.schemas.notification import RetryBulkFilters

TYPE_CHOICES = [notification_type.value for notification_type in NotificationType]


class Command(BaseCommand):
    """Retry FAILED and ERROR notifications at high priority."""

    help = "Retry failed notifications, optionally restricted by type"

    def add_arguments(self, parser):
        parser.add_argument(
            "--limit",
            type=int,
            default=DEFAULT_BULK_RETRY_LIMIT,
            help=f"Maximum number of notifications to retry (default {DEFAULT_BULK_RETRY_LIMIT})",
        )
        parser.add_argument(
            "--type",
            action="append",
            dest="types",
            choices=TYPE_CHOICES,
            help="Only retry notifications of this type (repeatable)",
        )

    def handle(self, *_args, **options):
        if options["limit"] < 1:
            raise CommandError("--limit must be at least 1")

        filters = RetryBulkFilters(types=options["types"]) if options["types"] else None
        result = get_container().admin_service.retry_bulk(
            filters=filters,
            limit=options["limit"],
            requested_by="manage.py retry_failed_notifications",
        )

        for log_id, error in result.errors.items():
            self.stderr.write(self.style.WARNING(f"{log_id}: {error}"))
        self.stdout.write(
            self.style.SUCCESS(
                f"Retried {result.retried_count} notifications "
                f"({len(result.errors)} could not be retried)"
            )
        )
