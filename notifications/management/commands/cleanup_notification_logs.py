"""Delete notification logs older than a retention window."""

from django.core.management.base import BaseCommand, CommandError

from notifications.constants import DEFAULT_CLEANUP_DAYS, DEFAULT_CLEANUP_LIMIT
from notifications.container import get_container
from notifications.enums import NotificationLogStatus
from notifications.logging import cleanup_old_logs

STATUS_CHOICES = [status.value for status in NotificationLogStatus]


class Command(BaseCommand):
    """Retention sweep over the notification log store.

    Without ``--include`` or ``--exclude`` every status except FAILED is
    eligible, so failures stay around for investigation.
    """

    help = "Delete notification logs older than --days"

    def add_arguments(self, parser):
        parser.add_argument(
            "--days",
            type=int,
            default=DEFAULT_CLEANUP_DAYS,
            help=f"Delete logs created more than N days ago (default {DEFAULT_CLEANUP_DAYS})",
        )
        parser.add_argument(
            "--include",
            action="append",
            choices=STATUS_CHOICES,
            help="Only delete logs in this status (repeatable)",
        )
        parser.add_argument(
            "--exclude",
            action="append",
            choices=STATUS_CHOICES,
            help="Never delete logs in this status (repeatable)",
        )
        parser.add_argument(
            "--limit",
            type=int,
            default=DEFAULT_CLEANUP_LIMIT,
            help=f"Maximum number of logs to delete (default {DEFAULT_CLEANUP_LIMIT})",
        )
        parser.add_argument(
            "--log-file-days",
            type=int,
            default=None,
            help="Also remove rotated service log files older than N days",
        )

    def handle(self, *_args, **options):
        if options["days"] < 0:
            raise CommandError("--days must not be negative")
        if options["limit"] < 1:
            raise CommandError("--limit must be at least 1")

        result = get_container().admin_service.cleanup(
            older_than_days=options["days"],
            include_statuses=options["include"],
            exclude_statuses=options["exclude"],
            limit=options["limit"],
        )
        self.stdout.write(
            self.style.SUCCESS(
                f"Deleted {result.deleted_count} notification logs created before "
                f"{result.cutoff.isoformat()} "
                f"(statuses: {', '.join(result.statuses) or 'none'})"
            )
        )

        if options["log_file_days"] is not None:
            removed = cleanup_old_logs(retention_days=options["log_file_days"])
            self.stdout.write(f"Removed {removed} rotated log files")
