"""Run delivery jobs from the in-memory queue in the foreground.

Development helper: with ``NOTIFICATION_QUEUE_BACKEND=rq`` use
``manage.py rqworker high default low --with-scheduler`` instead.
"""

import time

from django.core.management.base import BaseCommand, CommandError

from notifications.container import get_container
from notifications.queues import InMemoryDeliveryQueue


class Command(BaseCommand):
    help = "Process delivery jobs from the in-memory queue"

    def add_arguments(self, parser):
        parser.add_argument(
            "--max-jobs",
            type=int,
            default=None,
            help="Stop after processing N jobs",
        )
        parser.add_argument(
            "--watch",
            action="store_true",
            help="Keep polling for new jobs until interrupted",
        )
        parser.add_argument(
            "--interval",
            type=float,
            default=1.0,
            help="Seconds between polls in --watch mode (default 1.0)",
        )

    def handle(self, *_args, **options):
        queue = get_container().queue
        if not isinstance(queue, InMemoryDeliveryQueue):
            raise CommandError(
                "process_delivery_queue only drives the in-memory queue; "
                "run 'manage.py rqworker high default low --with-scheduler' for RQ"
            )

        processed = queue.drain(options["max_jobs"])
        try:
            while options["watch"]:
                time.sleep(options["interval"])
                processed += queue.drain()
        except KeyboardInterrupt:
            self.stdout.write("Stopping")

        self.stdout.write(self.style.SUCCESS(f"Processed {processed} delivery jobs"))
