"""Unit tests for the notification management commands."""

from io import StringIO
from unittest.mock import patch

from django.core.management import call_command
from django.core.management.base import CommandError

from notifications.enums import NotificationLogStatus, NotificationType
from tests.base import BaseComponentTest
from tests.factories import dispatch_request, log_create


class TestCleanupNotificationLogsCommand(BaseComponentTest):
    """Tests for cleanup_notification_logs."""

    def test_deletes_old_logs_except_failed(self):
        """Test the default sweep keeps FAILED logs."""
        self.repository.create(log_create(status=NotificationLogStatus.SENT))
        failed = self.repository.create(log_create(status=NotificationLogStatus.FAILED))
        self.clock.advance(days=31)
        out = StringIO()

        call_command("cleanup_notification_logs", stdout=out)

        self.assertIn("Deleted 1 notification logs", out.getvalue())
        self.assertIsNotNone(self.repository.find_by_id(failed.id))

    def test_include_status(self):
        """Test --include restricts the sweep."""
        self.repository.create(log_create(status=NotificationLogStatus.SENT))
        self.repository.create(log_create(status=NotificationLogStatus.FAILED))
        self.clock.advance(days=10)
        out = StringIO()

        call_command(
            "cleanup_notification_logs", "--days", "7", "--include", "FAILED", stdout=out
        )

        self.assertIn("Deleted 1 notification logs", out.getvalue())
        self.assertEqual(self.repository.count(), 1)

    @patch(
        "notifications.management.commands.cleanup_notification_logs.cleanup_old_logs",
        return_value=2,
    )
    def test_log_file_days_prunes_rotated_logs(self, mock_cleanup):
        """Test --log-file-days also prunes rotated service log files."""
        out = StringIO()

        call_command("cleanup_notification_logs", "--log-file-days", "5", stdout=out)

        mock_cleanup.assert_called_once_with(retention_days=5)
        self.assertIn("Removed 2 rotated log files", out.getvalue())

    def test_negative_days_rejected(self):
        """Test invalid retention windows are rejected."""
        with self.assertRaises(CommandError):
            call_command("cleanup_notification_logs", "--days", "-1")


class TestRetryFailedNotificationsCommand(BaseComponentTest):
    """Tests for retry_failed_notifications."""

    def test_retries_failed_logs_of_type(self):
        """Test --type limits the retry to one notification type."""
        order = self.repository.create(log_create(status=NotificationLogStatus.FAILED))
        reset = self.repository.create(
            log_create(
                status=NotificationLogStatus.FAILED,
                notification_type=NotificationType.PASSWORD_RESET,
            )
        )
        out = StringIO()

        call_command(
            "retry_failed_notifications", "--type", "PASSWORD_RESET", stdout=out
        )

        self.assertIn("Retried 1 notifications (0 could not be retried)", out.getvalue())
        self.assertEqual(
            self.repository.find_by_id(reset.id).status, NotificationLogStatus.RETRYING
        )
        self.assertEqual(
            self.repository.find_by_id(order.id).status, NotificationLogStatus.FAILED
        )
        retry = self.repository.find_by_id(reset.id).metadata["retry"]
        self.assertEqual(retry["requested_by"], "manage.py retry_failed_notifications")

    def test_retried_logs_are_delivered(self):
        """Test retried notifications go out on the next drain."""
        self.repository.create(log_create(status=NotificationLogStatus.FAILED))

        call_command("retry_failed_notifications", stdout=StringIO())
        self.deliver_queued()

        self.assertEqual(len(self.transport.outbox), 1)

    def test_invalid_limit_rejected(self):
        """Test --limit must be positive."""
        with self.assertRaises(CommandError):
            call_command("retry_failed_notifications", "--limit", "0")


class TestProcessDeliveryQueueCommand(BaseComponentTest):
    """Tests for process_delivery_queue."""

    def test_drains_queue(self):
        """Test queued jobs are delivered."""
        self.container.dispatch_service.dispatch(
            dispatch_request(recipients=["ada@example.com", "bob@example.com"])
        )
        out = StringIO()

        call_command("process_delivery_queue", stdout=out)

        self.assertIn("Processed 2 delivery jobs", out.getvalue())
        self.assertEqual(len(self.transport.outbox), 2)

    def test_max_jobs(self):
        """Test --max-jobs stops early."""
        self.container.dispatch_service.dispatch(
            dispatch_request(recipients=["ada@example.com", "bob@example.com"])
        )
        out = StringIO()

        call_command("process_delivery_queue", "--max-jobs", "1", stdout=out)

        self.assertIn("Processed 1 delivery jobs", out.getvalue())

    def test_rejects_rq_queue(self):
        """Test the command refuses to drive a non in-memory queue."""
        with patch("notifications.management.commands.process_delivery_queue.get_container") as mock_get:
            mock_get.return_value.queue = object()

            with self.assertRaises(CommandError):
                call_command("process_delivery_queue")
