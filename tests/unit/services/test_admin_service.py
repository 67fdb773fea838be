"""Tests for operator actions on notification logs."""

from datetime import timedelta

from notifications.enums import (
    JobState,
    NotificationLogStatus,
    NotificationType,
    Priority,
)
from notifications.exceptions import (
    InvalidStateTransitionError,
    NotFoundError,
    QueueUnavailableError,
    ValidationError,
)
from notifications.queues import InMemoryDeliveryQueue
from notifications.schemas.notification import RetryBulkFilters
from notifications.schemas.queue import EnqueueOptions, QueueJob
from notifications.services.admin_service import NotificationAdminService
from notifications.services.template_renderer import TemplateRenderer
from tests.base import BaseUnitTest
from tests.factories import log_create, order_confirmed_data


class AdminServiceTestCase(BaseUnitTest):
    """Admin service wired to in-memory backends."""

    def setUp(self):
        """Set up test fixtures."""
        super().setUp()
        self.queue = InMemoryDeliveryQueue(clock=self.clock)
        self.service = NotificationAdminService(
            repository=self.repository,
            queue=self.queue,
            renderer=TemplateRenderer(),
            clock=self.clock,
        )

    def tearDown(self):
        """Close the queue."""
        self.queue.close()


class TestRetry(AdminServiceTestCase):
    """Test suite for single-log retries."""

    def test_retry_failed_log(self):
        """Test a FAILED log is re-queued at high priority."""
        log = self.repository.create(log_create(status=NotificationLogStatus.FAILED))

        result = self.service.retry(log.id, requested_by="ops@example.com")

        stored = self.repository.find_by_id(log.id)
        self.assertEqual(result.status, NotificationLogStatus.RETRYING)
        self.assertEqual(stored.status, NotificationLogStatus.RETRYING)
        self.assertEqual(stored.job_id, result.job_id)
        history = stored.metadata["retry_history"]
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0]["previous_status"], NotificationLogStatus.FAILED)
        self.assertEqual(history[0]["requested_by"], "ops@example.com")

        job = self.queue.get_job(result.job_id)
        self.assertEqual(job.state, JobState.WAITING)
        self.assertEqual(job.priority, Priority.HIGH)
        self.assertEqual(job.subject, log.payload["subject"])

    def test_retry_appends_history(self):
        """Test repeated retries keep earlier history entries."""
        log = self.repository.create(log_create(status=NotificationLogStatus.ERROR))
        self.service.retry(log.id)
        self.repository.update_status(log.id, NotificationLogStatus.FAILED)

        self.service.retry(log.id)

        history = self.repository.find_by_id(log.id).metadata["retry_history"]
        self.assertEqual(
            [entry["previous_status"] for entry in history],
            [NotificationLogStatus.ERROR, NotificationLogStatus.FAILED],
        )

    def test_retry_rerenders_from_template_vars(self):
        """Test a log without stored content is rendered again."""
        log = self.repository.create(
            log_create(
                status=NotificationLogStatus.FAILED,
                payload={"templateVars": order_confirmed_data(orderNumber="ORD-7")},
            )
        )

        result = self.service.retry(log.id)

        job = self.queue.get_job(result.job_id)
        self.assertEqual(job.subject, "Your order #ORD-7 has been confirmed")

    def test_retry_without_content_is_rejected(self):
        """Test a log with nothing to resend cannot be retried."""
        log = self.repository.create(
            log_create(status=NotificationLogStatus.FAILED, payload={})
        )

        with self.assertRaises(ValidationError):
            self.service.retry(log.id)

    def test_retry_rejects_pending_log(self):
        """Test only FAILED or ERROR logs can be retried."""
        log = self.repository.create(log_create(status=NotificationLogStatus.QUEUED))

        with self.assertRaises(InvalidStateTransitionError) as context:
            self.service.retry(log.id)

        self.assertEqual(context.exception.current_status, NotificationLogStatus.QUEUED)
        self.assertEqual(context.exception.action, "retry")

    def test_retry_unknown_log(self):
        """Test retrying a missing log raises NotFoundError."""
        with self.assertRaises(NotFoundError):
            self.service.retry("missing")

    def test_retry_enqueue_failure_restores_status(self):
        """Test the previous status is restored when the queue is down."""
        log = self.repository.create(log_create(status=NotificationLogStatus.FAILED))
        self.queue.close()

        with self.assertRaises(QueueUnavailableError):
            self.service.retry(log.id)

        stored = self.repository.find_by_id(log.id)
        self.assertEqual(stored.status, NotificationLogStatus.FAILED)
        self.assertTrue(stored.error_log[-1].startswith("Retry enqueue failed"))

    def test_retry_enqueue_failure_restores_job_id(self):
        """Test a failed enqueue leaves the log pointing at its previous job."""
        log = self.repository.create(
            log_create(status=NotificationLogStatus.FAILED, job_id="job-original")
        )
        self.queue.close()

        with self.assertRaises(QueueUnavailableError):
            self.service.retry(log.id)

        stored = self.repository.find_by_id(log.id)
        self.assertEqual(stored.job_id, "job-original")
        self.assertEqual(stored.status, NotificationLogStatus.FAILED)

    def test_retry_history_keeps_entries_written_during_retry(self):
        """Test history written after the log was read is not overwritten."""
        log = self.repository.create(log_create(status=NotificationLogStatus.FAILED))
        content_for = self.service._content_for

        def content_then_concurrent_write(entry):
            self.repository.merge_metadata(
                entry.id, append={"retry_history": {"requested_by": "other"}}
            )
            return content_for(entry)

        self.service._content_for = content_then_concurrent_write

        self.service.retry(log.id, requested_by="ops@example.com")

        history = self.repository.find_by_id(log.id).metadata["retry_history"]
        self.assertEqual(
            [entry["requested_by"] for entry in history], ["other", "ops@example.com"]
        )


class TestRetryBulk(AdminServiceTestCase):
    """Test suite for bulk retries."""

    def test_retry_bulk_by_ids_collects_errors(self):
        """Test per-log failures are reported without stopping the batch."""
        failed = [
            self.repository.create(log_create(status=NotificationLogStatus.FAILED))
            for _ in range(2)
        ]
        sent = self.repository.create(log_create(status=NotificationLogStatus.SENT))

        result = self.service.retry_bulk(ids=[log.id for log in [*failed, sent]])

        self.assertEqual(result.retried_count, 2)
        self.assertEqual(len(result.job_ids), 2)
        self.assertEqual(list(result.errors), [sent.id])

    def test_retry_bulk_by_filters(self):
        """Test filters select retryable logs of the given types."""
        self.repository.create(log_create(status=NotificationLogStatus.FAILED))
        reset = self.repository.create(
            log_create(
                status=NotificationLogStatus.ERROR,
                notification_type=NotificationType.PASSWORD_RESET,
            )
        )
        self.repository.create(
            log_create(
                status=NotificationLogStatus.SENT,
                notification_type=NotificationType.PASSWORD_RESET,
            )
        )

        result = self.service.retry_bulk(
            filters=RetryBulkFilters(types=[NotificationType.PASSWORD_RESET])
        )

        self.assertEqual(result.retried_count, 1)
        self.assertEqual(
            self.repository.find_by_id(reset.id).status, NotificationLogStatus.RETRYING
        )

    def test_retry_bulk_defaults_to_due_failures(self):
        """Test without ids or filters the due FAILED logs are retried."""
        for _ in range(3):
            self.repository.create(log_create(status=NotificationLogStatus.FAILED))

        result = self.service.retry_bulk(limit=2)

        self.assertEqual(result.retried_count, 2)


class TestCancel(AdminServiceTestCase):
    """Test suite for cancellation."""

    def test_cancel_queued_log_removes_job(self):
        """Test a queued notification is canceled and its job removed."""
        log = self.repository.create(log_create())
        self.queue.enqueue(
            QueueJob(
                to=log.to,
                subject="Hi",
                html="<p>Hi</p>",
                metadata={"log_id": log.id},
            ),
            EnqueueOptions(job_id=log.job_id),
        )

        result = self.service.cancel(log.id, requested_by="ops")

        self.assertTrue(result.canceled)
        self.assertTrue(result.job_removed)
        stored = self.repository.find_by_id(log.id)
        self.assertEqual(stored.status, NotificationLogStatus.CANCELED)
        self.assertEqual(stored.metadata["canceled_by"], "ops")
        self.assertEqual(self.queue.get_job(log.job_id).state, JobState.CANCELED)

    def test_cancel_without_queued_job(self):
        """Test cancel succeeds when the job is already gone."""
        log = self.repository.create(log_create(status=NotificationLogStatus.RETRYING))

        result = self.service.cancel(log.id)

        self.assertTrue(result.canceled)
        self.assertFalse(result.job_removed)

    def test_cancel_sent_log_is_rejected(self):
        """Test a SENT notification cannot be canceled."""
        log = self.repository.create(log_create(status=NotificationLogStatus.SENT))

        with self.assertRaises(InvalidStateTransitionError) as context:
            self.service.cancel(log.id)

        self.assertEqual(context.exception.action, "cancel")
        self.assertEqual(
            self.repository.find_by_id(log.id).status, NotificationLogStatus.SENT
        )

    def test_cancel_unknown_log(self):
        """Test canceling a missing log raises NotFoundError."""
        with self.assertRaises(NotFoundError):
            self.service.cancel("missing")


class TestCleanupAndStats(AdminServiceTestCase):
    """Test suite for retention cleanup and statistics."""

    def _old_logs(self):
        logs = {
            status: self.repository.create(log_create(status=status))
            for status in (
                NotificationLogStatus.SENT,
                NotificationLogStatus.FAILED,
                NotificationLogStatus.CANCELED,
            )
        }
        self.clock.advance(days=45)
        return logs

    def test_cleanup_keeps_failed_by_default(self):
        """Test the default cleanup keeps FAILED logs for investigation."""
        logs = self._old_logs()

        result = self.service.cleanup(older_than_days=30)

        self.assertEqual(result.deleted_count, 2)
        self.assertNotIn(NotificationLogStatus.FAILED, result.statuses)
        self.assertIsNotNone(
            self.repository.find_by_id(logs[NotificationLogStatus.FAILED].id)
        )
        self.assertEqual(result.cutoff, self.clock.now() - timedelta(days=30))

    def test_cleanup_include_statuses(self):
        """Test only the included statuses are deleted."""
        logs = self._old_logs()

        result = self.service.cleanup(
            older_than_days=30, include_statuses=[NotificationLogStatus.FAILED]
        )

        self.assertEqual(result.deleted_count, 1)
        self.assertIsNone(
            self.repository.find_by_id(logs[NotificationLogStatus.FAILED].id)
        )

    def test_cleanup_exclude_statuses(self):
        """Test excluded statuses are kept."""
        self._old_logs()

        result = self.service.cleanup(
            older_than_days=30, exclude_statuses=[NotificationLogStatus.SENT]
        )

        self.assertEqual(result.deleted_count, 2)

    def test_stats_over_window(self):
        """Test counts and delivery rate cover the trailing window only."""
        self.repository.create(log_create(status=NotificationLogStatus.SENT))
        self.clock.advance(days=10)
        for status in (
            NotificationLogStatus.SENT,
            NotificationLogStatus.SENT,
            NotificationLogStatus.SENT,
            NotificationLogStatus.ERROR,
            NotificationLogStatus.QUEUED,
            NotificationLogStatus.RETRYING,
            NotificationLogStatus.CANCELED,
            NotificationLogStatus.FAILED,
        ):
            self.repository.create(log_create(status=status))

        stats = self.service.stats(since_days=7)

        self.assertEqual(stats.total, 8)
        self.assertEqual(stats.sent, 3)
        self.assertEqual(stats.failed, 2)
        self.assertEqual(stats.pending, 2)
        self.assertEqual(stats.canceled, 1)
        self.assertEqual(stats.delivery_rate, 37.5)
        self.assertEqual(stats.period_days, 7)

    def test_stats_without_logs(self):
        """Test an empty window reports a zero delivery rate."""
        stats = self.service.stats()

        self.assertEqual(stats.total, 0)
        self.assertEqual(stats.delivery_rate, 0.0)

    def test_queue_maintenance_passthrough(self):
        """Test queue metrics, requeue and cleanup go to the queue."""
        self.queue.enqueue(QueueJob(to="ada@example.com", subject="Hi", html="<p>Hi</p>"))

        metrics = self.service.queue_metrics()

        self.assertEqual(metrics["email-delivery"].waiting, 1)
        self.assertEqual(self.service.retry_failed_jobs(), 0)
        self.assertEqual(self.service.clean_completed_jobs(), 0)
