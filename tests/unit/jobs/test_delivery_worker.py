"""Tests for the delivery worker and the RQ job entry point."""

from datetime import timedelta
from unittest.mock import Mock, patch

from django.test import SimpleTestCase

from notifications.enums import JobState, NotificationLogStatus
from notifications.exceptions import PermanentSendFailure, TransientSendFailure
from notifications.jobs.email_jobs import DeliveryWorker, send_email_job
from notifications.queues import InMemoryDeliveryQueue
from notifications.repositories import InMemoryNotificationLogRepository
from notifications.schemas.notification import NotificationLogUpdate
from notifications.schemas.queue import EnqueueOptions, QueueJob
from notifications.services.mail_transport import DeliveryReceipt, MailTransport
from notifications.services.retry_policy import PatternErrorClassifier, RetryPolicy
from tests.factories import FixedClock, log_create


class DeliveryWorkerTestCase(SimpleTestCase):
    """Shared fixtures for DeliveryWorker tests."""

    def setUp(self):
        """Set up test fixtures."""
        self.clock = FixedClock()
        self.repository = InMemoryNotificationLogRepository(clock=self.clock)
        self.queue = InMemoryDeliveryQueue(clock=self.clock)
        self.transport = Mock(spec=MailTransport)
        self.transport.send.return_value = DeliveryReceipt(
            message_id="<msg-1@example.com>",
            provider="smtp",
            accepted_at=self.clock.now(),
        )
        self.worker = DeliveryWorker(
            repository=self.repository,
            transport=self.transport,
            classifier=PatternErrorClassifier(),
            retry_policy=RetryPolicy(max_retries=3, base_delay_ms=60_000),
            queue=self.queue,
            clock=self.clock,
        )
        self.log = self.repository.create(
            log_create(to="ada@example.com", job_id="job-1")
        )

    def tearDown(self):
        """Close the queue."""
        self.queue.close()

    def _job(self, **overrides):
        fields = {
            "id": "job-1",
            "to": "ada@example.com",
            "subject": "Your order",
            "html": "<p>Thanks</p>",
            "metadata": {"log_id": self.log.id},
        }
        fields.update(overrides)
        return QueueJob(**fields)

    def _reload(self):
        return self.repository.find_by_id(self.log.id)


class TestDeliverySuccess(DeliveryWorkerTestCase):
    """Test suite for successful deliveries."""

    def test_process_marks_log_sent(self):
        """Test a successful send marks the log SENT with the receipt."""
        self.worker.process(self._job(), attempt=1, max_attempts=3)

        log = self._reload()
        self.assertEqual(log.status, NotificationLogStatus.SENT)
        self.assertEqual(log.sent_at, self.clock.now())
        self.assertEqual(log.metadata["message_id"], "<msg-1@example.com>")
        self.assertEqual(log.metadata["provider"], "smtp")

        message = self.transport.send.call_args.args[0]
        self.assertEqual(message.to, "ada@example.com")
        self.assertEqual(message.headers["X-Notification-Log-ID"], self.log.id)

    def test_process_falls_back_to_stored_payload(self):
        """Test content missing from the job is read from the log payload."""
        self.worker.process(self._job(subject="", html=""), attempt=1, max_attempts=3)

        message = self.transport.send.call_args.args[0]
        self.assertEqual(message.subject, self.log.payload["subject"])
        self.assertEqual(message.html, self.log.payload["html"])
        self.assertEqual(message.from_address, "noreply@example.com")

    def test_missing_content_marks_log_error(self):
        """Test a job with no content anywhere is marked ERROR without sending."""
        log = self.repository.create(log_create(payload={}, job_id="job-2"))

        self.worker.process(
            self._job(id="job-2", subject="", html="", metadata={"log_id": log.id})
        )

        stored = self.repository.find_by_id(log.id)
        self.assertEqual(stored.status, NotificationLogStatus.ERROR)
        self.assertIn("Missing email content", stored.error_log[0])
        self.transport.send.assert_not_called()


class TestDeliverySkips(DeliveryWorkerTestCase):
    """Test suite for jobs that must not send."""

    def test_sent_log_is_not_resent(self):
        """Test a log already SENT is skipped."""
        self.repository.mark_as_sent(self.log.id, metadata={})

        self.worker.process(self._job())

        self.transport.send.assert_not_called()

    def test_canceled_log_is_skipped(self):
        """Test a canceled log is skipped."""
        self.repository.update_status(self.log.id, NotificationLogStatus.CANCELED)

        self.worker.process(self._job())

        self.transport.send.assert_not_called()
        self.assertEqual(self._reload().status, NotificationLogStatus.CANCELED)

    def test_stale_job_is_skipped(self):
        """Test a job superseded by a newer job id does not send."""
        self.repository.update(self.log.id, NotificationLogUpdate(job_id="job-2"))

        self.worker.process(self._job(id="job-1"))

        self.transport.send.assert_not_called()
        self.assertEqual(self._reload().status, NotificationLogStatus.QUEUED)

    def test_unknown_log_is_ignored(self):
        """Test a job whose log was deleted is dropped quietly."""
        self.repository.delete(self.log.id)

        self.worker.process(self._job())

        self.transport.send.assert_not_called()

    def test_job_without_log_id_is_ignored(self):
        """Test a job without a log reference is dropped."""
        self.worker.process(self._job(metadata={}))

        self.transport.send.assert_not_called()


class TestDeliveryFailures(DeliveryWorkerTestCase):
    """Test suite for failure classification and retries."""

    def test_permanent_failure_fails_log_without_retry(self):
        """Test a permanent failure marks FAILED and does not raise."""
        self.transport.send.side_effect = PermanentSendFailure("Invalid recipient")

        self.worker.process(self._job(), attempt=1, max_attempts=3)

        log = self._reload()
        self.assertEqual(log.status, NotificationLogStatus.FAILED)
        self.assertEqual(log.retry_count, 0)
        self.assertEqual(log.error_log, ["Invalid recipient"])
        self.assertEqual(self.queue.metrics()["email-delivery"].delayed, 0)

    def test_permanent_pattern_in_generic_error(self):
        """Test a generic error matching a permanent pattern is not retried."""
        self.transport.send.side_effect = RuntimeError("550 Mailbox unavailable")

        self.worker.process(self._job(), attempt=1, max_attempts=3)

        self.assertEqual(self._reload().status, NotificationLogStatus.FAILED)

    def test_transient_failure_with_attempts_left_raises(self):
        """Test the queue is asked to retry while attempts remain."""
        self.transport.send.side_effect = TransientSendFailure("Connection reset")

        with self.assertRaises(TransientSendFailure):
            self.worker.process(self._job(), attempt=1, max_attempts=3)

        log = self._reload()
        self.assertEqual(log.status, NotificationLogStatus.RETRYING)
        self.assertEqual(log.retry_count, 0)
        self.assertEqual(log.error_log, ["Connection reset"])

    def test_queue_retry_records_next_attempt_time(self):
        """Test a queue-level retry stores when the queue will try again."""
        self.transport.send.side_effect = ConnectionError("connection reset")

        with self.assertRaises(TransientSendFailure):
            self.worker.process(self._job(), attempt=1, max_attempts=3)
        first = self._reload().next_retry_at
        with self.assertRaises(TransientSendFailure):
            self.worker.process(self._job(), attempt=2, max_attempts=3)

        log = self._reload()
        self.assertEqual(log.status, NotificationLogStatus.RETRYING)
        self.assertEqual(first, self.clock.now() + timedelta(seconds=1))
        self.assertEqual(log.next_retry_at, self.clock.now() + timedelta(seconds=2))
        self.assertEqual(log.retry_count, 0)

    def test_exhausted_attempts_schedule_business_retry(self):
        """Test a fresh job is scheduled at next_retry_at once the queue gives up."""
        self.transport.send.side_effect = TransientSendFailure("Connection reset")

        self.worker.process(self._job(), attempt=3, max_attempts=3)

        log = self._reload()
        self.assertEqual(log.status, NotificationLogStatus.RETRYING)
        self.assertEqual(log.retry_count, 1)
        self.assertEqual(log.next_retry_at, self.clock.now() + timedelta(minutes=1))
        self.assertNotEqual(log.job_id, "job-1")

        retry_job = self.queue.get_job(log.job_id)
        self.assertEqual(retry_job.state, JobState.DELAYED)
        self.assertEqual(retry_job.scheduled_time, log.next_retry_at)
        self.assertEqual(retry_job.log_id, self.log.id)

    def test_exhausted_retry_budget_fails_log(self):
        """Test the log is FAILED once business retries are used up."""
        self.repository.update(self.log.id, NotificationLogUpdate(retry_count=3))
        self.transport.send.side_effect = TransientSendFailure("Connection reset")

        self.worker.process(self._job(), attempt=3, max_attempts=3)

        log = self._reload()
        self.assertEqual(log.status, NotificationLogStatus.FAILED)
        self.assertEqual(log.retry_count, 4)
        self.assertIsNone(log.next_retry_at)
        self.assertEqual(self.queue.metrics()["email-delivery"].delayed, 0)

    def test_retry_enqueue_failure_fails_log(self):
        """Test a retry that cannot be queued leaves the log FAILED."""
        self.queue.close()
        self.transport.send.side_effect = TransientSendFailure("Connection reset")

        self.worker.process(self._job(), attempt=3, max_attempts=3)

        log = self._reload()
        self.assertEqual(log.status, NotificationLogStatus.FAILED)
        self.assertTrue(log.error_log[-1].startswith("Failed to schedule retry"))

    def test_queue_redelivers_until_success(self):
        """Test the in-memory queue re-runs a transiently failing job."""
        self.queue.set_handler(self.worker.process)
        receipt = self.transport.send.return_value
        self.transport.send.side_effect = [TransientSendFailure("timeout"), receipt]
        self.queue.enqueue(self._job(id=None), EnqueueOptions(job_id="job-1"))

        self.queue.process_next()
        self.clock.advance(seconds=1)
        self.queue.process_next()

        self.assertEqual(self._reload().status, NotificationLogStatus.SENT)
        self.assertEqual(self.transport.send.call_count, 2)


class TestSendEmailJob(SimpleTestCase):
    """Test suite for the RQ entry point."""

    @patch("notifications.jobs.email_jobs.get_current_job")
    @patch("notifications.container.get_container")
    def test_attempt_derived_from_retries_left(self, mock_get_container, mock_current):
        """Test the attempt number comes from the RQ job's retries_left."""
        mock_current.return_value = Mock(id="rq-job-1", retries_left=1)
        worker = mock_get_container.return_value.delivery_worker

        send_email_job(
            {
                "id": "rq-job-1",
                "to": "ada@example.com",
                "subject": "Hi",
                "html": "<p>Hi</p>",
                "max_attempts": 3,
                "metadata": {"log_id": "log-1"},
            }
        )

        job, attempt, max_attempts = worker.process.call_args.args
        self.assertEqual(job.id, "rq-job-1")
        self.assertEqual(job.log_id, "log-1")
        self.assertEqual((attempt, max_attempts), (2, 3))

    @patch("notifications.jobs.email_jobs.get_current_job", return_value=None)
    @patch("notifications.container.get_container")
    def test_runs_outside_worker(self, mock_get_container, _mock_current):
        """Test the job can be run synchronously outside an RQ worker."""
        worker = mock_get_container.return_value.delivery_worker

        send_email_job(
            {
                "id": "job-7",
                "to": "ada@example.com",
                "subject": "Hi",
                "html": "<p>Hi</p>",
                "max_attempts": 3,
                "metadata": {"log_id": "log-1"},
            }
        )

        job, attempt, max_attempts = worker.process.call_args.args
        self.assertEqual(job.id, "job-7")
        self.assertEqual((attempt, max_attempts), (1, 3))
