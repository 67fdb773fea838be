"""Tests for the RQ-backed delivery queue with RQ mocked out."""

from datetime import timedelta
from unittest.mock import MagicMock, patch

from django.test import SimpleTestCase
from redis.exceptions import ConnectionError as RedisConnectionError
from rq.exceptions import NoSuchJobError

from notifications.enums import JobState, Priority
from notifications.exceptions import QueueUnavailableError
from notifications.queues import RqDeliveryQueue
from notifications.queues.rq_delivery_queue import SEND_EMAIL_JOB
from notifications.schemas.queue import EnqueueOptions, QueueJob
from tests.factories import FixedClock


def _job(**overrides) -> QueueJob:
    fields = {
        "to": "ada@example.com",
        "subject": "Hello",
        "html": "<p>Hello</p>",
        "metadata": {"log_id": "log-1", "notification_type": "ORDER_CONFIRMED"},
    }
    fields.update(overrides)
    return QueueJob(**fields)


class RqDeliveryQueueTestCase(SimpleTestCase):
    """Shared fixtures: one MagicMock per RQ queue name."""

    def setUp(self):
        """Set up test fixtures."""
        self.clock = FixedClock()
        self.rq_queues = {}

        def queue_factory(name):
            if name not in self.rq_queues:
                queue = MagicMock(name=f"rq-{name}")
                queue.name = name
                self.rq_queues[name] = queue
            return self.rq_queues[name]

        self.queue_factory = queue_factory
        self.queue = RqDeliveryQueue(clock=self.clock, queue_factory=queue_factory)


class TestEnqueue(RqDeliveryQueueTestCase):
    """Test suite for RqDeliveryQueue.enqueue."""

    def test_enqueue_routes_by_priority_with_retry(self):
        """Test jobs go to the priority queue with queue-level retries."""
        job_id = self.queue.enqueue(
            _job(priority=Priority.HIGH), EnqueueOptions(job_id="job-1")
        )

        self.assertEqual(job_id, "job-1")
        rq_queue = self.rq_queues["high"]
        args, kwargs = rq_queue.enqueue.call_args
        self.assertEqual(args[0], SEND_EMAIL_JOB)
        self.assertEqual(args[1]["id"], "job-1")
        self.assertEqual(args[1]["to"], "ada@example.com")
        self.assertEqual(kwargs["job_id"], "job-1")
        self.assertEqual(kwargs["meta"]["log_id"], "log-1")
        self.assertEqual(kwargs["retry"].max, 2)
        self.assertEqual(kwargs["retry"].intervals, [1, 2])

    def test_normal_priority_uses_default_queue(self):
        """Test normal priority maps to the default RQ queue."""
        self.queue.enqueue(_job())

        self.rq_queues["default"].enqueue.assert_called_once()

    def test_future_job_is_scheduled(self):
        """Test a future scheduled_time uses enqueue_at."""
        when = self.clock.now() + timedelta(minutes=10)

        self.queue.enqueue(_job(scheduled_time=when))

        rq_queue = self.rq_queues["default"]
        rq_queue.enqueue.assert_not_called()
        self.assertEqual(rq_queue.enqueue_at.call_args.args[0], when)

    def test_redis_error_raises_queue_unavailable(self):
        """Test Redis failures surface as QueueUnavailableError."""
        self.queue_factory("default").enqueue.side_effect = RedisConnectionError("down")

        with self.assertRaises(QueueUnavailableError):
            self.queue.enqueue(_job())

    def test_degraded_mode_returns_id_and_counts(self):
        """Test degraded mode accepts the job and reports it in metrics."""
        queue = RqDeliveryQueue(
            clock=self.clock, allow_degraded=True, queue_factory=self.queue_factory
        )
        self.queue_factory("default").enqueue.side_effect = RedisConnectionError("down")
        for name in ("high", "default", "low"):
            rq_queue = self.queue_factory(name)
            rq_queue.count = 0
            for registry in (
                "started_job_registry",
                "scheduled_job_registry",
                "deferred_job_registry",
                "failed_job_registry",
                "finished_job_registry",
            ):
                getattr(rq_queue, registry).count = 0

        job_id = queue.enqueue(_job(), EnqueueOptions(job_id="job-9"))

        self.assertEqual(job_id, "job-9")
        self.assertEqual(queue.metrics()["default"].degraded, 1)

    def test_closed_queue_rejects_jobs(self):
        """Test a closed queue raises instead of enqueueing."""
        self.queue.close()

        with self.assertRaises(QueueUnavailableError):
            self.queue.enqueue(_job())
        self.assertFalse(self.queue.is_available())


class TestJobLookup(RqDeliveryQueueTestCase):
    """Test suite for get_job and remove."""

    def _rq_job(self, status, retries_left=None):
        rq_job = MagicMock()
        rq_job.get_status.return_value = status
        rq_job.args = [_job(id="job-1").model_dump(mode="json")]
        rq_job.retries_left = retries_left
        rq_job.started_at = None
        rq_job.ended_at = None
        rq_job.exc_info = "Traceback...\nTransientSendFailure: timeout"
        return rq_job

    @patch("notifications.queues.rq_delivery_queue.Job.fetch")
    def test_get_job_maps_rq_status(self, mock_fetch):
        """Test RQ job state and failure reason are translated."""
        mock_fetch.return_value = self._rq_job("failed", retries_left=0)

        job = self.queue.get_job("job-1")

        self.assertEqual(job.state, JobState.FAILED)
        self.assertEqual(job.attempts_made, 3)
        self.assertEqual(job.failed_reason, "TransientSendFailure: timeout")

    @patch("notifications.queues.rq_delivery_queue.Job.fetch")
    def test_get_job_unknown_returns_none(self, mock_fetch):
        """Test missing jobs return None."""
        mock_fetch.side_effect = NoSuchJobError()

        self.assertIsNone(self.queue.get_job("missing"))

    @patch("notifications.queues.rq_delivery_queue.Job.fetch")
    def test_remove_queued_job(self, mock_fetch):
        """Test queued jobs are canceled and deleted."""
        rq_job = self._rq_job("queued")
        mock_fetch.return_value = rq_job

        self.assertTrue(self.queue.remove("job-1"))
        rq_job.cancel.assert_called_once()
        rq_job.delete.assert_called_once()

    @patch("notifications.queues.rq_delivery_queue.Job.fetch")
    def test_remove_started_job_returns_false(self, mock_fetch):
        """Test running jobs cannot be removed."""
        rq_job = self._rq_job("started")
        mock_fetch.return_value = rq_job

        self.assertFalse(self.queue.remove("job-1"))
        rq_job.cancel.assert_not_called()


class TestMaintenance(RqDeliveryQueueTestCase):
    """Test suite for retry_failed, clean_completed and is_available."""

    def test_retry_failed_requeues_every_failed_job(self):
        """Test failed jobs in every queue are requeued."""
        for name in ("high", "default", "low"):
            self.queue_factory(name).failed_job_registry.get_job_ids.return_value = []
        self.queue_factory("default").failed_job_registry.get_job_ids.return_value = [
            "a",
            "b",
        ]

        self.assertEqual(self.queue.retry_failed(), 2)
        registry = self.rq_queues["default"].failed_job_registry
        self.assertEqual([c.args[0] for c in registry.requeue.call_args_list], ["a", "b"])

    @patch("notifications.queues.rq_delivery_queue.Job.fetch_many")
    def test_clean_completed_removes_old_jobs(self, mock_fetch_many):
        """Test finished jobs older than the cutoff are deleted."""
        old = MagicMock(ended_at=self.clock.now() - timedelta(days=2))
        recent = MagicMock(ended_at=self.clock.now())
        mock_fetch_many.side_effect = lambda ids, connection: (
            [old, recent] if ids == ["old", "recent"] else []
        )
        for name in ("high", "default", "low"):
            self.queue_factory(name).finished_job_registry.get_job_ids.return_value = []
        self.queue_factory("default").finished_job_registry.get_job_ids.return_value = [
            "old",
            "recent",
        ]

        removed = self.queue.clean_completed(timedelta(days=1))

        self.assertEqual(removed, 1)
        self.rq_queues["default"].finished_job_registry.remove.assert_called_once_with(
            old, delete_job=True
        )

    def test_is_available_pings_redis(self):
        """Test availability follows the Redis ping."""
        connection = self.queue_factory("default").connection
        connection.ping.return_value = True
        self.assertTrue(self.queue.is_available())

        connection.ping.side_effect = RedisConnectionError("down")
        self.assertFalse(self.queue.is_available())
