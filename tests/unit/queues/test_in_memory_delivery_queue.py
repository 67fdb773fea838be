"""Tests for the in-memory delivery queue."""

from datetime import timedelta

import pytest

from notifications.enums import JobState, Priority
from notifications.exceptions import (
    PermanentSendFailure,
    QueueUnavailableError,
    TransientSendFailure,
)
from notifications.schemas.queue import EnqueueOptions, QueueJob


def _job(**overrides) -> QueueJob:
    fields = {
        "to": "ada@example.com",
        "subject": "Hello",
        "html": "<p>Hello</p>",
        "metadata": {"log_id": "log-1"},
    }
    fields.update(overrides)
    return QueueJob(**fields)


class RecordingHandler:
    """Handler that records jobs and can fail on demand."""

    def __init__(self, failures=()):
        self.jobs = []
        self.failures = list(failures)

    def __call__(self, job):
        self.jobs.append(job)
        if self.failures:
            raise self.failures.pop(0)


class TestEnqueue:
    """Enqueueing and job lookup."""

    def test_enqueue_uses_given_job_id(self, delivery_queue):
        job_id = delivery_queue.enqueue(_job(), EnqueueOptions(job_id="job-1"))

        job = delivery_queue.get_job("job-1")
        assert job_id == "job-1"
        assert job.state == JobState.WAITING
        assert job.max_attempts == 3
        assert job.log_id == "log-1"

    def test_future_scheduled_time_is_delayed(self, delivery_queue, fixed_clock):
        job_id = delivery_queue.enqueue(
            _job(scheduled_time=fixed_clock.now() + timedelta(minutes=5))
        )

        assert delivery_queue.get_job(job_id).state == JobState.DELAYED

    def test_closed_queue_rejects_jobs(self, delivery_queue):
        delivery_queue.close()

        assert not delivery_queue.is_available()
        with pytest.raises(QueueUnavailableError):
            delivery_queue.enqueue(_job())


class TestProcessing:
    """Priority order, retries and failure handling."""

    def test_priority_classes_then_fifo(self, delivery_queue):
        handler = RecordingHandler()
        delivery_queue.set_handler(handler)
        delivery_queue.enqueue(_job(), EnqueueOptions(job_id="normal-1"))
        delivery_queue.enqueue(_job(priority=Priority.LOW), EnqueueOptions(job_id="low"))
        delivery_queue.enqueue(_job(priority=Priority.HIGH), EnqueueOptions(job_id="high"))
        delivery_queue.enqueue(_job(), EnqueueOptions(job_id="normal-2"))

        processed = delivery_queue.drain()

        assert processed == 4
        assert [job.id for job in handler.jobs] == ["high", "normal-1", "normal-2", "low"]

    def test_success_completes_job(self, delivery_queue):
        delivery_queue.set_handler(RecordingHandler())
        job_id = delivery_queue.enqueue(_job())

        result = delivery_queue.process_next()

        assert result.state == JobState.COMPLETED
        assert result.attempts_made == 1
        assert delivery_queue.metrics()["email-delivery"].completed == 1

    def test_failure_is_retried_after_backoff(self, delivery_queue, fixed_clock):
        handler = RecordingHandler(failures=[TransientSendFailure("timeout")])
        delivery_queue.set_handler(handler)
        job_id = delivery_queue.enqueue(_job())

        first = delivery_queue.process_next()
        assert first.state == JobState.DELAYED
        assert delivery_queue.process_next() is None

        fixed_clock.advance(seconds=1)
        second = delivery_queue.process_next()

        assert second.state == JobState.COMPLETED
        assert second.attempts_made == 2
        assert [job.attempts_made for job in handler.jobs] == [1, 2]
        assert delivery_queue.get_job(job_id).failed_reason == "timeout"

    def test_attempts_exhausted_fails_job(self, delivery_queue, fixed_clock):
        delivery_queue.set_handler(
            RecordingHandler(failures=[TransientSendFailure("timeout")] * 3)
        )
        job_id = delivery_queue.enqueue(_job())

        delivery_queue.process_next()
        fixed_clock.advance(seconds=1)
        delivery_queue.process_next()
        fixed_clock.advance(seconds=2)
        last = delivery_queue.process_next()

        assert last.state == JobState.FAILED
        assert delivery_queue.get_job(job_id).attempts_made == 3

    def test_permanent_failure_is_not_retried(self, delivery_queue):
        delivery_queue.set_handler(
            RecordingHandler(failures=[PermanentSendFailure("mailbox unavailable")])
        )
        delivery_queue.enqueue(_job())

        result = delivery_queue.process_next()

        assert result.state == JobState.FAILED
        assert result.attempts_made == 1

    def test_process_without_handler_raises(self, delivery_queue):
        delivery_queue.enqueue(_job())

        with pytest.raises(RuntimeError):
            delivery_queue.process_next()

    def test_delayed_job_runs_when_due(self, delivery_queue, fixed_clock):
        handler = RecordingHandler()
        delivery_queue.set_handler(handler)
        delivery_queue.enqueue(_job(scheduled_time=fixed_clock.now() + timedelta(minutes=1)))

        assert delivery_queue.drain() == 0
        fixed_clock.advance(minutes=1)
        assert delivery_queue.drain() == 1


class TestMaintenance:
    """Removal, requeue and cleanup."""

    def test_remove_waiting_job(self, delivery_queue):
        handler = RecordingHandler()
        delivery_queue.set_handler(handler)
        job_id = delivery_queue.enqueue(_job())

        assert delivery_queue.remove(job_id) is True
        assert delivery_queue.get_job(job_id).state == JobState.CANCELED
        assert delivery_queue.drain() == 0
        assert handler.jobs == []

    def test_remove_completed_or_unknown_job_returns_false(self, delivery_queue):
        delivery_queue.set_handler(RecordingHandler())
        job_id = delivery_queue.enqueue(_job())
        delivery_queue.drain()

        assert delivery_queue.remove(job_id) is False
        assert delivery_queue.remove("missing") is False

    def test_retry_failed_requeues_jobs(self, delivery_queue):
        delivery_queue.set_handler(
            RecordingHandler(failures=[PermanentSendFailure("rejected")])
        )
        job_id = delivery_queue.enqueue(_job())
        delivery_queue.drain()

        assert delivery_queue.retry_failed() == 1
        assert delivery_queue.get_job(job_id).state == JobState.WAITING
        assert delivery_queue.drain() == 1
        assert delivery_queue.get_job(job_id).state == JobState.COMPLETED

    def test_clean_completed_respects_age(self, delivery_queue, fixed_clock):
        delivery_queue.set_handler(RecordingHandler())
        old = delivery_queue.enqueue(_job())
        delivery_queue.drain()
        fixed_clock.advance(hours=2)
        recent = delivery_queue.enqueue(_job())
        delivery_queue.drain()

        removed = delivery_queue.clean_completed(timedelta(hours=1))

        assert removed == 1
        assert delivery_queue.get_job(old) is None
        assert delivery_queue.get_job(recent) is not None

    def test_completed_jobs_expire_after_retention(self, delivery_queue, fixed_clock):
        delivery_queue.set_handler(RecordingHandler())
        job_id = delivery_queue.enqueue(_job())
        delivery_queue.drain()

        fixed_clock.advance(hours=24)

        assert delivery_queue.get_job(job_id) is None

    def test_metrics_counts_states(self, delivery_queue, fixed_clock):
        delivery_queue.enqueue(_job())
        delivery_queue.enqueue(_job(scheduled_time=fixed_clock.now() + timedelta(hours=1)))

        counts = delivery_queue.metrics()["email-delivery"]

        assert (counts.waiting, counts.delayed, counts.failed) == (1, 1, 0)
