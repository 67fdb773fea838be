"""Delivery queue schemas."""

from notifications.schemas.queue.queue_job import EnqueueOptions, QueueCounts, QueueJob

__all__ = ["EnqueueOptions", "QueueCounts", "QueueJob"]
