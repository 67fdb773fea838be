"""Delivery queue backends."""

from .delivery_queue import DeliveryQueue, JobHandler
from .in_memory_delivery_queue import InMemoryDeliveryQueue
from .rq_delivery_queue import PRIORITY_QUEUES, RqDeliveryQueue

__all__ = [
    "PRIORITY_QUEUES",
    "DeliveryQueue",
    "InMemoryDeliveryQueue",
    "JobHandler",
    "RqDeliveryQueue",
]
