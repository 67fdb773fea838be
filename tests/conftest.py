"""Pytest configuration and shared fixtures."""

import os

import django

import pytest

# Configure Django settings for tests
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "dispatch_service.settings_test")
django.setup()

from rest_framework.test import APIClient  # noqa: E402

from notifications.config.dispatch_config import DispatchConfig  # noqa: E402
from notifications.container import build_container, set_container  # noqa: E402
from notifications.queues import InMemoryDeliveryQueue  # noqa: E402
from notifications.repositories import InMemoryNotificationLogRepository  # noqa: E402
from notifications.services.mail_transport import LoggingMailTransport  # noqa: E402
from tests.factories import FixedClock  # noqa: E402


@pytest.fixture
def fixed_clock():
    """Provide a clock frozen at 2024-05-01 12:00 UTC."""
    return FixedClock()


@pytest.fixture
def log_repository(fixed_clock):
    """Provide an empty in-memory notification log repository."""
    return InMemoryNotificationLogRepository(clock=fixed_clock)


@pytest.fixture
def delivery_queue(fixed_clock):
    """Provide an in-memory delivery queue without a handler."""
    queue = InMemoryDeliveryQueue(clock=fixed_clock)
    yield queue
    queue.close()


@pytest.fixture
def mail_transport(fixed_clock):
    """Provide a transport that records messages instead of sending them."""
    return LoggingMailTransport(clock=fixed_clock)


@pytest.fixture
def container(fixed_clock, log_repository, delivery_queue, mail_transport):
    """Provide a fully wired in-memory container installed process-wide."""
    wired = build_container(
        clock=fixed_clock,
        repository=log_repository,
        queue=delivery_queue,
        transport=mail_transport,
        config=DispatchConfig(concurrency=1, default_from="noreply@example.com"),
    )
    set_container(wired)
    yield wired
    set_container(None)


@pytest.fixture
def api_client():
    """Provide DRF test client."""
    return APIClient()
