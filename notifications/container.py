"""Composition root wiring the notification services from Django settings.

Every runtime object is built here once; components receive their
collaborators through their constructors and never read settings
themselves. Tests replace the container with ``set_container``.
"""

import threading
from dataclasses import dataclass

from django.conf import settings
from django.db import connections

import structlog

from notifications.clock import Clock, SystemClock
from notifications.config.dispatch_config import DispatchConfig
from notifications.jobs.email_jobs import DeliveryWorker
from notifications.queues import DeliveryQueue, InMemoryDeliveryQueue, RqDeliveryQueue
from notifications.repositories import (
    InMemoryNotificationLogRepository,
    NotificationLogRepository,
)
from notifications.services.admin_service import NotificationAdminService
from notifications.services.health_service import HealthService
from notifications.services.mail_transport import (
    LoggingMailTransport,
    MailTransport,
    SmtpMailTransport,
)
from notifications.services.notification_log_service import NotificationLogService
from notifications.services.notification_service import NotificationDispatchService
from notifications.services.retry_policy import PatternErrorClassifier, RetryPolicy
from notifications.services.template_renderer import TemplateRenderer
from notifications.services.webhook_service import WebhookReconciler

logger = structlog.get_logger(__name__)


@dataclass
class ServiceContainer:
    """Every long-lived object of the notification service."""

    config: DispatchConfig
    clock: Clock
    repository: NotificationLogRepository
    queue: DeliveryQueue
    renderer: TemplateRenderer
    transport: MailTransport
    retry_policy: RetryPolicy
    delivery_worker: DeliveryWorker
    dispatch_service: NotificationDispatchService
    log_service: NotificationLogService
    admin_service: NotificationAdminService
    webhook_reconciler: WebhookReconciler
    health_service: HealthService

    def close(self) -> None:
        self.queue.close()


def _build_repository(backend: str, clock: Clock) -> NotificationLogRepository:
    if backend == "memory":
        return InMemoryNotificationLogRepository(clock=clock)
    if backend == "database":
        from notifications.repositories.django_notification_log_repository import (
            DjangoNotificationLogRepository,
        )

        return DjangoNotificationLogRepository(clock=clock)
    raise ValueError(f"Unknown NOTIFICATION_LOG_BACKEND: {backend}")


def _build_queue(backend: str, clock: Clock, config: DispatchConfig) -> DeliveryQueue:
    if backend == "memory":
        return InMemoryDeliveryQueue(clock=clock)
    if backend == "rq":
        return RqDeliveryQueue(clock=clock, allow_degraded=config.degraded_queue_allowed)
    raise ValueError(f"Unknown NOTIFICATION_QUEUE_BACKEND: {backend}")


def _build_transport(backend: str, clock: Clock) -> MailTransport:
    if backend == "log":
        return LoggingMailTransport(clock=clock)
    if backend == "smtp":
        return SmtpMailTransport.from_settings(settings, clock=clock)
    raise ValueError(f"Unknown NOTIFICATION_TRANSPORT: {backend}")


def build_container(
    clock: Clock | None = None,
    repository: NotificationLogRepository | None = None,
    queue: DeliveryQueue | None = None,
    transport: MailTransport | None = None,
    config: DispatchConfig | None = None,
) -> ServiceContainer:
    """Build the service graph.

    Collaborators not passed in are chosen by the ``NOTIFICATION_*``
    backend settings.

    Args:
        clock: Source of timestamps.
        repository: Notification log store.
        queue: Delivery queue.
        transport: Mail transport used by the delivery worker.
        config: Dispatch configuration.

    Returns:
        The wired container.
    """
    clock = clock or SystemClock()
    config = config or DispatchConfig.from_settings(settings)
    repository = repository or _build_repository(settings.NOTIFICATION_LOG_BACKEND, clock)
    queue = queue or _build_queue(settings.NOTIFICATION_QUEUE_BACKEND, clock, config)
    transport = transport or _build_transport(settings.NOTIFICATION_TRANSPORT, clock)
    renderer = TemplateRenderer()
    retry_policy = RetryPolicy(
        max_retries=config.max_retries, base_delay_ms=config.base_retry_delay_ms
    )

    worker = DeliveryWorker(
        repository=repository,
        transport=transport,
        classifier=PatternErrorClassifier(),
        retry_policy=retry_policy,
        queue=queue,
        clock=clock,
    )
    if isinstance(queue, InMemoryDeliveryQueue) and queue.handler is None:
        queue.set_handler(worker.process)
        # Tests drain the queue explicitly
        if not getattr(settings, "TEST_MODE", False):
            queue.start()

    return ServiceContainer(
        config=config,
        clock=clock,
        repository=repository,
        queue=queue,
        renderer=renderer,
        transport=transport,
        retry_policy=retry_policy,
        delivery_worker=worker,
        dispatch_service=NotificationDispatchService(
            repository=repository,
            queue=queue,
            renderer=renderer,
            clock=clock,
            config=config,
            release_thread_resources=connections.close_all,
        ),
        log_service=NotificationLogService(repository),
        admin_service=NotificationAdminService(
            repository=repository,
            queue=queue,
            renderer=renderer,
            clock=clock,
            config=config,
        ),
        webhook_reconciler=WebhookReconciler(
            repository=repository,
            clock=clock,
            secret=settings.EMAIL_WEBHOOK_SECRET,
            retry_policy=retry_policy,
        ),
        health_service=HealthService(
            queue=queue,
            check_database=settings.NOTIFICATION_LOG_BACKEND == "database",
        ),
    )


_container: ServiceContainer | None = None
_lock = threading.Lock()


def get_container() -> ServiceContainer:
    """Return the process-wide container, building it on first use."""
    global _container
    if _container is None:
        with _lock:
            if _container is None:
                _container = build_container()
                logger.info(
                    "service_container_built",
                    log_backend=settings.NOTIFICATION_LOG_BACKEND,
                    queue_backend=settings.NOTIFICATION_QUEUE_BACKEND,
                    transport=settings.NOTIFICATION_TRANSPORT,
                )
    return _container


def set_container(container: ServiceContainer | None) -> None:
    """Replace the process-wide container; None resets it."""
    global _container
    with _lock:
        _container = container
