"""Health check service with cached dependency probes."""

import logging
import time
from collections.abc import Callable

from django.db import connection
from django.db.utils import OperationalError

from notifications.enums import HealthStatus, ReadinessState
from notifications.exceptions import QueueUnavailableError
from notifications.queues import DeliveryQueue
from notifications.schemas.health import (
    DependencyHealth,
    LivenessResponse,
    ReadinessResponse,
)

logger = logging.getLogger(__name__)


def _elapsed_ms(start_time: float) -> float:
    return (time.perf_counter() - start_time) * 1000


class HealthService:
    """Service for performing health checks with caching."""

    def __init__(
        self,
        queue: DeliveryQueue,
        check_database: bool = True,
        cache_ttl_seconds: float = 5.0,
        ensure_connection: Callable[[], None] | None = None,
    ) -> None:
        """Initialize the health service.

        Args:
            queue: Delivery queue whose availability is reported.
            check_database: Whether the log store is the database.
            cache_ttl_seconds: Time to live for cached health check results.
            ensure_connection: Database probe; defaults to Django's default
                connection.
        """
        self.queue = queue
        self.check_database = check_database
        self.cache_ttl_seconds = cache_ttl_seconds
        self.ensure_connection = ensure_connection or connection.ensure_connection
        self._cache: dict[str, tuple[float, DependencyHealth]] = {}

    def get_liveness_status(self) -> LivenessResponse:
        return LivenessResponse(status="alive")

    def get_readiness_status(self) -> ReadinessResponse:
        """Get readiness status with database and queue health checks.

        Returns degraded (ready=True, degraded=True) when a dependency is
        down, so the service stays in rotation while it recovers.
        """
        dependencies = {"queue": self._cached("queue", self.check_queue_health)}
        if self.check_database:
            dependencies["database"] = self._cached(
                "database", self.check_database_health
            )

        if all(dependency.healthy for dependency in dependencies.values()):
            return ReadinessResponse(
                ready=True,
                status=ReadinessState.READY,
                degraded=False,
                dependencies=dependencies,
            )
        return ReadinessResponse(
            ready=True,
            status=ReadinessState.DEGRADED,
            degraded=True,
            dependencies=dependencies,
        )

    def _cached(
        self, name: str, check: Callable[[], DependencyHealth]
    ) -> DependencyHealth:
        current_time = time.time()
        cached = self._cache.get(name)
        if cached is not None and current_time - cached[0] < self.cache_ttl_seconds:
            return cached[1]

        health = check()
        if cached is not None and cached[1].healthy != health.healthy:
            if health.healthy:
                logger.info("%s connection recovered", name)
            else:
                logger.warning("%s connection lost: %s", name, health.message)
        self._cache[name] = (current_time, health)
        return health

    def check_database_health(self) -> DependencyHealth:
        """Check database connectivity without executing a query."""
        start_time = time.perf_counter()
        try:
            self.ensure_connection()
        except OperationalError as e:
            return DependencyHealth(
                healthy=False,
                status=HealthStatus.UNHEALTHY,
                message=f"Database connection failed: {e!s}",
                response_time_ms=_elapsed_ms(start_time),
            )
        return DependencyHealth(
            healthy=True,
            status=HealthStatus.HEALTHY,
            message="Database connection successful",
            response_time_ms=_elapsed_ms(start_time),
        )

    def check_queue_health(self) -> DependencyHealth:
        """Check that the delivery queue accepts jobs."""
        start_time = time.perf_counter()
        try:
            available = self.queue.is_available()
        except QueueUnavailableError as e:
            return DependencyHealth(
                healthy=False,
                status=HealthStatus.UNHEALTHY,
                message=f"Delivery queue unavailable: {e.message}",
                response_time_ms=_elapsed_ms(start_time),
            )
        if not available:
            return DependencyHealth(
                healthy=False,
                status=HealthStatus.UNHEALTHY,
                message="Delivery queue unavailable",
                response_time_ms=_elapsed_ms(start_time),
            )
        return DependencyHealth(
            healthy=True,
            status=HealthStatus.HEALTHY,
            message="Delivery queue available",
            response_time_ms=_elapsed_ms(start_time),
        )
