"""Health probe states reported by the readiness endpoint."""

from enum import Enum


class HealthStatus(str, Enum):
    """Result of probing one dependency (database or delivery queue)."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class ReadinessState(str, Enum):
    """Overall readiness; DEGRADED still serves traffic."""

    READY = "ready"
    DEGRADED = "degraded"
