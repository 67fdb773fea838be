"""Liveness and readiness probe bodies."""

from typing import Literal

from pydantic import Field

from notifications.enums import HealthStatus, ReadinessState
from notifications.schemas.base_schema_model import BaseSchemaModel


class DependencyHealth(BaseSchemaModel):
    """Probe result for the database or the delivery queue."""

    healthy: bool
    status: HealthStatus
    message: str
    response_time_ms: float | None = Field(default=None, ge=0)


class LivenessResponse(BaseSchemaModel):
    status: Literal["alive"] = "alive"


class ReadinessResponse(BaseSchemaModel):
    """Readiness of the service and each dependency it probed.

    ``ready`` stays True while degraded: dispatch keeps answering, and
    failures surface per request (503 when the queue is down).
    """

    ready: bool
    status: ReadinessState
    degraded: bool
    dependencies: dict[str, DependencyHealth] = Field(default_factory=dict)
