"""Runtime configuration shared by the dispatch and admin services."""

from dataclasses import dataclass

from notifications.constants import DEFAULT_BASE_RETRY_DELAY_MS, DEFAULT_MAX_RETRIES

PRODUCTION = "production"


@dataclass(frozen=True)
class DispatchConfig:
    """Plain settings values, read once from Django settings.

    Attributes:
        environment: Deployment environment name.
        max_retries: Business-level retry budget per log.
        base_retry_delay_ms: Delay before the first business-level retry.
        concurrency: Threads used to fan a dispatch out to its recipients.
        recipient_timeout: Seconds one recipient may take during dispatch.
        default_from: Sender address when a request gives none.
        allow_degraded_queue: Accept jobs while the queue backend is down.
    """

    environment: str = "development"
    max_retries: int = DEFAULT_MAX_RETRIES
    base_retry_delay_ms: int = DEFAULT_BASE_RETRY_DELAY_MS
    concurrency: int = 4
    recipient_timeout: float = 10.0
    default_from: str | None = None
    allow_degraded_queue: bool = False

    @property
    def is_production(self) -> bool:
        return self.environment == PRODUCTION

    @property
    def degraded_queue_allowed(self) -> bool:
        """Degraded queue mode is never honoured in production."""
        return self.allow_degraded_queue and not self.is_production

    @classmethod
    def from_settings(cls, settings) -> "DispatchConfig":
        return cls(
            environment=settings.ENVIRONMENT,
            max_retries=settings.NOTIFICATION_MAX_RETRIES,
            base_retry_delay_ms=settings.NOTIFICATION_BASE_RETRY_DELAY,
            concurrency=max(int(settings.NOTIFICATION_DISPATCH_CONCURRENCY), 1),
            recipient_timeout=float(settings.NOTIFICATION_RECIPIENT_TIMEOUT),
            default_from=settings.DEFAULT_FROM_EMAIL,
            allow_degraded_queue=settings.NOTIFICATION_QUEUE_ALLOW_DEGRADED,
        )
