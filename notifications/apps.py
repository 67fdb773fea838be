"""Django application configuration for notifications."""

from django.apps import AppConfig
from django.conf import settings

import structlog

from notifications.config.dispatch_config import PRODUCTION

logger = structlog.get_logger(__name__)


class NotificationsConfig(AppConfig):
    """Configuration class for the notifications application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "notifications"

    def ready(self) -> None:
        """Configure logging and report insecure webhook settings."""
        if getattr(settings, "STRUCTLOG_CONFIGURE", False):
            from notifications.logging import setup_logging  # noqa: PLC0415

            setup_logging()

        if settings.ENVIRONMENT == PRODUCTION and not settings.EMAIL_WEBHOOK_SECRET:
            logger.warning(
                "webhook_signature_verification_disabled",
                environment=settings.ENVIRONMENT,
                detail="EMAIL_WEBHOOK_SECRET is not set; webhook signatures are not verified",
            )
