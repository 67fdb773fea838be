"""Unit tests for DispatchConfig."""

from django.conf import settings
from django.test import SimpleTestCase, override_settings

from notifications.config.dispatch_config import DispatchConfig


class TestDispatchConfig(SimpleTestCase):
    """Tests for DispatchConfig."""

    def test_degraded_queue_never_allowed_in_production(self):
        """Test degraded mode is ignored in production."""
        self.assertTrue(DispatchConfig(allow_degraded_queue=True).degraded_queue_allowed)
        self.assertFalse(
            DispatchConfig(
                environment="production", allow_degraded_queue=True
            ).degraded_queue_allowed
        )

    @override_settings(
        NOTIFICATION_MAX_RETRIES=5,
        NOTIFICATION_DISPATCH_CONCURRENCY=0,
        NOTIFICATION_RECIPIENT_TIMEOUT="2.5",
        DEFAULT_FROM_EMAIL="shop@example.com",
    )
    def test_from_settings(self):
        """Test values are read from settings with concurrency floored at 1."""
        config = DispatchConfig.from_settings(settings)

        self.assertEqual(config.environment, "test")
        self.assertEqual(config.max_retries, 5)
        self.assertEqual(config.concurrency, 1)
        self.assertEqual(config.recipient_timeout, 2.5)
        self.assertEqual(config.default_from, "shop@example.com")
