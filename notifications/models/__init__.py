"""Database models for the notifications application."""

from notifications.models.notification_log import NotificationLog

__all__ = ["NotificationLog"]
