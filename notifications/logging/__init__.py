"""Logging utilities for the notification dispatch service."""

from notifications.logging.config import cleanup_old_logs, setup_logging
from notifications.logging.context import (
    clear_request_id,
    get_request_id,
    set_request_id,
)

__all__ = [
    "cleanup_old_logs",
    "clear_request_id",
    "get_request_id",
    "set_request_id",
    "setup_logging",
]
