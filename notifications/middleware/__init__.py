"""Middleware components for the notification dispatch service."""

from notifications.middleware.process_time import ProcessTimeMiddleware
from notifications.middleware.request_id import RequestIDMiddleware

__all__ = [
    "ProcessTimeMiddleware",
    "RequestIDMiddleware",
]
