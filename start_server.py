"""Production server startup script for the notification dispatch service.

This module provides the entry point for starting the Django application
with Gunicorn in production environments (Docker containers, Kubernetes).
Delivery workers run separately via ``manage.py rqworker high default low``.
"""

import os
import sys

from gunicorn.app.wsgiapp import run


def build_gunicorn_argv() -> list[str]:
    """Build the Gunicorn command line from the environment.

    Returns:
        Argument vector for Gunicorn's WSGI runner.
    """
    return [
        "gunicorn",
        "dispatch_service.wsgi:application",
        "--bind",
        os.getenv("BIND_ADDRESS", "0.0.0.0:8000"),
        "--workers",
        os.getenv("GUNICORN_WORKERS", "4"),
        "--threads",
        os.getenv("GUNICORN_THREADS", "2"),
        "--timeout",
        "60",
        "--access-logfile",
        "-",
        "--error-logfile",
        "-",
    ]


def main():
    """Start the notification dispatch service using Gunicorn."""
    sys.argv = build_gunicorn_argv()
    run()


if __name__ == "__main__":
    main()
