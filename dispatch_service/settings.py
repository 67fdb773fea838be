"""Django settings for the notification dispatch service.

All deployment-specific values are read from environment variables so the
same settings module serves local development, containers and production.
"""

import os
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "insecure-development-key-change-me")

DEBUG = _env_bool("DJANGO_DEBUG", default=False)

ALLOWED_HOSTS = [
    host.strip()
    for host in os.getenv("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")
    if host.strip()
]

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
SERVICE_NAME = os.getenv("SERVICE_NAME", "notification-dispatch-service")

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "rest_framework",
    "django_rq",
    "notifications",
]

MIDDLEWARE = [
    "notifications.middleware.RequestIDMiddleware",
    "notifications.middleware.ProcessTimeMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "dispatch_service.urls"

WSGI_APPLICATION = "dispatch_service.wsgi.application"
ASGI_APPLICATION = "dispatch_service.asgi.application"

# Database
if os.getenv("POSTGRES_HOST"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "HOST": os.getenv("POSTGRES_HOST"),
            "PORT": os.getenv("POSTGRES_PORT", "5432"),
            "NAME": os.getenv("POSTGRES_DB", "notification_dispatch"),
            "USER": os.getenv("POSTGRES_USER", "notification_dispatch"),
            "PASSWORD": os.getenv("POSTGRES_PASSWORD", ""),
            "CONN_MAX_AGE": int(os.getenv("POSTGRES_CONN_MAX_AGE", "60")),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = False
USE_TZ = True

# Django REST Framework
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.AllowAny"],
    "DEFAULT_RENDERER_CLASSES": ["rest_framework.renderers.JSONRenderer"],
    "DEFAULT_PARSER_CLASSES": ["rest_framework.parsers.JSONParser"],
    "EXCEPTION_HANDLER": "notifications.exceptions.custom_exception_handler",
    "UNAUTHENTICATED_USER": None,
}

# Redis / RQ
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

RQ_QUEUES = {
    "high": {"URL": REDIS_URL, "DEFAULT_TIMEOUT": 300},
    "default": {"URL": REDIS_URL, "DEFAULT_TIMEOUT": 300},
    "low": {"URL": REDIS_URL, "DEFAULT_TIMEOUT": 300},
}

# Email (SMTP transport)
EMAIL_HOST = os.getenv("EMAIL_HOST", "localhost")
EMAIL_PORT = int(os.getenv("EMAIL_PORT", "587"))
EMAIL_HOST_USER = os.getenv("EMAIL_HOST_USER", "")
EMAIL_HOST_PASSWORD = os.getenv("EMAIL_HOST_PASSWORD", "")
EMAIL_USE_TLS = _env_bool("EMAIL_USE_TLS", default=True)
EMAIL_TIMEOUT = int(os.getenv("EMAIL_TIMEOUT", "30"))
DEFAULT_FROM_EMAIL = os.getenv("EMAIL_FROM", "noreply@example.com")

# Notification dispatch
NOTIFICATION_QUEUE_BACKEND = os.getenv("NOTIFICATION_QUEUE_BACKEND", "rq")
# Accept jobs while Redis is down (never honoured in production)
NOTIFICATION_QUEUE_ALLOW_DEGRADED = _env_bool(
    "NOTIFICATION_QUEUE_ALLOW_DEGRADED", default=False
)
NOTIFICATION_LOG_BACKEND = os.getenv("NOTIFICATION_LOG_BACKEND", "database")
NOTIFICATION_TRANSPORT = os.getenv("NOTIFICATION_TRANSPORT", "log")
NOTIFICATION_MAX_RETRIES = int(os.getenv("NOTIFICATION_MAX_RETRIES", "3"))
NOTIFICATION_BASE_RETRY_DELAY = int(
    os.getenv("NOTIFICATION_BASE_RETRY_DELAY", "60000")
)
NOTIFICATION_DISPATCH_CONCURRENCY = int(
    os.getenv("NOTIFICATION_DISPATCH_CONCURRENCY", "4")
)
NOTIFICATION_RECIPIENT_TIMEOUT = float(
    os.getenv("NOTIFICATION_RECIPIENT_TIMEOUT", "10")
)
EMAIL_WEBHOOK_SECRET = os.getenv("EMAIL_WEBHOOK_SECRET", "")

# Logging is configured by notifications.logging.setup_logging() at startup.
STRUCTLOG_CONFIGURE = _env_bool("STRUCTLOG_CONFIGURE", default=True)
LOGGING_CONFIG = None
