"""URL routing configuration for the notifications application."""

from django.urls import path

from .views import (
    CancelNotificationView,
    CleanupView,
    EmailWebhookView,
    JobStatusView,
    LivenessCheckView,
    NotificationLogDetailView,
    NotificationLogListView,
    NotificationStatsView,
    QueueMetricsView,
    ReadinessCheckView,
    RetryBulkView,
    RetryNotificationView,
    SendNotificationView,
    TemplateListView,
)

urlpatterns = [
    # Health check endpoints
    path("health/live", LivenessCheckView.as_view(), name="health-live"),
    path("health/ready", ReadinessCheckView.as_view(), name="health-ready"),
    # Dispatch endpoints
    path(
        "notifications/send",
        SendNotificationView.as_view(),
        name="notification-send",
    ),
    path(
        "notifications/jobs/<str:job_id>",
        JobStatusView.as_view(),
        name="job-status",
    ),
    path(
        "notifications/templates",
        TemplateListView.as_view(),
        name="template-list",
    ),
    # Log endpoints; fixed paths before the <log_id> routes
    path(
        "notifications/logs",
        NotificationLogListView.as_view(),
        name="notification-log-list",
    ),
    path(
        "notifications/logs/retry-bulk",
        RetryBulkView.as_view(),
        name="notification-retry-bulk",
    ),
    path(
        "notifications/logs/cleanup",
        CleanupView.as_view(),
        name="notification-cleanup",
    ),
    path(
        "notifications/logs/<str:log_id>",
        NotificationLogDetailView.as_view(),
        name="notification-log-detail",
    ),
    path(
        "notifications/logs/<str:log_id>/retry",
        RetryNotificationView.as_view(),
        name="notification-retry",
    ),
    path(
        "notifications/logs/<str:log_id>/cancel",
        CancelNotificationView.as_view(),
        name="notification-cancel",
    ),
    # Admin endpoints
    path(
        "notifications/stats",
        NotificationStatsView.as_view(),
        name="notification-stats",
    ),
    path(
        "notifications/queue/metrics",
        QueueMetricsView.as_view(),
        name="queue-metrics",
    ),
    # Provider webhooks
    path(
        "webhooks/email-status",
        EmailWebhookView.as_view(),
        name="webhook-email-status",
    ),
    path(
        "webhooks/<str:provider>",
        EmailWebhookView.as_view(),
        name="webhook-provider",
    ),
]
