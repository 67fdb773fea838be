"""Root URL configuration for the notification dispatch service."""

from django.urls import include, path

urlpatterns = [
    path("api/v1/", include("notifications.urls")),
]
