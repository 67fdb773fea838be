"""API views for the notification dispatch service."""

from typing import Any

import structlog
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from notifications.constants import DEFAULT_STATS_DAYS, WEBHOOK_SIGNATURE_HEADER
from notifications.container import get_container
from notifications.exceptions import ValidationError
from notifications.schemas.notification import (
    CancelRequest,
    CleanupRequest,
    NotificationLogFilters,
    NotificationLogQueryOptions,
    RetryBulkRequest,
    RetryRequest,
)

logger = structlog.get_logger(__name__)


def _query_params(request) -> dict[str, Any]:
    """Flatten query params; repeated keys become lists."""
    params: dict[str, Any] = {}
    for key in request.query_params:
        values = request.query_params.getlist(key)
        params[key] = values if len(values) > 1 else values[0]
    return params


def _body(request) -> dict[str, Any]:
    return request.data if isinstance(request.data, dict) else {}


class LivenessCheckView(APIView):
    """Liveness probe endpoint for Kubernetes.

    Returns 200 if the service is alive and running.
    This should not check external dependencies.
    """

    def get(self, _request):
        liveness = get_container().health_service.get_liveness_status()
        return Response(liveness.to_response(), status=status.HTTP_200_OK)


class ReadinessCheckView(APIView):
    """Readiness probe endpoint for Kubernetes.

    Returns 200 when ready, and also when degraded (database or delivery
    queue down) so the service stays in rotation while it recovers.
    """

    def get(self, _request):
        readiness = get_container().health_service.get_readiness_status()
        return Response(readiness.to_response(), status=status.HTTP_200_OK)


class SendNotificationView(APIView):
    """API endpoint for dispatching a notification to one or more recipients."""

    def post(self, request):
        """Handle POST request to dispatch a notification.

        Args:
            request: HTTP request whose body is a DispatchRequest.

        Returns:
            202 Accepted with the job and log ids per queued recipient
            400 Bad Request for an invalid request, type, channel or data
            503 Service Unavailable if the delivery queue is down
        """
        logger.info(
            "notification_request_received",
            notification_type=_body(request).get("type"),
        )
        result = get_container().dispatch_service.dispatch(_body(request))
        return Response(result.to_response(), status=status.HTTP_202_ACCEPTED)


class JobStatusView(APIView):
    """API endpoint reporting the aggregated status of a delivery job."""

    def get(self, _request, job_id):
        job_status = get_container().dispatch_service.get_status(job_id)
        return Response(job_status.to_response(), status=status.HTTP_200_OK)


class TemplateListView(APIView):
    """API endpoint listing the available email templates."""

    def get(self, _request):
        templates = get_container().renderer.list_templates()
        return Response(
            {
                "templates": [template.to_response() for template in templates],
                "count": len(templates),
            },
            status=status.HTTP_200_OK,
        )


class NotificationLogListView(APIView):
    """API endpoint for querying notification logs.

    Filters and paging come from query parameters, in camelCase or
    snake_case: ``status`` and ``type`` (repeated or comma separated),
    ``to``, ``createdAtStart``/``createdAtEnd``, ``sentAtStart``/``sentAtEnd``,
    ``retryCountMin``/``retryCountMax``, ``jobId``, ``page``, ``limit``,
    ``sortBy`` and ``sortOrder``.
    """

    def get(self, request):
        params = _query_params(request)
        filters = NotificationLogFilters.model_validate(params)
        options = NotificationLogQueryOptions.model_validate(params)
        page = get_container().log_service.query(filters, options)
        return Response(page.to_response(), status=status.HTTP_200_OK)


class NotificationLogDetailView(APIView):
    """API endpoint for reading or deleting a single notification log."""

    def get(self, _request, log_id):
        log = get_container().log_service.get(log_id)
        return Response(log.to_response(), status=status.HTTP_200_OK)

    def delete(self, _request, log_id):
        get_container().log_service.delete(log_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class RetryNotificationView(APIView):
    """API endpoint for re-queueing a FAILED or ERROR notification."""

    def post(self, request, log_id):
        """Handle POST request to retry one notification.

        Returns:
            202 Accepted with the new job id
            404 Not Found if the log does not exist
            409 Conflict if the log is not FAILED or ERROR
            503 Service Unavailable if the delivery queue is down
        """
        retry_request = RetryRequest.model_validate(_body(request))
        result = get_container().admin_service.retry(
            log_id, requested_by=retry_request.requested_by
        )
        return Response(result.to_response(), status=status.HTTP_202_ACCEPTED)


class CancelNotificationView(APIView):
    """API endpoint for canceling a notification that has not been sent."""

    def post(self, request, log_id):
        cancel_request = CancelRequest.model_validate(_body(request))
        result = get_container().admin_service.cancel(
            log_id, requested_by=cancel_request.requested_by
        )
        return Response(result.to_response(), status=status.HTTP_200_OK)


class RetryBulkView(APIView):
    """API endpoint for retrying many failed notifications at once."""

    def post(self, request):
        bulk_request = RetryBulkRequest.model_validate(_body(request))
        result = get_container().admin_service.retry_bulk(
            ids=bulk_request.ids,
            filters=bulk_request.filters,
            limit=bulk_request.limit,
            requested_by=bulk_request.requested_by,
        )
        return Response(result.to_response(), status=status.HTTP_200_OK)


class CleanupView(APIView):
    """API endpoint for deleting logs older than a retention window."""

    def post(self, request):
        cleanup_request = CleanupRequest.model_validate(_body(request))
        result = get_container().admin_service.cleanup(
            older_than_days=cleanup_request.older_than_days,
            include_statuses=cleanup_request.include_statuses,
            exclude_statuses=cleanup_request.exclude_statuses,
            limit=cleanup_request.limit,
        )
        return Response(result.to_response(), status=status.HTTP_200_OK)


class NotificationStatsView(APIView):
    """API endpoint for delivery statistics over a trailing window of days."""

    def get(self, request):
        raw_days = request.query_params.get("days", str(DEFAULT_STATS_DAYS))
        try:
            days = int(raw_days)
        except ValueError as e:
            raise ValidationError.for_field(
                "days", f"days must be an integer, got {raw_days!r}", code="int_parsing"
            ) from e
        if days < 1:
            raise ValidationError.for_field(
                "days", "days must be at least 1", code="greater_than_equal"
            )
        stats = get_container().admin_service.stats(since_days=days)
        return Response(stats.to_response(), status=status.HTTP_200_OK)


class QueueMetricsView(APIView):
    """API endpoint reporting job counts per delivery queue."""

    def get(self, _request):
        metrics = get_container().admin_service.queue_metrics()
        return Response(
            {name: counts.to_response() for name, counts in metrics.items()},
            status=status.HTTP_200_OK,
        )


class EmailWebhookView(APIView):
    """Receives delivery events from email providers.

    The body is read raw so the HMAC signature in ``X-Webhook-Signature``
    is checked against the exact bytes the provider signed. A bad
    signature is rejected with 401; every other request is acknowledged
    with 200 so providers do not redeliver.
    """

    def post(self, request, provider="generic"):
        ack = get_container().webhook_reconciler.handle(
            request.body,
            provider=provider,
            signature=request.headers.get(WEBHOOK_SIGNATURE_HEADER),
        )
        return Response(ack.to_response(), status=status.HTTP_200_OK)
