"""Global exception handlers for the notification dispatch service."""

import logging
import traceback
from datetime import UTC, datetime
from typing import Any

from django.conf import settings
from django.http import Http404

import pydantic
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler

from notifications.constants import REQUEST_ID_HEADER
from notifications.exceptions.notification_exceptions import (
    InvalidStateTransitionError,
    NotificationError,
    ValidationError,
)
from notifications.logging.context import get_request_id

logger = logging.getLogger(__name__)


def custom_exception_handler(
    exc: Exception, context: dict[str, Any]
) -> Response | None:
    """Custom exception handler for Django REST Framework.

    Handles DRF, Django, pydantic and notification domain exceptions,
    providing:
    - Standard response format for clients: {status, message, request_id, timestamp}
    - Field-level ``errors`` for validation failures
    - Detailed logging for troubleshooting: error type, path, stack trace

    Args:
        exc: The exception that was raised.
        context: Context dictionary containing request and view information.

    Returns:
        A Response object with the error details.
    """
    view = context.get("view")
    request = view.request if view else None
    request_id = get_request_id()

    # Let DRF handle its own exceptions first
    response = exception_handler(exc, context)

    if response is None:
        if isinstance(exc, NotificationError):
            response_data = _create_error_response(
                status_code=exc.status_code,
                message=exc.message,
                request_id=request_id,
            )
            if isinstance(exc, ValidationError):
                response_data["errors"] = exc.errors
            elif isinstance(exc, InvalidStateTransitionError):
                response_data["current_status"] = exc.current_status
            response = Response(response_data, status=exc.status_code)
        elif isinstance(exc, pydantic.ValidationError):
            response_data = _create_error_response(
                status_code=status.HTTP_400_BAD_REQUEST,
                message="Invalid request parameters",
                request_id=request_id,
            )
            response_data["errors"] = format_pydantic_errors(exc)
            response = Response(response_data, status=status.HTTP_400_BAD_REQUEST)
        elif isinstance(exc, Http404):
            response_data = _create_error_response(
                status_code=status.HTTP_404_NOT_FOUND,
                message="The requested resource was not found.",
                request_id=request_id,
            )
            response = Response(response_data, status=status.HTTP_404_NOT_FOUND)
        else:
            # Unhandled exception - log as error and return 500
            response_data = _create_error_response(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                message="An internal server error occurred.",
                request_id=request_id,
            )
            response = Response(
                response_data, status=status.HTTP_500_INTERNAL_SERVER_ERROR
            )

    if request_id and response is not None:
        response[REQUEST_ID_HEADER] = request_id

    _log_exception(exc, request, response)

    return response


def format_pydantic_errors(exc: pydantic.ValidationError) -> list[dict[str, Any]]:
    """Flatten pydantic errors into ``{field, message, code}`` dicts.

    Args:
        exc: The pydantic validation error.

    Returns:
        One dict per failing field, with dotted field paths.
    """
    return [
        {
            "field": ".".join(str(part) for part in error["loc"]) or "__root__",
            "message": error["msg"],
            "code": error["type"],
        }
        for error in exc.errors()
    ]


def _create_error_response(
    status_code: int, message: str, request_id: str | None
) -> dict[str, Any]:
    """Create a standardized error response.

    Args:
        status_code: The HTTP status code.
        message: The error message to return to the client.
        request_id: The request ID for tracing.

    Returns:
        Dictionary with standard error response format.
    """
    return {
        "status": status_code,
        "message": message,
        "request_id": request_id,
        "timestamp": datetime.now(UTC).isoformat(),
    }


def _log_exception(
    exc: Exception,
    request: Any,
    response: Response | None,
) -> None:
    """Log detailed exception information for troubleshooting.

    Client errors (4xx) are logged as warnings, everything else as errors.
    In DEBUG mode, logs include stack traces.

    Args:
        exc: The exception that was raised.
        request: The HTTP request object.
        response: The response object (if available).
    """
    status_code = response.status_code if response is not None else 500
    if isinstance(
        exc, (Http404, APIException, NotificationError, pydantic.ValidationError)
    ):
        log_level = logging.WARNING if 400 <= status_code < 500 else logging.ERROR
    else:
        log_level = logging.ERROR

    error_type = type(exc).__name__
    request_path = request.path if request else "unknown"
    request_method = request.method if request else "unknown"

    log_message = (
        f"Exception occurred: {error_type}: {exc} | "
        f"Path: {request_method} {request_path} | "
        f"Status: {status_code}"
    )

    if settings.DEBUG:
        stack_trace = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )
        log_message += f"\nStack trace:\n{stack_trace}"

    logger.log(log_level, log_message)
