"""Request ID middleware for log correlation across services."""

import uuid
from collections.abc import Callable

from django.http import HttpRequest, HttpResponse

from notifications.constants import REQUEST_ID_HEADER
from notifications.logging.context import clear_request_id, set_request_id


class RequestIDMiddleware:
    """Attach a request id to every request, its log events and its response.

    An incoming X-Request-ID header is reused so that a dispatch call can be
    traced from the calling service through to the queued delivery jobs;
    otherwise a UUID4 is generated. The thread-local id is always cleared
    once the response is produced.
    """

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]) -> None:
        """Initialize the middleware.

        Args:
            get_response: The next middleware or view in the chain.
        """
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        """Process the request with a bound request id.

        Args:
            request: The incoming HTTP request.

        Returns:
            The HTTP response with the request id header added.
        """
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        set_request_id(request_id)
        request.request_id = request_id  # type: ignore[attr-defined]

        try:
            response = self.get_response(request)
            response[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            clear_request_id()
