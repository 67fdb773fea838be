"""Domain exceptions for notification dispatch and delivery tracking."""

from typing import Any


class NotificationError(Exception):
    """Base exception for notification dispatch errors."""

    status_code = 500

    def __init__(self, message: str):
        """Initialize notification error.

        Args:
            message: Human readable error message
        """
        self.message = message
        super().__init__(message)


class ValidationError(NotificationError):
    """Request shape or content rejected before any side effect (400)."""

    status_code = 400

    def __init__(
        self,
        message: str,
        errors: list[dict[str, Any]] | None = None,
    ):
        """Initialize validation error.

        Args:
            message: Summary of the validation failure
            errors: Field-level errors as ``{field, message, code}`` dicts
        """
        self.errors = errors or []
        super().__init__(message)

    @classmethod
    def for_field(cls, field: str, message: str, code: str = "invalid"):
        """Build a validation error for a single field."""
        return cls(message, errors=[{"field": field, "message": message, "code": code}])


class TemplateNotFoundError(NotificationError):
    """No email template is registered for the requested id (400)."""

    status_code = 400

    def __init__(self, template_id: str):
        """Initialize template not found error.

        Args:
            template_id: ID of the template that was not found
        """
        self.template_id = template_id
        super().__init__(f"Template '{template_id}' not found")


class QueueUnavailableError(NotificationError):
    """Delivery queue backend cannot accept jobs (503)."""

    status_code = 503


class SendFailure(NotificationError):
    """Base class for mail transport failures."""

    permanent = False


class TransientSendFailure(SendFailure):
    """Retriable send failure such as a connection reset or 4xx reply."""


class PermanentSendFailure(SendFailure):
    """Non-retriable send failure such as a rejected address."""

    permanent = True


class NotFoundError(NotificationError):
    """Unknown log or job identifier (404)."""

    status_code = 404

    def __init__(self, resource: str, identifier: str):
        """Initialize not found error.

        Args:
            resource: Kind of resource that was looked up
            identifier: The identifier that did not resolve
        """
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} with ID {identifier} not found")


class InvalidStateTransitionError(NotificationError):
    """Requested action is not allowed from the log's current status (409)."""

    status_code = 409

    def __init__(
        self,
        log_id: str,
        current_status: str | None,
        action: str,
        detail: str | None = None,
    ):
        """Initialize invalid state transition error.

        Args:
            log_id: ID of the log the action targeted
            current_status: Status the log was in when the action was rejected
            action: Name of the attempted action or target status
            detail: Optional extra explanation
        """
        self.log_id = log_id
        self.current_status = current_status
        self.action = action
        self.detail = detail
        message = (
            f"Cannot {action} notification log {log_id} "
            f"in status {current_status}"
        )
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class WebhookSignatureError(NotificationError):
    """Webhook signature missing or invalid (401)."""

    status_code = 401

    def __init__(self, message: str = "Invalid webhook signature"):
        """Initialize webhook signature error.

        Args:
            message: Error message
        """
        super().__init__(message)


class ConcurrentUpdateError(InvalidStateTransitionError):
    """The log changed since the caller read it (409)."""

    def __init__(self, log_id: str, current_status: str | None, expected_version: int):
        """Initialize concurrent update error.

        Args:
            log_id: ID of the log that was updated concurrently
            current_status: Status of the log at the time of the conflict
            expected_version: Version the caller based its update on
        """
        self.expected_version = expected_version
        super().__init__(
            log_id,
            current_status,
            "update",
            detail=f"version {expected_version} is stale",
        )
