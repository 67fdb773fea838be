"""Services for the notifications app."""

from notifications.services.mail_transport import (
    DeliveryReceipt,
    LoggingMailTransport,
    MailTransport,
    OutboundEmail,
    SmtpMailTransport,
)
from notifications.services.retry_policy import (
    DEFAULT_PERMANENT_PATTERNS,
    ErrorClassifier,
    PatternErrorClassifier,
    QueueRetryPolicy,
    RetryPolicy,
)
from notifications.services.template_renderer import (
    EMAIL_TEMPLATES,
    EmailTemplate,
    RenderedContent,
    TemplateRenderer,
    interpolate,
)

# Note: services that depend on the repositories (dispatch, admin, log
# history, webhooks) are not exported here because the repositories import
# retry_policy from this package. Import them directly from their modules.

__all__ = [
    "DEFAULT_PERMANENT_PATTERNS",
    "EMAIL_TEMPLATES",
    "DeliveryReceipt",
    "EmailTemplate",
    "ErrorClassifier",
    "LoggingMailTransport",
    "MailTransport",
    "OutboundEmail",
    "PatternErrorClassifier",
    "QueueRetryPolicy",
    "RenderedContent",
    "RetryPolicy",
    "SmtpMailTransport",
    "TemplateRenderer",
    "interpolate",
]
