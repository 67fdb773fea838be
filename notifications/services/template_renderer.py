"""Email template registry and ``{{variable}}`` interpolation.

Each notification type has exactly one template whose id is derived from
the type (``ORDER_CONFIRMED`` -> ``order-confirmed``). Templates are plain
strings; conditional sections are expressed through the derived ``...Line``
variables computed by the typed data schemas, which are empty when the
underlying value is absent.
"""

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

import structlog
from django.utils.html import conditional_escape

from notifications.enums import NotificationType
from notifications.exceptions import TemplateNotFoundError
from notifications.schemas.notification import TemplateInfo

logger = structlog.get_logger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([\w.-]+)\s*\}\}")


@dataclass(frozen=True)
class EmailTemplate:
    """A subject, HTML body and plain-text body sharing one set of variables."""

    id: str
    name: str
    subject: str
    html: str
    text: str
    description: str = ""


@dataclass(frozen=True)
class RenderedContent:
    """Interpolated message content."""

    subject: str
    html: str
    text: str


def interpolate(
    template: str, variables: Mapping[str, Any], autoescape: bool = False
) -> str:
    """Replace ``{{key}}`` placeholders with stringified variable values.

    Whitespace inside the braces is ignored. Placeholders whose key is not
    in ``variables`` are left as they are.

    Args:
        template: Text containing placeholders.
        variables: Values by placeholder key.
        autoescape: HTML-escape each value unless it is already marked safe.

    Returns:
        The interpolated text.
    """

    def replace(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in variables:
            return match.group(0)
        value = variables[key]
        if value is None:
            return ""
        return str(conditional_escape(value)) if autoescape else str(value)

    return PLACEHOLDER_PATTERN.sub(replace, template)


def _template(notification_type: NotificationType, **fields: str) -> EmailTemplate:
    return EmailTemplate(id=notification_type.template_id, **fields)


EMAIL_TEMPLATES: dict[str, EmailTemplate] = {
    template.id: template
    for template in (
        # Order lifecycle
        _template(
            NotificationType.ORDER_CONFIRMED,
            name="Order Confirmation",
            subject="Your order #{{orderNumber}} has been confirmed",
            html=(
                "<h1>Order Confirmation</h1>"
                "<p>Dear {{name}},</p>"
                "<p>Thank you for your order. Your order #{{orderNumber}} has been "
                "confirmed and is being processed.</p>"
                "<h2>Order Details</h2>"
                "<p><strong>Order Date:</strong> {{orderDate}}</p>"
                "<p><strong>Order Total:</strong> {{currency}}{{orderTotal}}</p>"
                "<h3>Items ({{itemCount}})</h3>"
                "<ul>{{itemsHtml}}</ul>"
                '<p>You can view your order status <a href="{{orderUrl}}">here</a>.</p>'
                "<p>Thank you for shopping with us!</p>"
            ),
            text=(
                "Order Confirmation\n\n"
                "Dear {{name}},\n\n"
                "Thank you for your order. Your order #{{orderNumber}} has been "
                "confirmed and is being processed.\n\n"
                "Order Date: {{orderDate}}\n"
                "Order Total: {{currency}}{{orderTotal}}\n\n"
                "Items:\n{{itemsText}}\n\n"
                "You can view your order status at: {{orderUrl}}\n\n"
                "Thank you for shopping with us!"
            ),
            description="Sent to customers when their order is confirmed",
        ),
        _template(
            NotificationType.ORDER_SHIPPED,
            name="Order Shipped",
            subject="Shipping update for your order #{{orderNumber}}",
            html=(
                "<h1>Shipping Update</h1>"
                "<p>Dear {{name}},</p>"
                "<p>Your order #{{orderNumber}} is now <strong>{{status}}</strong>.</p>"
                "<p>{{trackingLine}}</p>"
                "<p>{{trackingUrlLine}}</p>"
                "<p>{{estimatedDeliveryLine}}</p>"
                "<p>Thank you for your patience!</p>"
            ),
            text=(
                "Shipping Update\n\n"
                "Dear {{name}},\n\n"
                "Your order #{{orderNumber}} is now {{status}}.\n\n"
                "{{trackingLine}}\n"
                "{{trackingUrlLine}}\n"
                "{{estimatedDeliveryLine}}\n\n"
                "Thank you for your patience!"
            ),
            description="Sent when a shipment leaves the warehouse or changes status",
        ),
        _template(
            NotificationType.ORDER_DELIVERED,
            name="Order Delivered",
            subject="Your order #{{orderNumber}} has been delivered",
            html=(
                "<h1>Order Delivered</h1>"
                "<p>Dear {{name}},</p>"
                "<p>Your order #{{orderNumber}} has been delivered.</p>"
                "<p>{{deliveredLine}}</p>"
                "<p>{{orderUrlLine}}</p>"
                "<p>We hope you enjoy your purchase!</p>"
            ),
            text=(
                "Order Delivered\n\n"
                "Dear {{name}},\n\n"
                "Your order #{{orderNumber}} has been delivered.\n"
                "{{deliveredLine}}\n"
                "{{orderUrlLine}}\n\n"
                "We hope you enjoy your purchase!"
            ),
            description="Sent when the carrier confirms delivery",
        ),
        _template(
            NotificationType.ORDER_CANCELED,
            name="Order Canceled",
            subject="Your order #{{orderNumber}} has been canceled",
            html=(
                "<h1>Order Canceled</h1>"
                "<p>Dear {{name}},</p>"
                "<p>Your order #{{orderNumber}} has been canceled.</p>"
                "<p>{{reasonLine}}</p>"
                "<p>{{refundLine}}</p>"
                "<p>If you have any questions, just reply to this email.</p>"
            ),
            text=(
                "Order Canceled\n\n"
                "Dear {{name}},\n\n"
                "Your order #{{orderNumber}} has been canceled.\n"
                "{{reasonLine}}\n"
                "{{refundLine}}\n\n"
                "If you have any questions, just reply to this email."
            ),
            description="Sent when an order is canceled by the customer or the store",
        ),
        # Account and credentials
        _template(
            NotificationType.PASSWORD_RESET,
            name="Password Reset",
            subject="Reset your password",
            html=(
                "<h1>Password Reset Request</h1>"
                "<p>{{greeting}}</p>"
                "<p>We received a request to reset your password. Use the link below "
                "to create a new password:</p>"
                '<p><a href="{{resetUrl}}">Reset Password</a></p>'
                "<p>This link will expire in {{expiresInHours}} hours.</p>"
                "<p>If you did not request a password reset, you can ignore this email.</p>"
            ),
            text=(
                "Password Reset Request\n\n"
                "{{greeting}}\n\n"
                "We received a request to reset your password. Use the link below "
                "to create a new password:\n\n"
                "{{resetUrl}}\n\n"
                "This link will expire in {{expiresInHours}} hours.\n\n"
                "If you did not request a password reset, you can ignore this email."
            ),
            description="Sent when a user requests a password reset",
        ),
        _template(
            NotificationType.PASSWORD_CHANGED,
            name="Password Changed",
            subject="Your password was changed",
            html=(
                "<h1>Password Changed</h1>"
                "<p>Dear {{name}},</p>"
                "<p>The password for your account was changed.</p>"
                "<p>{{changedLine}}</p>"
                "<p>If you did not make this change, secure your account immediately. "
                "{{supportLine}}</p>"
            ),
            text=(
                "Password Changed\n\n"
                "Dear {{name}},\n\n"
                "The password for your account was changed.\n"
                "{{changedLine}}\n\n"
                "If you did not make this change, secure your account immediately.\n"
                "{{supportLine}}"
            ),
            description="Security notice after a successful password change",
        ),
        _template(
            NotificationType.ACCOUNT_VERIFICATION,
            name="Account Verification",
            subject="Verify your email address",
            html=(
                "<h1>Verify Your Email</h1>"
                "<p>Dear {{name}},</p>"
                "<p>Please confirm your email address to activate your account:</p>"
                '<p><a href="{{verificationUrl}}">Verify Email</a></p>'
                "<p>This link will expire in {{expiresInHours}} hours.</p>"
            ),
            text=(
                "Verify Your Email\n\n"
                "Dear {{name}},\n\n"
                "Please confirm your email address to activate your account:\n\n"
                "{{verificationUrl}}\n\n"
                "This link will expire in {{expiresInHours}} hours."
            ),
            description="Sent after sign-up to confirm the email address",
        ),
        _template(
            NotificationType.USER_REGISTERED,
            name="Welcome",
            subject="Welcome aboard, {{name}}!",
            html=(
                "<h1>Welcome!</h1>"
                "<p>Dear {{name}},</p>"
                "<p>Thank you for creating an account with us.</p>"
                "<p>{{accountLine}}</p>"
                "<p>{{supportLine}}</p>"
            ),
            text=(
                "Welcome!\n\n"
                "Dear {{name}},\n\n"
                "Thank you for creating an account with us.\n"
                "{{accountLine}}\n"
                "{{supportLine}}"
            ),
            description="Welcome email sent once registration completes",
        ),
        # Operations
        _template(
            NotificationType.INVENTORY_ALERT,
            name="Inventory Alert",
            subject="Low stock alert: {{productName}} ({{sku}})",
            html=(
                "<h1>Low Stock Alert</h1>"
                "<p><strong>{{productName}}</strong> (SKU {{sku}}) is running low.</p>"
                "<p>Current stock: {{currentStock}} (threshold {{threshold}})</p>"
                "<p>{{warehouseLine}}</p>"
                "<p>{{restockLine}}</p>"
            ),
            text=(
                "Low Stock Alert\n\n"
                "{{productName}} (SKU {{sku}}) is running low.\n"
                "Current stock: {{currentStock}} (threshold {{threshold}})\n"
                "{{warehouseLine}}\n"
                "{{restockLine}}"
            ),
            description="Staff alert when stock drops below its threshold",
        ),
        _template(
            NotificationType.REVIEW_REQUESTED,
            name="Review Request",
            subject="How do you like your {{productName}}?",
            html=(
                "<h1>Tell Us What You Think</h1>"
                "<p>Dear {{name}},</p>"
                "<p>We would love to hear your thoughts on {{productName}}.</p>"
                "<p>{{orderLine}}</p>"
                '<p><a href="{{reviewUrl}}">Write a review</a></p>'
            ),
            text=(
                "Tell Us What You Think\n\n"
                "Dear {{name}},\n\n"
                "We would love to hear your thoughts on {{productName}}.\n"
                "{{orderLine}}\n\n"
                "Write a review: {{reviewUrl}}"
            ),
            description="Asks a customer to review a purchased product",
        ),
        _template(
            NotificationType.SYSTEM_ALERT,
            name="System Alert",
            subject="[{{severityLabel}}] {{alertType}}",
            html=(
                "<h1>System Alert: {{alertType}}</h1>"
                "<p><strong>Severity:</strong> {{severityLabel}}</p>"
                "<p>{{message}}</p>"
                "<p>{{actionLine}}</p>"
            ),
            text=(
                "System Alert: {{alertType}}\n\n"
                "Severity: {{severityLabel}}\n\n"
                "{{message}}\n"
                "{{actionLine}}"
            ),
            description="Operational alert for staff and on-call engineers",
        ),
    )
}


class TemplateRenderer:
    """Looks up templates by id and renders them with variables."""

    def __init__(self, templates: Iterable[EmailTemplate] | None = None):
        """Initialize the renderer.

        Args:
            templates: Templates to serve; defaults to the built-in registry.
        """
        source = EMAIL_TEMPLATES.values() if templates is None else templates
        self._templates = {template.id: template for template in source}

    def get_template(self, template_id: str) -> EmailTemplate:
        """Return a template by id.

        Raises:
            TemplateNotFoundError: If no template has that id.
        """
        template = self._templates.get(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)
        return template

    def has_template(self, template_id: str) -> bool:
        return template_id in self._templates

    def render(self, template_id: str, variables: Mapping[str, Any]) -> RenderedContent:
        """Render a template's subject, HTML and text.

        Args:
            template_id: Id of the template to render.
            variables: Values for the template's placeholders.

        Returns:
            The rendered content.

        Raises:
            TemplateNotFoundError: If no template has that id.
        """
        template = self.get_template(template_id)
        content = RenderedContent(
            subject=interpolate(template.subject, variables),
            html=interpolate(template.html, variables, autoescape=True),
            text=interpolate(template.text, variables),
        )
        unresolved = sorted(
            set(PLACEHOLDER_PATTERN.findall(content.html))
            | set(PLACEHOLDER_PATTERN.findall(content.subject))
        )
        if unresolved:
            logger.debug(
                "template_placeholders_unresolved",
                template_id=template_id,
                placeholders=unresolved,
            )
        return content

    def list_templates(self) -> list[TemplateInfo]:
        """Describe every registered template, ordered by id."""
        type_by_template = {member.template_id: member.value for member in NotificationType}
        return [
            TemplateInfo(
                id=template.id,
                name=template.name,
                subject=template.subject,
                description=template.description,
                notification_type=type_by_template.get(template.id, ""),
            )
            for template in sorted(self._templates.values(), key=lambda t: t.id)
        ]
