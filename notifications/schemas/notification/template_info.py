"""Schema describing a registered email template."""

from notifications.schemas.base_schema_model import BaseSchemaModel


class TemplateInfo(BaseSchemaModel):
    """Public description of an email template."""

    id: str
    name: str
    subject: str
    description: str
    notification_type: str
