"""Base class for typed notification template data."""

from typing import Any

from notifications.schemas.base_schema_model import BaseSchemaModel


class NotificationData(BaseSchemaModel):
    """Validated, type-specific data carried by a notification request.

    Subclasses declare the fields their template needs. Template variables
    are the camelCase JSON form of the data with absent optionals rendered
    as empty strings, plus any derived values from ``derived_variables``.
    """

    def template_variables(self) -> dict[str, Any]:
        """Build the variable mapping used to interpolate the template."""
        variables = {
            key: "" if value is None else value
            for key, value in self.model_dump(by_alias=True, mode="json").items()
        }
        variables.update(self.derived_variables())
        return variables

    def derived_variables(self) -> dict[str, Any]:
        """Values computed from the data, such as pre-formatted lines."""
        return {}


def optional_line(label: str, value: Any) -> str:
    """Render ``label: value`` or an empty string when the value is absent."""
    if value is None or value == "":
        return ""
    return f"{label}: {value}"
