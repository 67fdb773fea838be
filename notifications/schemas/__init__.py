"""Pydantic schemas for the notification dispatch service."""

from notifications.schemas.base_schema_model import BaseSchemaModel

__all__ = ["BaseSchemaModel"]
