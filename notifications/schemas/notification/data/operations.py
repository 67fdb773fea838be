"""Template data for staff-facing operational notifications."""

from typing import Any, Literal

from pydantic import AnyHttpUrl, Field

from notifications.schemas.notification.data.base import (
    NotificationData,
    optional_line,
)


class InventoryAlertData(NotificationData):
    """Data for INVENTORY_ALERT."""

    product_name: str = Field(..., min_length=1)
    sku: str = Field(..., min_length=1)
    current_stock: int = Field(..., ge=0)
    threshold: int = Field(..., ge=0)
    warehouse_name: str | None = None
    restock_eta: str | None = None

    def derived_variables(self) -> dict[str, Any]:
        return {
            "warehouseLine": optional_line("Warehouse", self.warehouse_name),
            "restockLine": optional_line("Estimated Restock", self.restock_eta),
        }


class SystemAlertData(NotificationData):
    """Data for SYSTEM_ALERT."""

    alert_type: str = Field(..., min_length=1)
    severity: Literal["critical", "high", "medium", "low"]
    message: str = Field(..., min_length=1)
    action_url: AnyHttpUrl | None = None

    def derived_variables(self) -> dict[str, Any]:
        return {
            "severityLabel": self.severity.upper(),
            "actionLine": optional_line(
                "Take action", self.action_url and str(self.action_url)
            ),
        }
