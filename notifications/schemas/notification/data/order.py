"""Template data for order lifecycle notifications."""

from typing import Any

from django.utils.html import format_html_join
from pydantic import AnyHttpUrl, Field

from notifications.schemas.base_schema_model import BaseSchemaModel
from notifications.schemas.notification.data.base import (
    NotificationData,
    optional_line,
)


class OrderItem(BaseSchemaModel):
    """Single order line."""

    name: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)


class OrderConfirmedData(NotificationData):
    """Data for ORDER_CONFIRMED."""

    order_number: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    order_date: str = Field(..., min_length=1)
    order_total: float = Field(..., ge=0)
    currency: str = "$"
    items: list[OrderItem] = Field(..., min_length=1)
    order_url: AnyHttpUrl

    def derived_variables(self) -> dict[str, Any]:
        lines = [
            f"{item.name} x {item.quantity} - {self.currency}{item.price:.2f}"
            for item in self.items
        ]
        return {
            "orderTotal": f"{self.order_total:.2f}",
            "itemCount": sum(item.quantity for item in self.items),
            "itemsHtml": format_html_join(
                "", "<li>{}</li>", ((line,) for line in lines)
            ),
            "itemsText": "\n".join(f"- {line}" for line in lines),
        }


class OrderShippedData(NotificationData):
    """Data for ORDER_SHIPPED."""

    order_number: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    status: str = "shipped"
    tracking_number: str | None = None
    tracking_url: AnyHttpUrl | None = None
    estimated_delivery: str | None = None

    def derived_variables(self) -> dict[str, Any]:
        return {
            "trackingLine": optional_line("Tracking Number", self.tracking_number),
            "trackingUrlLine": optional_line(
                "Track your package", self.tracking_url and str(self.tracking_url)
            ),
            "estimatedDeliveryLine": optional_line(
                "Estimated Delivery", self.estimated_delivery
            ),
        }


class OrderDeliveredData(NotificationData):
    """Data for ORDER_DELIVERED."""

    order_number: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    delivered_at: str | None = None
    order_url: AnyHttpUrl | None = None

    def derived_variables(self) -> dict[str, Any]:
        return {
            "deliveredLine": optional_line("Delivered", self.delivered_at),
            "orderUrlLine": optional_line(
                "View your order", self.order_url and str(self.order_url)
            ),
        }


class OrderCanceledData(NotificationData):
    """Data for ORDER_CANCELED."""

    order_number: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    reason: str | None = None
    refund_amount: float | None = Field(default=None, ge=0)
    currency: str = "$"

    def derived_variables(self) -> dict[str, Any]:
        refund = (
            f"{self.currency}{self.refund_amount:.2f}"
            if self.refund_amount is not None
            else None
        )
        return {
            "reasonLine": optional_line("Reason", self.reason),
            "refundLine": optional_line("Refund", refund),
        }
