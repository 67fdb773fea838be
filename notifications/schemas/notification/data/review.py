"""Template data for review solicitation."""

from typing import Any

from pydantic import AnyHttpUrl, Field

from notifications.schemas.notification.data.base import (
    NotificationData,
    optional_line,
)


class ReviewRequestedData(NotificationData):
    """Data for REVIEW_REQUESTED."""

    name: str = Field(..., min_length=1)
    product_name: str = Field(..., min_length=1)
    review_url: AnyHttpUrl
    order_number: str | None = None

    def derived_variables(self) -> dict[str, Any]:
        return {"orderLine": optional_line("Order", self.order_number)}
