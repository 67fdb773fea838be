"""Typed template data, one schema per notification type.

The mapping below is checked against ``NotificationType`` at import time,
so adding a type without a schema fails at startup rather than at the
first request of that type.
"""

from notifications.enums import NotificationType
from notifications.schemas.notification.data.account import (
    AccountVerificationData,
    PasswordChangedData,
    PasswordResetData,
    UserRegisteredData,
)
from notifications.schemas.notification.data.base import NotificationData
from notifications.schemas.notification.data.operations import (
    InventoryAlertData,
    SystemAlertData,
)
from notifications.schemas.notification.data.order import (
    OrderCanceledData,
    OrderConfirmedData,
    OrderDeliveredData,
    OrderItem,
    OrderShippedData,
)
from notifications.schemas.notification.data.review import ReviewRequestedData

NOTIFICATION_DATA_SCHEMAS: dict[NotificationType, type[NotificationData]] = {
    NotificationType.ORDER_CONFIRMED: OrderConfirmedData,
    NotificationType.ORDER_SHIPPED: OrderShippedData,
    NotificationType.ORDER_DELIVERED: OrderDeliveredData,
    NotificationType.ORDER_CANCELED: OrderCanceledData,
    NotificationType.PASSWORD_RESET: PasswordResetData,
    NotificationType.PASSWORD_CHANGED: PasswordChangedData,
    NotificationType.ACCOUNT_VERIFICATION: AccountVerificationData,
    NotificationType.USER_REGISTERED: UserRegisteredData,
    NotificationType.INVENTORY_ALERT: InventoryAlertData,
    NotificationType.REVIEW_REQUESTED: ReviewRequestedData,
    NotificationType.SYSTEM_ALERT: SystemAlertData,
}

_missing = set(NotificationType) - set(NOTIFICATION_DATA_SCHEMAS)
if _missing:
    raise RuntimeError(
        "Notification types without a data schema: "
        + ", ".join(sorted(member.value for member in _missing))
    )


def data_schema_for(notification_type: NotificationType | str) -> type[NotificationData]:
    """Return the data schema class for a notification type.

    Args:
        notification_type: Member or value of ``NotificationType``.

    Returns:
        The pydantic model class validating that type's data.
    """
    return NOTIFICATION_DATA_SCHEMAS[NotificationType(notification_type)]


__all__ = [
    "NOTIFICATION_DATA_SCHEMAS",
    "AccountVerificationData",
    "InventoryAlertData",
    "NotificationData",
    "OrderCanceledData",
    "OrderConfirmedData",
    "OrderDeliveredData",
    "OrderItem",
    "OrderShippedData",
    "PasswordChangedData",
    "PasswordResetData",
    "ReviewRequestedData",
    "SystemAlertData",
    "UserRegisteredData",
    "data_schema_for",
]
