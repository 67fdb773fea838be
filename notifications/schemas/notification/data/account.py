"""Template data for account and credential notifications."""

from typing import Any

from pydantic import AnyHttpUrl, EmailStr, Field

from notifications.schemas.notification.data.base import (
    NotificationData,
    optional_line,
)


class PasswordResetData(NotificationData):
    """Data for PASSWORD_RESET."""

    reset_url: AnyHttpUrl
    expires_in_hours: int = Field(default=24, ge=1, le=72)
    name: str | None = None

    def derived_variables(self) -> dict[str, Any]:
        return {"greeting": f"Hello {self.name}," if self.name else "Hello,"}


class PasswordChangedData(NotificationData):
    """Data for PASSWORD_CHANGED."""

    name: str = Field(..., min_length=1)
    changed_at: str | None = None
    support_email: EmailStr | None = None

    def derived_variables(self) -> dict[str, Any]:
        return {
            "changedLine": optional_line("Changed at", self.changed_at),
            "supportLine": optional_line("Contact support", self.support_email),
        }


class AccountVerificationData(NotificationData):
    """Data for ACCOUNT_VERIFICATION."""

    name: str = Field(..., min_length=1)
    verification_url: AnyHttpUrl
    expires_in_hours: int = Field(default=24, ge=1, le=168)


class UserRegisteredData(NotificationData):
    """Data for USER_REGISTERED."""

    name: str = Field(..., min_length=1)
    account_url: AnyHttpUrl | None = None
    support_email: EmailStr | None = None

    def derived_variables(self) -> dict[str, Any]:
        return {
            "accountLine": optional_line(
                "Your account", self.account_url and str(self.account_url)
            ),
            "supportLine": optional_line("Questions? Contact", self.support_email),
        }
