"""User and application API response models.

Application endpoints wrap their payloads in a ``{success, data, error}``
envelope; token endpoints do not (see ``models/tokens.py``).
"""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class UserInfo(BaseModel):
    """Current user profile."""

    model_config = ConfigDict(extra="allow")

    id: str
    phone: str | None = None
    email: str | None = None
    nickname: str | None = None
    avatar_url: str | None = None


class LoginResult(BaseModel):
    """Result of a successful login, combining profile and tokens."""

    model_config = ConfigDict(extra="allow")

    user: UserInfo | None = None
    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None
    is_new_user: bool = False


class SendCodeResult(BaseModel):
    expires_in: int
    retry_after: int


class ApiErrorBody(BaseModel):
    code: str | None = None
    message: str | None = None


class ApiResponse(BaseModel, Generic[T]):
    """Application endpoint envelope."""

    model_config = ConfigDict(extra="allow")

    success: bool = False
    data: T | None = None
    message: str | None = None
    error: ApiErrorBody | None = None

    def is_success(self) -> bool:
        return self.success and self.data is not None

    def error_code(self, default: str) -> str:
        if self.error and self.error.code:
            return self.error.code
        return default

    def error_message(self, default: str) -> str:
        if self.error and self.error.message:
            return self.error.message
        return self.message or default
