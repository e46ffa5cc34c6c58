"""Exception hierarchy for UniAuth client errors.

Every error raised to callers carries a stable machine-readable ``code`` so
calling code can branch on failures without parsing message text.
"""

from __future__ import annotations

from typing import Any


class AuthErrorCodes:
    """Stable error code values carried by AuthError."""

    # Configuration
    CONFIG_ERROR = "CONFIG_ERROR"
    SSO_NOT_CONFIGURED = "SSO_NOT_CONFIGURED"

    # Flow and callback state
    INVALID_STATE = "INVALID_STATE"
    NO_CODE = "NO_CODE"
    TOKEN_EXCHANGE_FAILED = "TOKEN_EXCHANGE_FAILED"

    # Token lifecycle
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    REFRESH_FAILED = "REFRESH_FAILED"
    REFRESH_ERROR = "REFRESH_ERROR"

    # Client-side input validation
    INVALID_PHONE = "INVALID_PHONE"
    INVALID_PHONE_FORMAT = "INVALID_PHONE_FORMAT"
    INVALID_EMAIL = "INVALID_EMAIL"

    # Transport
    REQUEST_TIMEOUT = "REQUEST_TIMEOUT"
    INVALID_RESPONSE = "INVALID_RESPONSE"

    # Envelope failures without a server-supplied code
    SEND_CODE_FAILED = "SEND_CODE_FAILED"
    VERIFY_FAILED = "VERIFY_FAILED"
    LOGIN_FAILED = "LOGIN_FAILED"
    OAUTH_FAILED = "OAUTH_FAILED"
    UPDATE_FAILED = "UPDATE_FAILED"


class AuthError(Exception):
    """Base exception for all UniAuth client errors."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int | None = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class ConfigurationError(AuthError):
    """Raised when the client is missing configuration an operation needs."""

    pass


class InvalidInputError(AuthError):
    """Raised when caller input is rejected before any request is sent."""

    pass


class TokenError(AuthError):
    """Raised when token operations fail."""

    pass


class TokenExchangeError(TokenError):
    """Raised when an authorization code to token exchange fails."""

    pass


class AuthorizationCallbackError(AuthError):
    """Raised when the identity provider callback is unusable.

    Covers provider-reported errors (forwarded verbatim as the error code)
    and callbacks that lack an authorization code.
    """

    pass


class StateValidationError(AuthorizationCallbackError):
    """Raised when the callback state does not match the stored CSRF state."""

    def __init__(self, message: str = "State parameter mismatch - possible CSRF attack"):
        super().__init__(AuthErrorCodes.INVALID_STATE, message)


class RequestTimeoutError(AuthError):
    """Raised when an HTTP request exceeds its per-attempt timeout."""

    def __init__(self, timeout_ms: float):
        super().__init__(
            AuthErrorCodes.REQUEST_TIMEOUT,
            f"Request timed out after {timeout_ms:.0f}ms",
        )
        self.timeout_ms = timeout_ms
