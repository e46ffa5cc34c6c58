"""Observer callbacks for authentication state changes."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable

from uniauth.client.models.errors import AuthError
from uniauth.client.models.tokens import TokenPair
from uniauth.client.models.user import UserInfo

logger = logging.getLogger(__name__)

AuthStateCallback = Callable[[UserInfo | None, bool], Awaitable[None] | None]


async def _invoke(callback: Callable[..., Any], *args: Any) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class AuthCallbackManager:
    """Manages event callbacks for authentication state changes.

    Callbacks may be plain functions or coroutine functions. A failing
    callback is logged and never interrupts the operation that fired it or
    the other subscribers.
    """

    def __init__(
        self,
        on_token_refresh: Callable[[TokenPair], Any] | None = None,
        on_auth_error: Callable[[AuthError], Any] | None = None,
    ):
        self.token_refresh_handler = on_token_refresh
        self.auth_error_handler = on_auth_error
        self._auth_state_subscribers: list[AuthStateCallback] = []

    def on_auth_state_change(self, callback: AuthStateCallback) -> Callable[[], None]:
        """Subscribe to ``(user, is_authenticated)`` changes.

        Returns:
            A function that removes this subscription
        """
        self._auth_state_subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._auth_state_subscribers:
                self._auth_state_subscribers.remove(callback)

        return unsubscribe

    async def notify_auth_state(
        self, user: UserInfo | None, is_authenticated: bool
    ) -> None:
        """Fan out an auth state change to every subscriber."""
        for callback in list(self._auth_state_subscribers):
            try:
                await _invoke(callback, user, is_authenticated)
            except Exception:
                logger.exception("Auth state callback failed")

    async def call_token_refresh(self, tokens: TokenPair) -> None:
        """Invoke the token refresh callback with the new pair."""
        if self.token_refresh_handler:
            try:
                await _invoke(self.token_refresh_handler, tokens)
            except Exception:
                logger.exception("Token refresh callback failed")

    async def call_auth_error(self, error: AuthError) -> None:
        """Invoke the auth error callback."""
        if self.auth_error_handler:
            try:
                await _invoke(self.auth_error_handler, error)
            except Exception:
                logger.exception("Auth error callback failed")
