"""Token lifecycle management: storage writes, expiry checks and refresh.

All writers of the stored token pair (login, refresh, SSO code exchange,
logout) go through ``TokenLifecycleManager``. Refresh is single-flight: at
most one refresh request is in flight per manager, and concurrent callers
share its outcome.

Expiry is estimated by decoding the access token's ``exp`` claim *without*
verifying its signature. That is a local scheduling hint only; whether a
token is trusted is decided by the server.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

import jwt

from uniauth.client.models.errors import AuthError, AuthErrorCodes, TokenError
from uniauth.client.models.tokens import TokenPair
from uniauth.client.models.user import UserInfo
from uniauth.client.primitives.storage import TokenStorage
from uniauth.client.services.api import UniAuthAPI
from uniauth.client.services.callbacks import AuthCallbackManager

logger = logging.getLogger(__name__)

REFRESH_PATH = "/api/v1/auth/refresh"
LOGOUT_PATH = "/api/v1/auth/logout"
LOGOUT_ALL_PATH = "/api/v1/auth/logout-all"

# Refresh when the access token expires within this many seconds
REFRESH_WINDOW_SECONDS = 5 * 60


def decode_expiry(token: str) -> float | None:
    """Read the ``exp`` claim of a JWT without verifying it.

    Returns:
        Expiry as a Unix timestamp, or None if the token cannot be decoded
        or carries no numeric ``exp``
    """
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return None

    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    return float(exp)


class TokenLifecycleManager:
    """Owns the stored token pair and keeps the access token fresh."""

    def __init__(
        self,
        storage: TokenStorage,
        api: UniAuthAPI,
        callbacks: AuthCallbackManager,
        clock: Callable[[], float] = time.time,
    ):
        self._storage = storage
        self._api = api
        self._callbacks = callbacks
        self._clock = clock
        self._refresh_task: asyncio.Task[bool] | None = None
        self.current_user: UserInfo | None = None

    def is_authenticated(self) -> bool:
        """Check for a stored access token. Presence only, not expiry."""
        return bool(self._storage.get_access_token())

    async def get_access_token(self) -> str | None:
        """Return a usable access token, refreshing it first if it is about to expire.

        Returns:
            The access token, or None when unauthenticated (including after a
            failed refresh, which clears storage)
        """
        token = self._storage.get_access_token()
        if not token:
            return None

        expires_at = decode_expiry(token)
        if expires_at is None:
            # Malformed but present: let the server reject it
            return token

        if self._clock() > expires_at - REFRESH_WINDOW_SECONDS:
            logger.debug("Access token expires within the refresh window, refreshing")
            await self.refresh()
            return self._storage.get_access_token()

        return token

    async def refresh(self) -> bool:
        """Refresh the token pair, joining an in-flight refresh if there is one.

        Returns:
            True if the tokens were refreshed, False otherwise. Never raises
            for refresh failures.
        """
        if self._refresh_task is None:
            task = asyncio.ensure_future(self._do_refresh())
            task.add_done_callback(self._release_refresh_task)
            self._refresh_task = task
        else:
            logger.debug("Joining in-flight token refresh")

        # Shielded so a cancelled caller cannot cancel the shared refresh
        return await asyncio.shield(self._refresh_task)

    def _release_refresh_task(self, task: asyncio.Task[bool]) -> None:
        if self._refresh_task is task:
            self._refresh_task = None

    async def _do_refresh(self) -> bool:
        refresh_token = self._storage.get_refresh_token()
        if not refresh_token:
            await self._fail_refresh(
                AuthErrorCodes.REFRESH_FAILED, "No refresh token available"
            )
            return False

        try:
            response = await self._api.call(
                "POST",
                REFRESH_PATH,
                TokenPair,
                json={"refresh_token": refresh_token},
            )
        except Exception as e:
            logger.error(f"Token refresh error: {e}")
            await self._fail_refresh(AuthErrorCodes.REFRESH_ERROR, str(e) or type(e).__name__)
            return False

        if not response.is_success():
            message = response.error_message("Failed to refresh token")
            logger.warning(f"Token refresh rejected: {message}")
            await self._fail_refresh(AuthErrorCodes.REFRESH_FAILED, message)
            return False

        tokens = response.data
        self._write(tokens)
        logger.info("Successfully refreshed access token")

        await self._callbacks.call_token_refresh(tokens)
        await self._callbacks.notify_auth_state(self.current_user, True)
        return True

    async def _fail_refresh(self, code: str, message: str) -> None:
        self._storage.clear()
        self.current_user = None
        await self._callbacks.call_auth_error(AuthError(code, message))
        await self._callbacks.notify_auth_state(None, False)

    async def store_tokens(
        self,
        tokens: TokenPair,
        user: UserInfo | None = None,
        notify: bool = True,
    ) -> None:
        """Store a newly issued token pair and announce the authenticated state.

        Pass ``notify=False`` when the user profile is loaded afterwards and
        announced through ``set_current_user``.
        """
        self._write(tokens)
        self.current_user = user
        if notify:
            await self._callbacks.notify_auth_state(user, True)

    async def set_current_user(self, user: UserInfo | None) -> None:
        self.current_user = user
        await self._callbacks.notify_auth_state(user, self.is_authenticated())

    async def clear(self, notify: bool = True) -> None:
        """Remove both tokens and announce the unauthenticated state."""
        self._storage.clear()
        self.current_user = None
        if notify:
            await self._callbacks.notify_auth_state(None, False)

    async def logout(self, everywhere: bool = False) -> None:
        """Revoke the session on the server, then clear local tokens.

        Local tokens are cleared even when the server call fails. The
        unauthenticated state is announced only if a session was still present.

        Args:
            everywhere: Revoke every session of the user, not just this one

        Raises:
            TokenError: ``NOT_AUTHENTICATED`` if there is no access token
        """
        try:
            access_token = await self.get_access_token()
            if not access_token:
                raise TokenError(AuthErrorCodes.NOT_AUTHENTICATED, "Not authenticated")

            if everywhere:
                await self._api.call("POST", LOGOUT_ALL_PATH, token=access_token)
            else:
                await self._api.call(
                    "POST",
                    LOGOUT_PATH,
                    json={"refresh_token": self._storage.get_refresh_token()},
                    token=access_token,
                )
        finally:
            await self.clear(
                notify=self.is_authenticated() or self.current_user is not None
            )

    def _write(self, tokens: TokenPair) -> None:
        self._storage.set_access_token(tokens.access_token)
        if tokens.refresh_token:
            self._storage.set_refresh_token(tokens.refresh_token)
