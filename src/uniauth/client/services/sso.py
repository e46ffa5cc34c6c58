"""Cross-domain single sign-on flow.

Login redirects the user agent to the SSO service's authorization endpoint
with a CSRF state and, by default, a PKCE challenge. The callback handler
validates the state, exchanges the code, stores the tokens and loads the
user profile.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from uniauth.client.models.errors import (
    AuthErrorCodes,
    AuthorizationCallbackError,
    ConfigurationError,
)
from uniauth.client.models.flow import CallbackParams, SSOLoginOptions
from uniauth.client.models.sso import SSOConfig
from uniauth.client.models.user import LoginResult, UserInfo
from uniauth.client.primitives.navigation import Navigator
from uniauth.client.primitives.storage import KeyValueStore
from uniauth.client.services.flow import OAuth2FlowManager
from uniauth.client.services.security import (
    generate_state,
    pop_state,
    store_state,
    validate_state,
)
from uniauth.client.services.tokens import TokenLifecycleManager

logger = logging.getLogger(__name__)

CALLBACK_PARAMS_TO_STRIP = frozenset({"code", "state"})


def strip_callback_params(url: str) -> str:
    """Remove ``code`` and ``state`` from a URL's query string."""
    parsed = urlparse(url)
    query = [
        (key, value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        if key not in CALLBACK_PARAMS_TO_STRIP
    ]
    return urlunparse(parsed._replace(query=urlencode(query)))


class SSOFlowManager:
    """Runs SSO logins against a configured SSO service.

    ``configure`` must be called before any other operation; until then every
    entry point raises ``SSO_NOT_CONFIGURED`` without touching the network or
    storage.
    """

    def __init__(
        self,
        flow_manager: OAuth2FlowManager,
        token_manager: TokenLifecycleManager,
        durable_store: KeyValueStore | None,
        navigator: Navigator,
        fetch_user: Callable[[], Awaitable[UserInfo | None]],
    ):
        self._flow_manager = flow_manager
        self._token_manager = token_manager
        self._durable_store = durable_store
        self._navigator = navigator
        self._fetch_user = fetch_user
        self._config: SSOConfig | None = None

    @property
    def config(self) -> SSOConfig | None:
        return self._config

    def configure(self, config: SSOConfig) -> None:
        """Set the SSO configuration for the lifetime of the client.

        Raises:
            ConfigurationError: If a different configuration is already set
        """
        if self._config is not None and self._config != config:
            raise ConfigurationError(
                AuthErrorCodes.CONFIG_ERROR,
                "SSO is already configured for this client",
            )
        self._config = config
        logger.debug(f"SSO configured for client {config.client_id} at {config.sso_url}")

    def _require_config(self) -> SSOConfig:
        if self._config is None:
            raise ConfigurationError(
                AuthErrorCodes.SSO_NOT_CONFIGURED,
                "SSO is not configured. Call configure_sso() first.",
            )
        return self._config

    def login(self, options: SSOLoginOptions | None = None) -> None:
        """Redirect the user agent to the SSO authorization endpoint.

        Persists the CSRF state (and the PKCE verifier when enabled) first.
        Returns nothing: the redirect through the navigator is its only result.
        """
        config = self._require_config()
        options = options or SSOLoginOptions()

        state = options.state or generate_state()
        store_state(self._durable_store, state)

        auth_url = self._flow_manager.build_authorization_url(
            authorization_endpoint=config.authorization_endpoint,
            client_id=config.client_id,
            redirect_uri=config.redirect_uri,
            scope=config.scope,
            state=state,
            use_pkce=options.use_pkce,
        )

        logger.info(f"Starting SSO login for client {config.client_id}")
        self._navigator.redirect(auth_url)

    def is_callback(self) -> bool:
        """Check whether the current URL carries both ``code`` and ``state``."""
        return CallbackParams.from_url(self._navigator.current_url).is_callback()

    async def handle_callback(self) -> LoginResult:
        """Complete an SSO login from the current callback URL.

        Raises:
            ConfigurationError: ``SSO_NOT_CONFIGURED``
            AuthorizationCallbackError: The provider's error code, or ``NO_CODE``
            StateValidationError: ``INVALID_STATE`` on CSRF state mismatch
            TokenExchangeError: If the token endpoint rejects the code
        """
        config = self._require_config()
        current_url = self._navigator.current_url
        params = CallbackParams.from_url(current_url)

        if params.is_error():
            logger.warning(
                f"SSO callback contained error: {params.error} - "
                f"{params.error_description}"
            )
            raise AuthorizationCallbackError(
                params.error,
                params.error_description or "SSO authorization failed",
            )

        stored_state = pop_state(self._durable_store)
        validate_state(stored_state, params.state)

        if not params.code:
            raise AuthorizationCallbackError(
                AuthErrorCodes.NO_CODE, "No authorization code in callback"
            )

        token_result = await self._flow_manager.exchange_code(
            token_endpoint=config.token_endpoint,
            client_id=config.client_id,
            code=params.code,
            redirect_uri=config.redirect_uri,
        )
        tokens = token_result.to_token_pair()
        await self._token_manager.store_tokens(tokens, notify=False)

        user = await self._fetch_user()
        if user is None:
            logger.warning("SSO login succeeded but the user profile could not be loaded")
        await self._token_manager.set_current_user(user)

        self._navigator.replace_url(strip_callback_params(current_url))

        logger.info("SSO login completed")
        return LoginResult(
            user=user,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_in=tokens.expires_in,
        )

    def check_session(self) -> bool:
        """Report whether an SSO session is usable without user interaction.

        Only an existing local session counts. Silent iframe or popup
        authentication is not attempted.

        Raises:
            ConfigurationError: ``SSO_NOT_CONFIGURED``
        """
        self._require_config()
        return self._token_manager.is_authenticated()
