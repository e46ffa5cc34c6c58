"""UniAuth client: the entry point applications use.

Composes token storage, the retrying transport, the token lifecycle manager
and the OAuth2/SSO flow managers behind one object. Each instance owns its
own configuration, storage, refresh state and subscribers.

Usage::

    config = ClientConfig(base_url="https://auth.example.com", app_key="app-key")
    async with UniAuthClient(config) as auth:
        await auth.send_code("+8613800138000")
        result = await auth.login_with_code("+8613800138000", "123456")
        token = await auth.get_access_token()
"""

from __future__ import annotations

import logging
from typing import Any, Callable

import httpx

from uniauth.client.models.config import ClientConfig
from uniauth.client.models.errors import (
    AuthError,
    AuthErrorCodes,
    ConfigurationError,
    TokenError,
)
from uniauth.client.models.flow import AuthorizeOptions, SSOLoginOptions
from uniauth.client.models.sso import SSOConfig
from uniauth.client.models.tokens import OAuth2TokenResult, TokenPair
from uniauth.client.models.user import (
    ApiResponse,
    LoginResult,
    SendCodeResult,
    UserInfo,
)
from uniauth.client.primitives.http import HTTPTransport
from uniauth.client.primitives.navigation import LocationNavigator, Navigator
from uniauth.client.primitives.storage import (
    FileKeyValueStore,
    KeyValueStore,
    MemoryKeyValueStore,
    create_token_storage,
)
from uniauth.client.primitives.validation import validate_email, validate_phone
from uniauth.client.services.api import UniAuthAPI
from uniauth.client.services.callbacks import AuthCallbackManager, AuthStateCallback
from uniauth.client.services.flow import OAuth2FlowManager
from uniauth.client.services.sso import SSOFlowManager
from uniauth.client.services.tokens import TokenLifecycleManager

logger = logging.getLogger(__name__)

PHONE_SEND_CODE_PATH = "/api/v1/auth/phone/send-code"
PHONE_VERIFY_PATH = "/api/v1/auth/phone/verify"
EMAIL_SEND_CODE_PATH = "/api/v1/auth/email/send-code"
EMAIL_VERIFY_PATH = "/api/v1/auth/email/verify"
EMAIL_LOGIN_PATH = "/api/v1/auth/email/login"
OAUTH_CALLBACK_PATH = "/api/v1/auth/oauth/{provider}/callback"
USER_PATH = "/api/v1/user/me"
OAUTH2_AUTHORIZE_PATH = "/api/v1/oauth2/authorize"
OAUTH2_TOKEN_PATH = "/api/v1/oauth2/token"


class UniAuthClient:
    """Authentication client for a UniAuth service.

    Covers code and password logins, silent token refresh, the OAuth2
    authorization code flow and cross-domain SSO.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        durable_store: KeyValueStore | None = None,
        session_store: KeyValueStore | None = None,
        navigator: Navigator | None = None,
    ):
        """Initialize the client.

        Args:
            config: Client configuration
            http_client: HTTP client for all requests; one is created if omitted
            durable_store: Medium surviving restarts (tokens in durable mode,
                SSO state). Defaults to a JSON file at ``config.storage_path``.
            session_store: Medium for this process (tokens in session mode,
                PKCE verifiers). Defaults to an in-memory store.
            navigator: Target of SSO redirects and source of callback URLs
        """
        self.config = config

        self._durable_store = (
            durable_store
            if durable_store is not None
            else FileKeyValueStore(config.storage_path)
        )
        self._session_store = (
            session_store if session_store is not None else MemoryKeyValueStore()
        )
        self.navigator = navigator or LocationNavigator()

        # Initialize service components
        self._transport = HTTPTransport(http_client)
        self._api = UniAuthAPI(config, self._transport)
        self._callbacks = AuthCallbackManager(
            on_token_refresh=config.on_token_refresh,
            on_auth_error=config.on_auth_error,
        )
        self._tokens = TokenLifecycleManager(
            create_token_storage(config.storage, self._durable_store, self._session_store),
            self._api,
            self._callbacks,
        )
        self._flow_manager = OAuth2FlowManager(self._api, self._session_store)
        self._sso = SSOFlowManager(
            self._flow_manager,
            self._tokens,
            self._durable_store,
            self.navigator,
            self.get_current_user,
        )

    async def __aenter__(self) -> UniAuthClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # Verification codes

    async def send_code(self, phone: str, code_type: str = "login") -> SendCodeResult:
        """Send a verification code to a phone number.

        Raises:
            InvalidInputError: ``INVALID_PHONE`` or ``INVALID_PHONE_FORMAT``
            AuthError: With the server's error code if sending fails
        """
        phone = validate_phone(phone)
        response = await self._api.call(
            "POST",
            PHONE_SEND_CODE_PATH,
            SendCodeResult,
            json={"phone": phone, "type": code_type},
        )
        return self._unwrap(response, AuthErrorCodes.SEND_CODE_FAILED, "Failed to send code")

    async def send_email_code(self, email: str, code_type: str = "login") -> SendCodeResult:
        """Send a verification code to an email address."""
        email = validate_email(email)
        response = await self._api.call(
            "POST",
            EMAIL_SEND_CODE_PATH,
            SendCodeResult,
            json={"email": email, "type": code_type},
        )
        return self._unwrap(response, AuthErrorCodes.SEND_CODE_FAILED, "Failed to send code")

    # Logins

    async def login_with_code(self, phone: str, code: str) -> LoginResult:
        """Log in with a phone number and the code sent to it."""
        phone = validate_phone(phone)
        return await self._login(
            PHONE_VERIFY_PATH,
            {"phone": phone, "code": code},
            AuthErrorCodes.VERIFY_FAILED,
            "Failed to verify code",
        )

    async def login_with_email_code(self, email: str, code: str) -> LoginResult:
        """Log in with an email address and the code sent to it."""
        email = validate_email(email)
        return await self._login(
            EMAIL_VERIFY_PATH,
            {"email": email, "code": code},
            AuthErrorCodes.VERIFY_FAILED,
            "Failed to verify code",
        )

    async def login_with_email(self, email: str, password: str) -> LoginResult:
        """Log in with email and password."""
        email = validate_email(email)
        return await self._login(
            EMAIL_LOGIN_PATH,
            {"email": email, "password": password},
            AuthErrorCodes.LOGIN_FAILED,
            "Failed to login",
        )

    async def handle_oauth_callback(
        self, provider: str, code: str, redirect_uri: str | None = None
    ) -> LoginResult:
        """Complete a social login by handing the provider's code to the server."""
        body = {"code": code}
        if redirect_uri:
            body["redirect_uri"] = redirect_uri
        return await self._login(
            OAUTH_CALLBACK_PATH.format(provider=provider),
            body,
            AuthErrorCodes.OAUTH_FAILED,
            "OAuth callback failed",
        )

    async def _login(
        self,
        path: str,
        body: dict[str, Any],
        default_code: str,
        default_message: str,
    ) -> LoginResult:
        response = await self._api.call("POST", path, LoginResult, json=body)
        result = self._unwrap(response, default_code, default_message)

        await self._tokens.store_tokens(
            TokenPair(
                access_token=result.access_token,
                refresh_token=result.refresh_token,
                expires_in=result.expires_in,
            ),
            user=result.user,
        )
        logger.info("Login successful")
        return result

    # Session

    async def get_access_token(self) -> str | None:
        """Get the access token, refreshing it first if it is about to expire."""
        return await self._tokens.get_access_token()

    def is_authenticated(self) -> bool:
        """Check whether an access token is stored. Does not check expiry."""
        return self._tokens.is_authenticated()

    async def get_current_user(self) -> UserInfo | None:
        """Fetch the current user's profile.

        Returns:
            The profile, or None when unauthenticated or the request fails
        """
        if not self.is_authenticated():
            return None

        try:
            response = await self._authenticated_call("GET", USER_PATH, UserInfo)
        except (AuthError, httpx.HTTPError) as e:
            logger.warning(f"Failed to fetch current user: {e}")
            return None

        if not response.is_success():
            return None

        self._tokens.current_user = response.data
        return response.data

    async def update_profile(
        self, nickname: str | None = None, avatar_url: str | None = None
    ) -> UserInfo:
        """Update the current user's nickname and/or avatar."""
        updates = {}
        if nickname is not None:
            updates["nickname"] = nickname
        if avatar_url is not None:
            updates["avatar_url"] = avatar_url

        response = await self._authenticated_call(
            "PATCH", USER_PATH, UserInfo, json=updates
        )
        user = self._unwrap(response, AuthErrorCodes.UPDATE_FAILED, "Failed to update profile")
        await self._tokens.set_current_user(user)
        return user

    async def logout(self) -> None:
        """Log out this session. Local tokens are cleared even if the server call fails."""
        await self._tokens.logout()

    async def logout_all(self) -> None:
        """Log out every session of the current user."""
        await self._tokens.logout(everywhere=True)

    def on_auth_state_change(self, callback: AuthStateCallback) -> Callable[[], None]:
        """Subscribe to ``(user, is_authenticated)`` changes.

        Fired whenever tokens are set, refreshed or cleared. Exceptions raised
        by one subscriber are logged and do not affect the others.

        Returns:
            A function that removes the subscription
        """
        return self._callbacks.on_auth_state_change(callback)

    # OAuth2 client flow

    def start_oauth2_flow(self, options: AuthorizeOptions) -> str:
        """Build the authorization URL for the OAuth2 authorization code flow.

        Returns:
            The URL to send the user agent to

        Raises:
            ConfigurationError: ``CONFIG_ERROR`` without a configured client_id
        """
        client_id = self._require_client_id()
        return self._flow_manager.build_authorization_url(
            authorization_endpoint=self._api.url(OAUTH2_AUTHORIZE_PATH),
            client_id=client_id,
            redirect_uri=options.redirect_uri,
            scope=options.scope,
            state=options.state,
            use_pkce=options.use_pkce,
            verifier_key=options.verifier_key,
        )

    async def exchange_oauth2_code(
        self,
        code: str,
        redirect_uri: str,
        client_secret: str | None = None,
        verifier_key: str | None = None,
    ) -> OAuth2TokenResult:
        """Exchange an authorization code for tokens.

        The tokens are returned to the caller, not stored: they belong to the
        application that started the flow.

        Raises:
            ConfigurationError: ``CONFIG_ERROR`` without a configured client_id
            TokenExchangeError: With the server's error code
        """
        client_id = self._require_client_id()
        return await self._flow_manager.exchange_code(
            token_endpoint=self._api.url(OAUTH2_TOKEN_PATH),
            client_id=client_id,
            code=code,
            redirect_uri=redirect_uri,
            client_secret=client_secret,
            verifier_key=verifier_key,
        )

    # SSO

    @property
    def sso_config(self) -> SSOConfig | None:
        return self._sso.config

    def configure_sso(self, config: SSOConfig) -> None:
        """Configure SSO. Required once before any other SSO operation."""
        self._sso.configure(config)

    def login_with_sso(self, options: SSOLoginOptions | None = None) -> None:
        """Redirect to the SSO service to log in.

        The redirect goes through ``navigator``; nothing is returned.
        """
        self._sso.login(options)

    def is_sso_callback(self) -> bool:
        """Check whether the current URL is an SSO callback."""
        return self._sso.is_callback()

    async def handle_sso_callback(self) -> LoginResult:
        """Complete an SSO login from the current callback URL."""
        return await self._sso.handle_callback()

    def check_sso_session(self) -> bool:
        """Check for a usable session without user interaction."""
        return self._sso.check_session()

    # Internals

    async def _authenticated_call(
        self,
        method: str,
        path: str,
        data_type: Any = dict,
        json: dict[str, Any] | None = None,
    ) -> ApiResponse:
        token = await self.get_access_token()
        if not token:
            raise TokenError(AuthErrorCodes.NOT_AUTHENTICATED, "Not authenticated")
        return await self._api.call(method, path, data_type, json=json, token=token)

    def _require_client_id(self) -> str:
        if not self.config.client_id:
            raise ConfigurationError(
                AuthErrorCodes.CONFIG_ERROR, "client_id is required for OAuth2 flow"
            )
        return self.config.client_id

    @staticmethod
    def _unwrap(response: ApiResponse, default_code: str, default_message: str) -> Any:
        if not response.is_success():
            raise AuthError(
                response.error_code(default_code),
                response.error_message(default_message),
            )
        return response.data

    async def close(self) -> None:
        """Close all service connections."""
        await self._transport.close()
