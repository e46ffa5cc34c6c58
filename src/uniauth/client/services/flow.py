"""OAuth2 authorization code flow orchestration service.

Builds authorization URLs (optionally with PKCE) and exchanges authorization
codes for tokens. Used directly for the OAuth2 client flow and by the SSO
flow against the SSO service.
"""

from __future__ import annotations

import logging

from uniauth.client.models.errors import AuthErrorCodes, TokenExchangeError
from uniauth.client.models.flow import AuthorizationRequest
from uniauth.client.models.tokens import OAuth2TokenResult, TokenExchangeRequest
from uniauth.client.primitives.pkce import DEFAULT_VERIFIER_KEY, PKCEManager
from uniauth.client.primitives.storage import KeyValueStore
from uniauth.client.services.api import UniAuthAPI

logger = logging.getLogger(__name__)


class OAuth2FlowManager:
    """Orchestrates OAuth2 authorization code flows.

    Handles:
    - Authorization URL construction
    - PKCE parameter generation and single-use verifier persistence
    - Authorization code to token exchange
    """

    def __init__(self, api: UniAuthAPI, session_store: KeyValueStore | None):
        """Initialize the flow manager.

        Args:
            api: API access used for token endpoint requests
            session_store: Session-scoped medium holding the PKCE verifier
        """
        self._api = api
        self._pkce_manager = PKCEManager(session_store)

    def build_authorization_url(
        self,
        authorization_endpoint: str,
        client_id: str,
        redirect_uri: str,
        scope: str | None = None,
        state: str | None = None,
        use_pkce: bool = False,
        verifier_key: str | None = None,
    ) -> str:
        """Build the authorization URL the user agent should visit.

        With ``use_pkce`` a fresh verifier is stored (replacing any previous
        one) and its S256 challenge is added to the URL.

        Returns:
            The authorization URL; navigation is up to the caller
        """
        pkce = None
        if use_pkce:
            pkce = self._pkce_manager.begin(verifier_key or DEFAULT_VERIFIER_KEY)

        auth_request = AuthorizationRequest(
            authorization_endpoint=authorization_endpoint,
            client_id=client_id,
            redirect_uri=redirect_uri,
            scope=scope,
            state=state,
            pkce=pkce,
        )

        logger.debug(
            f"Built authorization URL for client {client_id} (pkce={use_pkce})"
        )
        return auth_request.build_authorization_url()

    async def exchange_code(
        self,
        token_endpoint: str,
        client_id: str,
        code: str,
        redirect_uri: str,
        client_secret: str | None = None,
        verifier_key: str | None = None,
    ) -> OAuth2TokenResult:
        """Exchange an authorization code for tokens.

        A stored PKCE verifier is read, cleared and attached as
        ``code_verifier``. It is cleared before the request is sent, so it is
        gone whatever the outcome of the exchange.

        Raises:
            TokenExchangeError: With the server's error code when the token
                endpoint reports an error
        """
        code_verifier = self._pkce_manager.consume(verifier_key or DEFAULT_VERIFIER_KEY)

        token_request = TokenExchangeRequest(
            token_endpoint=token_endpoint,
            client_id=client_id,
            code=code,
            redirect_uri=redirect_uri,
            client_secret=client_secret,
            code_verifier=code_verifier,
        )

        result = await self._api.post_token_endpoint(
            token_request.token_endpoint, token_request.to_json_body()
        )

        if result.is_error():
            logger.warning(
                f"Token exchange failed: {result.error} - {result.error_description}"
            )
            raise TokenExchangeError(
                result.error,
                result.error_description or "Token exchange failed",
            )

        if not result.is_success():
            raise TokenExchangeError(
                AuthErrorCodes.TOKEN_EXCHANGE_FAILED,
                "Token response missing required access_token",
            )

        logger.info("Token exchange successful")
        return result
