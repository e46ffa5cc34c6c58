"""JSON API access for the UniAuth service.

Application endpoints answer with a ``{success, data, error}`` envelope;
token endpoints answer with raw OAuth2 JSON. Both are sent as JSON over the
retrying transport.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

import httpx
from pydantic import ValidationError

from uniauth.client.models.config import ClientConfig
from uniauth.client.models.errors import AuthError, AuthErrorCodes
from uniauth.client.models.tokens import OAuth2TokenResult
from uniauth.client.models.user import ApiResponse
from uniauth.client.primitives.http import HTTPTransport, RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")


class UniAuthAPI:
    """Sends JSON requests to the authentication service.

    Adds the configured ``X-App-Key`` header, an optional bearer token, and
    the retry policy derived from the client configuration.
    """

    def __init__(self, config: ClientConfig, transport: HTTPTransport):
        self.config = config
        self.transport = transport
        self.retry_policy = RetryPolicy(
            max_retries=config.max_retries,
            timeout=config.timeout,
        )

    def url(self, path: str) -> str:
        return f"{self.config.base_url}{path}"

    async def call(
        self,
        method: str,
        path: str,
        data_type: type[T] | Any = dict,
        *,
        json: dict[str, Any] | None = None,
        token: str | None = None,
    ) -> ApiResponse[T]:
        """Call an application endpoint and parse its envelope.

        Args:
            method: HTTP method
            path: Path relative to the configured base URL
            data_type: Model for the envelope's ``data`` field
            json: Request body
            token: Access token to send as a bearer credential

        Returns:
            ApiResponse: Parsed envelope, successful or not

        Raises:
            AuthError: ``INVALID_RESPONSE`` if the body is not a valid envelope
        """
        headers = self.config.default_headers()
        if token:
            headers["Authorization"] = f"Bearer {token}"

        logger.debug(f"{method} {path}")
        response = await self.transport.request(
            method,
            self.url(path),
            retry=self.retry_policy,
            headers=headers,
            json=json,
        )
        payload = self._parse_json(response)

        try:
            return ApiResponse[data_type].model_validate(payload)
        except ValidationError as e:
            raise AuthError(
                AuthErrorCodes.INVALID_RESPONSE,
                f"Invalid response from {path}: {e}",
                status_code=response.status_code,
            ) from e

    async def post_token_endpoint(
        self, token_endpoint: str, body: dict[str, str]
    ) -> OAuth2TokenResult:
        """Post a token request and parse the raw OAuth2 response.

        Error responses (RFC 6749 Section 5.2) are returned, not raised;
        callers inspect ``error``.
        """
        logger.debug(
            f"Token request to {token_endpoint}: grant_type={body.get('grant_type')}, "
            f"client_id={body.get('client_id')}"
        )
        response = await self.transport.request(
            "POST",
            token_endpoint,
            retry=self.retry_policy,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            json=body,
        )
        payload = self._parse_json(response)

        try:
            return OAuth2TokenResult.model_validate(payload)
        except ValidationError as e:
            raise AuthError(
                AuthErrorCodes.INVALID_RESPONSE,
                f"Invalid token response format: {e}",
                status_code=response.status_code,
            ) from e

    def _parse_json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise AuthError(
                AuthErrorCodes.INVALID_RESPONSE,
                f"Response is not JSON (HTTP {response.status_code})",
                status_code=response.status_code,
            ) from e
