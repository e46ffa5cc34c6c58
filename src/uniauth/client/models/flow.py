"""Authorization flow models.

Contains authorize-request options, the authorization URL builder and the
parsed callback parameters.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import parse_qs, urlencode, urlparse

from uniauth.client.primitives.pkce import PKCEPair


@dataclass(frozen=True)
class AuthorizeOptions:
    """Options for the direct OAuth2 authorization code flow."""

    redirect_uri: str
    scope: str | None = None
    state: str | None = None
    use_pkce: bool = False
    verifier_key: str | None = None  # Overrides the default verifier storage key


@dataclass(frozen=True)
class SSOLoginOptions:
    """Options for starting an SSO login."""

    use_pkce: bool = True
    state: str | None = None  # Caller-supplied CSRF state, generated if omitted


@dataclass(frozen=True)
class AuthorizationRequest:
    """Authorization request parameters."""

    authorization_endpoint: str
    client_id: str
    redirect_uri: str
    scope: str | None = None
    state: str | None = None
    pkce: PKCEPair | None = None

    def build_authorization_url(self) -> str:
        """Build the complete authorization URL."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
        }

        if self.scope:
            params["scope"] = self.scope
        if self.state:
            params["state"] = self.state
        if self.pkce:
            params.update(self.pkce.authorize_params())

        return f"{self.authorization_endpoint}?{urlencode(params)}"


@dataclass(frozen=True)
class CallbackParams:
    code: str | None = None
    state: str | None = None
    error: str | None = None
    error_description: str | None = None

    @classmethod
    def from_url(cls, url: str) -> CallbackParams:
        """Parse callback parameters from a URL's query string."""
        query_params = parse_qs(urlparse(url).query)

        def get_single_param(key: str) -> str | None:
            values = query_params.get(key, [])
            return values[0] if values else None

        return cls(
            code=get_single_param("code"),
            state=get_single_param("state"),
            error=get_single_param("error"),
            error_description=get_single_param("error_description"),
        )

    def is_callback(self) -> bool:
        return self.code is not None and self.state is not None

    def is_error(self) -> bool:
        return self.error is not None
