"""Token models for the UniAuth client.

Contains the stored token pair, the OAuth2 token endpoint response and the
code exchange request.
"""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict


class TokenPair(BaseModel):
    """Access/refresh token pair issued by login, refresh or code exchange."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None  # Seconds until the access token expires


class OAuth2TokenResult(BaseModel):
    """OAuth2 token endpoint response (RFC 6749 Section 5).

    Covers both successful responses (Section 5.1) and error responses
    (Section 5.2); token endpoints do not use the application envelope.
    """

    model_config = ConfigDict(extra="allow")

    # Success response fields
    access_token: str | None = None
    token_type: str = "Bearer"
    expires_in: int | None = None
    refresh_token: str | None = None
    id_token: str | None = None  # OIDC ID Token
    scope: str | None = None

    # Error response fields
    error: str | None = None
    error_description: str | None = None

    def is_success(self) -> bool:
        """Check if the response carries an access token and no error."""
        return self.error is None and self.access_token is not None

    def is_error(self) -> bool:
        return self.error is not None

    def to_token_pair(self) -> TokenPair:
        """Convert a successful response to the stored token pair.

        Raises:
            ValueError: If the response is not successful
        """
        if not self.is_success():
            raise ValueError("Cannot convert error response to TokenPair")

        return TokenPair(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            expires_in=self.expires_in,
        )


@dataclass(frozen=True)
class TokenExchangeRequest:
    """Authorization code exchange parameters (RFC 6749 Section 4.1.3)."""

    # Required fields first
    token_endpoint: str
    client_id: str
    code: str
    redirect_uri: str

    # Optional fields with defaults last
    client_secret: str | None = None
    code_verifier: str | None = None  # RFC 7636 PKCE
    grant_type: str = "authorization_code"

    def to_json_body(self) -> dict[str, str]:
        """Build the JSON body sent to the token endpoint."""
        body = {
            "grant_type": self.grant_type,
            "client_id": self.client_id,
            "code": self.code,
            "redirect_uri": self.redirect_uri,
        }

        if self.client_secret:
            body["client_secret"] = self.client_secret
        if self.code_verifier:
            body["code_verifier"] = self.code_verifier

        return body
