"""SSO configuration model."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_SSO_SCOPE = "openid profile email"


@dataclass(frozen=True)
class SSOConfig:
    """Cross-domain SSO settings, fixed for the lifetime of a client."""

    sso_url: str
    client_id: str
    redirect_uri: str
    scope: str | None = DEFAULT_SSO_SCOPE

    def __post_init__(self) -> None:
        if not self.sso_url:
            raise ValueError("sso_url is required")
        if not self.client_id:
            raise ValueError("client_id is required")
        if not self.redirect_uri:
            raise ValueError("redirect_uri is required")
        # Frozen dataclass, so normalize through object.__setattr__
        object.__setattr__(self, "sso_url", self.sso_url.rstrip("/"))
        if not self.scope:
            object.__setattr__(self, "scope", DEFAULT_SSO_SCOPE)

    @property
    def authorization_endpoint(self) -> str:
        return f"{self.sso_url}/api/v1/oauth2/authorize"

    @property
    def token_endpoint(self) -> str:
        return f"{self.sso_url}/api/v1/oauth2/token"
