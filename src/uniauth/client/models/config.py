"""Client configuration."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Literal

from uniauth.client.models.errors import AuthError
from uniauth.client.models.tokens import TokenPair

StorageKind = Literal["durable", "session", "memory"]

DEFAULT_STORAGE_PATH = Path.home() / ".uniauth" / "storage.json"

TokenRefreshCallback = Callable[[TokenPair], Awaitable[None] | None]
AuthErrorCallback = Callable[[AuthError], Awaitable[None] | None]


@dataclass
class ClientConfig:
    """Configuration for a UniAuthClient instance.

    Attributes:
        base_url: API base URL of the authentication service
        app_key: Application key sent as ``X-App-Key``
        client_id: OAuth2 client ID, required for OAuth2 flows
        storage: Where tokens are kept: ``durable`` (file, survives restarts),
            ``session`` (process lifetime) or ``memory`` (this client only)
        storage_path: File backing the durable medium
        enable_retry: Retry transient failures with exponential backoff
        timeout: Per-attempt request timeout in milliseconds
        on_token_refresh: Called with the new pair after a silent refresh
        on_auth_error: Called when a silent refresh fails
    """

    base_url: str
    app_key: str | None = None
    client_id: str | None = None
    storage: StorageKind = "durable"
    storage_path: Path | str = DEFAULT_STORAGE_PATH
    enable_retry: bool = True
    timeout: float = 30000
    on_token_refresh: TokenRefreshCallback | None = None
    on_auth_error: AuthErrorCallback | None = None

    def __post_init__(self) -> None:
        if not self.base_url:
            raise ValueError("base_url is required")
        if self.storage not in ("durable", "session", "memory"):
            raise ValueError(f"Unknown storage kind: {self.storage!r}")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        self.base_url = self.base_url.rstrip("/")
        self.storage_path = Path(self.storage_path).expanduser()

    @property
    def max_retries(self) -> int:
        return 3 if self.enable_retry else 0

    def default_headers(self) -> dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if self.app_key:
            headers["X-App-Key"] = self.app_key
        return headers
