import json
import time
from typing import Any

import httpx
import jwt
import pytest

from uniauth.client.auth_client import UniAuthClient
from uniauth.client.models.config import ClientConfig
from uniauth.client.primitives.navigation import LocationNavigator
from uniauth.client.primitives.storage import MemoryKeyValueStore

BASE_URL = "https://auth.example.com"
SSO_URL = "https://sso.example.com"

_SIGNING_KEY = "test-signing-key-that-is-long-enough-for-hs256"


def make_jwt(expires_in: int, **claims: Any) -> str:
    """Build a signed JWT expiring ``expires_in`` seconds from now."""
    payload = {"sub": "user-1", "exp": int(time.time()) + expires_in, **claims}
    return jwt.encode(payload, _SIGNING_KEY, algorithm="HS256")


def request_json(request: httpx.Request) -> dict[str, Any]:
    return json.loads(request.content)


class FakeAuthServer:
    """Routes requests to canned responses and records what was sent.

    Each route holds a queue of responses; the last one repeats once the
    queue is drained. A fresh ``httpx.Response`` is built per request.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], list[dict[str, Any]]] = {}
        self.requests: list[httpx.Request] = []

    def add_json(
        self,
        method: str,
        url: str,
        payload: Any,
        status_code: int = 200,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.routes.setdefault((method, url), []).append(
            {"status_code": status_code, "json": payload, "headers": headers}
        )

    def add_network_error(self, method: str, url: str) -> None:
        self.routes.setdefault((method, url), []).append({"network_error": True})

    def requests_to(self, url: str) -> list[httpx.Request]:
        return [r for r in self.requests if str(r.url).split("?")[0] == url]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, str(request.url).split("?")[0])
        queue = self.routes.get(key)
        if not queue:
            return httpx.Response(
                404,
                json={"success": False, "error": {"code": "NOT_FOUND", "message": "No route"}},
            )
        spec = queue.pop(0) if len(queue) > 1 else queue[0]
        if spec.get("network_error"):
            raise httpx.ConnectError("Connection refused", request=request)
        return httpx.Response(
            spec["status_code"], json=spec["json"], headers=spec["headers"]
        )


@pytest.fixture
def server() -> FakeAuthServer:
    return FakeAuthServer()


@pytest.fixture
def durable_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def session_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def navigator() -> LocationNavigator:
    return LocationNavigator("https://app.example.com/")


@pytest.fixture
def make_client(server, durable_store, session_store, navigator):
    def factory(**overrides: Any) -> UniAuthClient:
        settings = {
            "base_url": BASE_URL,
            "app_key": "test-key",
            "client_id": "test-client",
            "storage": "memory",
        }
        settings.update(overrides)
        return UniAuthClient(
            ClientConfig(**settings),
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(server.handler)),
            durable_store=durable_store,
            session_store=session_store,
            navigator=navigator,
        )

    return factory
