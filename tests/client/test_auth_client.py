from unittest.mock import MagicMock
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from conftest import BASE_URL, make_jwt, request_json

from uniauth.client.models.errors import (
    AuthError,
    AuthErrorCodes,
    ConfigurationError,
    InvalidInputError,
    TokenError,
)
from uniauth.client.models.flow import AuthorizeOptions
from uniauth.client.models.tokens import TokenPair
from uniauth.client.primitives.pkce import DEFAULT_VERIFIER_KEY

PHONE = "+8613800138000"
SEND_CODE_URL = f"{BASE_URL}/api/v1/auth/phone/send-code"
PHONE_VERIFY_URL = f"{BASE_URL}/api/v1/auth/phone/verify"
EMAIL_SEND_CODE_URL = f"{BASE_URL}/api/v1/auth/email/send-code"
EMAIL_LOGIN_URL = f"{BASE_URL}/api/v1/auth/email/login"
REFRESH_URL = f"{BASE_URL}/api/v1/auth/refresh"
LOGOUT_URL = f"{BASE_URL}/api/v1/auth/logout"
LOGOUT_ALL_URL = f"{BASE_URL}/api/v1/auth/logout-all"
USER_URL = f"{BASE_URL}/api/v1/user/me"


def login_payload(access_token: str, refresh_token: str = "RT", **user) -> dict:
    return {
        "success": True,
        "data": {
            "user": {"id": "u1", "phone": PHONE, **user},
            "access_token": access_token,
            "refresh_token": refresh_token,
            "expires_in": 3600,
            "is_new_user": False,
        },
    }


class TestSendCode:
    async def test_sends_validated_phone(self, make_client, server) -> None:
        # Arrange
        client = make_client()
        server.add_json(
            "POST", SEND_CODE_URL, {"success": True, "data": {"expires_in": 300, "retry_after": 60}}
        )

        # Act
        result = await client.send_code(f" {PHONE} ")

        # Assert
        assert result.expires_in == 300
        assert result.retry_after == 60
        request = server.requests_to(SEND_CODE_URL)[0]
        assert request_json(request) == {"phone": PHONE, "type": "login"}
        assert request.headers["X-App-Key"] == "test-key"

    @pytest.mark.parametrize(
        "phone, code",
        [
            ("", AuthErrorCodes.INVALID_PHONE),
            ("13800138000", AuthErrorCodes.INVALID_PHONE_FORMAT),
            ("+86123", AuthErrorCodes.INVALID_PHONE_FORMAT),
        ],
    )
    async def test_invalid_phone_never_reaches_server(
        self, make_client, server, phone, code
    ) -> None:
        client = make_client()

        with pytest.raises(InvalidInputError) as exc_info:
            await client.send_code(phone)

        assert exc_info.value.code == code
        assert server.requests == []

    async def test_server_error_code_is_propagated(self, make_client, server) -> None:
        # Arrange
        client = make_client()
        server.add_json(
            "POST",
            SEND_CODE_URL,
            {
                "success": False,
                "error": {"code": "DAILY_LIMIT_EXCEEDED", "message": "Too many codes today"},
            },
            status_code=400,
        )

        # Act
        with pytest.raises(AuthError) as exc_info:
            await client.send_code(PHONE)

        # Assert
        assert exc_info.value.code == "DAILY_LIMIT_EXCEEDED"
        assert exc_info.value.message == "Too many codes today"

    async def test_failure_without_error_body(self, make_client, server) -> None:
        client = make_client()
        server.add_json("POST", SEND_CODE_URL, {"success": False}, status_code=400)

        with pytest.raises(AuthError) as exc_info:
            await client.send_code(PHONE)

        assert exc_info.value.code == AuthErrorCodes.SEND_CODE_FAILED

    async def test_email_code(self, make_client, server) -> None:
        client = make_client()
        server.add_json(
            "POST",
            EMAIL_SEND_CODE_URL,
            {"success": True, "data": {"expires_in": 600, "retry_after": 60}},
        )

        await client.send_email_code("user@example.com", code_type="reset")

        body = request_json(server.requests_to(EMAIL_SEND_CODE_URL)[0])
        assert body == {"email": "user@example.com", "type": "reset"}

    async def test_invalid_response_body(self, make_client, server) -> None:
        client = make_client()
        server.add_json("POST", SEND_CODE_URL, [1, 2, 3])

        with pytest.raises(AuthError) as exc_info:
            await client.send_code(PHONE)

        assert exc_info.value.code == AuthErrorCodes.INVALID_RESPONSE


class TestLogin:
    async def test_login_with_code_stores_tokens_and_notifies(
        self, make_client, server
    ) -> None:
        # Arrange
        client = make_client()
        access_token = make_jwt(3600)
        server.add_json("POST", PHONE_VERIFY_URL, login_payload(access_token))
        changes = []
        client.on_auth_state_change(lambda user, is_auth: changes.append((user, is_auth)))

        # Act
        result = await client.login_with_code(PHONE, "123456")

        # Assert
        assert result.user.id == "u1"
        assert client.is_authenticated()
        assert await client.get_access_token() == access_token
        assert request_json(server.requests_to(PHONE_VERIFY_URL)[0]) == {
            "phone": PHONE,
            "code": "123456",
        }
        assert len(changes) == 1
        assert changes[0][0].id == "u1"
        assert changes[0][1] is True

    async def test_failed_login_leaves_client_unauthenticated(
        self, make_client, server
    ) -> None:
        client = make_client()
        server.add_json(
            "POST",
            PHONE_VERIFY_URL,
            {"success": False, "error": {"code": "INVALID_CODE", "message": "Wrong code"}},
            status_code=400,
        )

        with pytest.raises(AuthError) as exc_info:
            await client.login_with_code(PHONE, "000000")

        assert exc_info.value.code == "INVALID_CODE"
        assert not client.is_authenticated()

    async def test_login_with_email(self, make_client, server) -> None:
        client = make_client()
        server.add_json("POST", EMAIL_LOGIN_URL, login_payload("AT"))

        await client.login_with_email("user@example.com", "hunter2")

        assert request_json(server.requests_to(EMAIL_LOGIN_URL)[0]) == {
            "email": "user@example.com",
            "password": "hunter2",
        }
        assert client.is_authenticated()

    async def test_login_with_invalid_email(self, make_client, server) -> None:
        client = make_client()

        with pytest.raises(InvalidInputError) as exc_info:
            await client.login_with_email("not-an-email", "pw")

        assert exc_info.value.code == AuthErrorCodes.INVALID_EMAIL
        assert server.requests == []

    async def test_oauth_callback(self, make_client, server) -> None:
        # Arrange
        client = make_client()
        url = f"{BASE_URL}/api/v1/auth/oauth/github/callback"
        server.add_json("POST", url, login_payload("AT"))

        # Act
        await client.handle_oauth_callback(
            "github", "gh-code", redirect_uri="https://app.example.com/oauth"
        )

        # Assert
        assert request_json(server.requests_to(url)[0]) == {
            "code": "gh-code",
            "redirect_uri": "https://app.example.com/oauth",
        }
        assert client.is_authenticated()


class TestAuthStateSubscribers:
    async def test_failing_subscriber_does_not_affect_others(
        self, make_client, server
    ) -> None:
        # Arrange
        client = make_client()
        server.add_json("POST", PHONE_VERIFY_URL, login_payload("AT"))
        good = MagicMock()
        client.on_auth_state_change(MagicMock(side_effect=RuntimeError("boom")))
        client.on_auth_state_change(good)

        # Act
        await client.login_with_code(PHONE, "123456")

        # Assert
        good.assert_called_once()
        assert good.call_args.args[1] is True
        assert client.is_authenticated()

    async def test_unsubscribe(self, make_client, server) -> None:
        client = make_client()
        server.add_json("POST", PHONE_VERIFY_URL, login_payload("AT"))
        callback = MagicMock()
        unsubscribe = client.on_auth_state_change(callback)

        unsubscribe()
        await client.login_with_code(PHONE, "123456")

        callback.assert_not_called()


class TestSession:
    async def test_silent_refresh_calls_token_refresh_hook(
        self, make_client, server
    ) -> None:
        # Arrange
        on_token_refresh = MagicMock()
        client = make_client(on_token_refresh=on_token_refresh)
        server.add_json("POST", PHONE_VERIFY_URL, login_payload(make_jwt(60), "RT-1"))
        fresh = make_jwt(3600)
        server.add_json(
            "POST",
            REFRESH_URL,
            {"success": True, "data": {"access_token": fresh, "refresh_token": "RT-2"}},
        )
        await client.login_with_code(PHONE, "123456")

        # Act
        token = await client.get_access_token()

        # Assert
        assert token == fresh
        assert request_json(server.requests_to(REFRESH_URL)[0]) == {"refresh_token": "RT-1"}
        tokens = on_token_refresh.call_args.args[0]
        assert isinstance(tokens, TokenPair)
        assert tokens.refresh_token == "RT-2"

    async def test_rejected_refresh_calls_auth_error_hook(self, make_client, server) -> None:
        on_auth_error = MagicMock()
        client = make_client(on_auth_error=on_auth_error)
        server.add_json("POST", PHONE_VERIFY_URL, login_payload(make_jwt(60)))
        server.add_json(
            "POST",
            REFRESH_URL,
            {"success": False, "error": {"code": "TOKEN_REVOKED", "message": "Revoked"}},
            status_code=401,
        )
        await client.login_with_code(PHONE, "123456")

        token = await client.get_access_token()

        assert token is None
        assert not client.is_authenticated()
        assert on_auth_error.call_args.args[0].code == AuthErrorCodes.REFRESH_FAILED

    async def test_get_current_user(self, make_client, server) -> None:
        client = make_client()
        server.add_json("POST", PHONE_VERIFY_URL, login_payload("AT"))
        server.add_json("GET", USER_URL, {"success": True, "data": {"id": "u1", "nickname": "Ann"}})
        await client.login_with_code(PHONE, "123456")

        user = await client.get_current_user()

        assert user.nickname == "Ann"
        assert server.requests_to(USER_URL)[0].headers["Authorization"] == "Bearer AT"

    async def test_get_current_user_when_unauthenticated(self, make_client, server) -> None:
        client = make_client()

        assert await client.get_current_user() is None
        assert server.requests == []

    async def test_update_profile(self, make_client, server) -> None:
        # Arrange
        client = make_client()
        server.add_json("POST", PHONE_VERIFY_URL, login_payload("AT"))
        server.add_json(
            "PATCH", USER_URL, {"success": True, "data": {"id": "u1", "nickname": "Bob"}}
        )
        await client.login_with_code(PHONE, "123456")
        changes = []
        client.on_auth_state_change(lambda user, is_auth: changes.append((user, is_auth)))

        # Act
        user = await client.update_profile(nickname="Bob")

        # Assert
        assert user.nickname == "Bob"
        assert request_json(server.requests_to(USER_URL)[0]) == {"nickname": "Bob"}
        assert changes[0][0].nickname == "Bob"

    async def test_update_profile_when_unauthenticated(self, make_client, server) -> None:
        client = make_client()

        with pytest.raises(TokenError) as exc_info:
            await client.update_profile(nickname="Bob")

        assert exc_info.value.code == AuthErrorCodes.NOT_AUTHENTICATED
        assert server.requests == []


class TestLogout:
    async def test_logout(self, make_client, server) -> None:
        # Arrange
        client = make_client()
        server.add_json("POST", PHONE_VERIFY_URL, login_payload("AT", "RT"))
        server.add_json("POST", LOGOUT_URL, {"success": True, "data": {}})
        await client.login_with_code(PHONE, "123456")

        # Act
        await client.logout()

        # Assert
        request = server.requests_to(LOGOUT_URL)[0]
        assert request_json(request) == {"refresh_token": "RT"}
        assert request.headers["Authorization"] == "Bearer AT"
        assert not client.is_authenticated()

    async def test_logout_all(self, make_client, server) -> None:
        client = make_client()
        server.add_json("POST", PHONE_VERIFY_URL, login_payload("AT"))
        server.add_json("POST", LOGOUT_ALL_URL, {"success": True, "data": {}})
        await client.login_with_code(PHONE, "123456")

        await client.logout_all()

        assert len(server.requests_to(LOGOUT_ALL_URL)) == 1
        assert not client.is_authenticated()

    async def test_logout_clears_tokens_when_server_unreachable(
        self, make_client, server
    ) -> None:
        # Arrange
        client = make_client(enable_retry=False)
        server.add_json("POST", PHONE_VERIFY_URL, login_payload("AT"))
        server.add_network_error("POST", LOGOUT_URL)
        await client.login_with_code(PHONE, "123456")

        # Act
        with pytest.raises(httpx.ConnectError):
            await client.logout()

        # Assert
        assert len(server.requests_to(LOGOUT_URL)) == 1
        assert not client.is_authenticated()

    async def test_logout_when_unauthenticated(self, make_client, server) -> None:
        client = make_client()

        with pytest.raises(TokenError) as exc_info:
            await client.logout()

        assert exc_info.value.code == AuthErrorCodes.NOT_AUTHENTICATED
        assert server.requests == []


class TestOAuth2Flow:
    def test_start_flow_builds_url(self, make_client, session_store) -> None:
        # Arrange
        client = make_client()

        # Act
        url = client.start_oauth2_flow(
            AuthorizeOptions(
                redirect_uri="https://app.example.com/cb",
                scope="openid profile",
                state="st-1",
                use_pkce=True,
            )
        )

        # Assert
        assert url.startswith(f"{BASE_URL}/api/v1/oauth2/authorize?")
        params = parse_qs(urlparse(url).query)
        assert params["client_id"] == ["test-client"]
        assert params["scope"] == ["openid profile"]
        assert params["state"] == ["st-1"]
        assert params["code_challenge_method"] == ["S256"]
        assert session_store.get_item(DEFAULT_VERIFIER_KEY) is not None

    def test_start_flow_requires_client_id(self, make_client) -> None:
        client = make_client(client_id=None)

        with pytest.raises(ConfigurationError) as exc_info:
            client.start_oauth2_flow(AuthorizeOptions(redirect_uri="https://app/cb"))

        assert exc_info.value.code == AuthErrorCodes.CONFIG_ERROR

    async def test_exchange_code_returns_tokens_without_storing(
        self, make_client, server
    ) -> None:
        # Arrange
        client = make_client()
        token_url = f"{BASE_URL}/api/v1/oauth2/token"
        server.add_json(
            "POST",
            token_url,
            {"access_token": "OAT", "token_type": "Bearer", "expires_in": 3600, "id_token": "ID"},
        )

        # Act
        result = await client.exchange_oauth2_code(
            "code-1", "https://app/cb", client_secret="s3cret"
        )

        # Assert
        assert result.access_token == "OAT"
        assert result.id_token == "ID"
        assert request_json(server.requests_to(token_url)[0]) == {
            "grant_type": "authorization_code",
            "client_id": "test-client",
            "code": "code-1",
            "redirect_uri": "https://app/cb",
            "client_secret": "s3cret",
        }
        assert not client.is_authenticated()

    async def test_exchange_code_requires_client_id(self, make_client, server) -> None:
        client = make_client(client_id=None)

        with pytest.raises(ConfigurationError):
            await client.exchange_oauth2_code("code-1", "https://app/cb")

        assert server.requests == []


class TestClientInstances:
    async def test_memory_storage_is_private_per_client(self, make_client, server) -> None:
        first = make_client()
        second = make_client()
        server.add_json("POST", PHONE_VERIFY_URL, login_payload("AT"))

        await first.login_with_code(PHONE, "123456")

        assert first.is_authenticated()
        assert not second.is_authenticated()

    async def test_durable_storage_is_shared_through_the_store(
        self, make_client, server
    ) -> None:
        first = make_client(storage="durable")
        second = make_client(storage="durable")
        server.add_json("POST", PHONE_VERIFY_URL, login_payload("AT"))

        await first.login_with_code(PHONE, "123456")

        assert second.is_authenticated()

    async def test_async_context_manager_closes_client(self, make_client) -> None:
        async with make_client() as client:
            assert not client.is_authenticated()

        assert client._transport._http_client.is_closed
