"""
Tests for the auth session and API client.
"""

from unittest.mock import MagicMock

import pytest
import requests

from credcache.auth import (
    AccountLockedError,
    ApiClient,
    ApiError,
    AuthenticationRequired,
    AuthSession,
    InvalidCredentialsError,
)
from credcache.backends import MemoryBackend
from credcache.cache import CredentialCache
from credcache.errors import BackingStoreError

from conftest import API_TOKEN, API_USER, LOCKED_EMAIL, VALID_PASSWORD


class _BrokenBackend(MemoryBackend):
    def get(self, key):
        raise BackingStoreError("storage disabled")

    def remove(self, key):
        raise BackingStoreError("storage disabled")


@pytest.fixture
def session(cache):
    return AuthSession(cache)


@pytest.fixture
def client(session, api_server_url):
    return ApiClient(session, api_server_url, timeout=5)


class TestAuthSession:
    """Tests for AuthSession."""

    @pytest.mark.asyncio
    async def test_store_and_read_token(self, session, backend):
        await session.store_token("abc")

        assert await session.get_token() == "abc"
        assert await session.is_authenticated() is True
        assert backend.get("secure_token") is not None

    @pytest.mark.asyncio
    async def test_authorization_header(self, session):
        assert await session.authorization_header() == {}
        await session.store_token("abc")
        assert await session.authorization_header() == {"Authorization": "Bearer abc"}

    @pytest.mark.asyncio
    async def test_logout(self, session):
        await session.store_token("abc")
        session.logout()
        assert await session.get_token() is None

    @pytest.mark.asyncio
    async def test_token_ttl(self, backend, clock):
        cache = CredentialCache(backend, clock=clock)
        session = AuthSession(cache, token_ttl_ms=1000)

        await session.store_token("abc")
        clock.advance(1001)

        assert await session.is_authenticated() is False

    @pytest.mark.asyncio
    async def test_empty_token_rejected(self, session):
        with pytest.raises(ValueError):
            await session.store_token("")

    @pytest.mark.asyncio
    async def test_cache_failure_means_logged_out(self):
        """Test a broken store never breaks the auth flow."""
        session = AuthSession(CredentialCache(_BrokenBackend()))

        assert await session.get_token() is None
        assert await session.authorization_header() == {}
        session.logout()

    @pytest.mark.asyncio
    async def test_missing_store_means_logged_out(self):
        session = AuthSession(CredentialCache(None))
        assert await session.is_authenticated() is False


class TestApiClient:
    """Tests for ApiClient against a local fake API."""

    @pytest.mark.asyncio
    async def test_login_stores_token(self, client, session):
        user = await client.login("seller@example.com", VALID_PASSWORD)

        assert user == API_USER
        assert await session.get_token() == API_TOKEN

    @pytest.mark.asyncio
    async def test_login_invalid_credentials(self, client, session):
        with pytest.raises(InvalidCredentialsError) as exc:
            await client.login("seller@example.com", "wrong")

        assert exc.value.status == 401
        assert exc.value.remaining_attempts == 2
        assert await session.get_token() is None

    @pytest.mark.asyncio
    async def test_login_locked_account(self, client):
        with pytest.raises(AccountLockedError) as exc:
            await client.login(LOCKED_EMAIL, VALID_PASSWORD)

        assert exc.value.status == 423
        assert exc.value.remaining_time == 900
        assert exc.value.message == "Account locked"

    @pytest.mark.asyncio
    async def test_check_auth_without_token(self, client):
        assert await client.check_auth() is None

    @pytest.mark.asyncio
    async def test_check_auth_with_valid_token(self, client, session):
        await session.store_token(API_TOKEN)
        assert await client.check_auth() == API_USER

    @pytest.mark.asyncio
    async def test_check_auth_with_stale_token_logs_out(self, client, session):
        await session.store_token("expired-token")

        assert await client.check_auth() is None
        assert await session.get_token() is None

    @pytest.mark.asyncio
    async def test_unauthorized_request_drops_token(self, client, session):
        await session.store_token("expired-token")

        with pytest.raises(AuthenticationRequired) as exc:
            await client.request("GET", "/user/profile")

        assert exc.value.message == "Token expired"
        assert await session.get_token() is None

    @pytest.mark.asyncio
    async def test_server_error(self, client, session):
        await session.store_token(API_TOKEN)

        with pytest.raises(ApiError) as exc:
            await client.request("GET", "/broken")

        assert exc.value.status == 500
        assert exc.value.message == "Internal error"
        assert await session.get_token() == API_TOKEN

    @pytest.mark.asyncio
    async def test_complete_oauth(self, client, session):
        user = await client.complete_oauth("oauth-token", API_USER)

        assert user == API_USER
        assert await session.get_token() == "oauth-token"

    @pytest.mark.asyncio
    async def test_logout(self, client, session):
        await client.login("seller@example.com", VALID_PASSWORD)
        client.logout()
        assert await client.check_auth() is None

    @pytest.mark.asyncio
    async def test_bearer_header_sent(self, session):
        response = MagicMock(status_code=200)
        response.json.return_value = {"ok": True}
        http = MagicMock(spec=requests.Session)
        http.request.return_value = response

        await session.store_token("abc")
        client = ApiClient(session, "https://api.example.com/api/", http=http)

        assert await client.request("GET", "books") == {"ok": True}

        args, kwargs = http.request.call_args
        assert args == ("GET", "https://api.example.com/api/books")
        assert kwargs["headers"]["Authorization"] == "Bearer abc"

    @pytest.mark.asyncio
    async def test_network_error_during_check_auth(self, session):
        http = MagicMock(spec=requests.Session)
        http.request.side_effect = requests.ConnectionError("refused")

        await session.store_token("abc")
        client = ApiClient(session, "https://api.example.com/api", http=http)

        assert await client.check_auth() is None
        assert await session.get_token() is None
