"""Tests for the token, refresh and userinfo endpoints."""
from unittest import mock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from identity_bff.api.dependencies import get_token_client
from identity_bff.auth.errors import TokenError
from identity_bff.main import app
from identity_bff.models.tokens import TokenSet
from identity_bff.utils.config import get_settings


@pytest.fixture
def token_client(token_payload):
    token_client = mock.AsyncMock()
    token_client.exchange_code.return_value = TokenSet(**token_payload)
    token_client.refresh.return_value = TokenSet(**{**token_payload, "access_token": "refreshed-access"})
    return token_client


@pytest_asyncio.fixture
async def client(settings, token_client):
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_token_client] = lambda: token_client
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


class TestTokenExchange:
    @pytest.mark.asyncio
    async def test_exchange(self, client, token_client):
        response = await client.post("/api/auth/token", json={"code": "auth-code", "code_verifier": "verifier"})

        assert response.status_code == 200
        assert response.json() == {
            "access_token": "access-token-value",
            "token_type": "bearer",
            "expires_in": 3600,
            "refresh_token": "refresh-token-value",
            "scope": "openid email profile offline_access",
        }
        assert response.headers["Cache-Control"] == "no-store"
        token_client.exchange_code.assert_awaited_once_with("auth-code", "verifier")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [{}, {"code": "auth-code"}, {"code_verifier": "verifier"}, {"code": "", "code_verifier": "verifier"}],
    )
    async def test_missing_fields(self, client, token_client, body):
        """Test incomplete requests never reach the token endpoint."""
        response = await client.post("/api/auth/token", json=body)

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"
        assert response.headers["Cache-Control"] == "no-store"
        token_client.exchange_code.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_server_error_passed_through(self, client, token_client):
        token_client.exchange_code.side_effect = TokenError("invalid_grant", "The code was already used", 400)

        response = await client.post("/api/auth/token", json={"code": "used", "code_verifier": "verifier"})

        assert response.status_code == 400
        assert response.json() == {"error": "invalid_grant", "error_description": "The code was already used"}

    @pytest.mark.asyncio
    async def test_network_error(self, client, token_client):
        token_client.exchange_code.side_effect = TokenError("network_error", "Request failed", 503)

        response = await client.post("/api/auth/token", json={"code": "c", "code_verifier": "v"})

        assert response.status_code == 503
        assert response.json()["error"] == "network_error"

    @pytest.mark.asyncio
    async def test_incomplete_configuration(self, client, settings, token_client):
        settings.oauth2_client_id = None

        response = await client.post("/api/auth/token", json={"code": "c", "code_verifier": "v"})

        assert response.status_code == 500
        assert response.json()["error"] == "server_error"
        token_client.exchange_code.assert_not_awaited()


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh(self, client, token_client):
        response = await client.post("/api/auth/refresh", json={"refresh_token": "refresh-token-value"})

        assert response.status_code == 200
        assert response.json()["access_token"] == "refreshed-access"
        token_client.refresh.assert_awaited_once_with("refresh-token-value")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{}, {"refresh_token": ""}])
    async def test_missing_refresh_token(self, client, token_client, body):
        response = await client.post("/api/auth/refresh", json=body)

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"
        token_client.refresh.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_revoked_refresh_token(self, client, token_client):
        token_client.refresh.side_effect = TokenError("invalid_grant", "Refresh token revoked", 400)

        response = await client.post("/api/auth/refresh", json={"refresh_token": "revoked"})

        assert response.status_code == 400
        assert response.json()["error_description"] == "Refresh token revoked"


class TestUserinfo:
    @pytest.mark.asyncio
    async def test_requires_bearer(self, client):
        response = await client.get("/api/auth/userinfo")

        assert response.status_code == 401
        assert response.json()["error"] == "invalid_request"

    @pytest.mark.asyncio
    async def test_proxies_userinfo(self, client):
        with mock.patch("identity_bff.api.token.fetch_userinfo", new=mock.AsyncMock(return_value={"sub": "user-1"})) as fetch:
            response = await client.get("/api/auth/userinfo", headers={"Authorization": "Bearer access-1"})

        assert response.status_code == 200
        assert response.json() == {"sub": "user-1"}
        fetch.assert_awaited_once_with("access-1", "http://hydra.test/userinfo", timeout_seconds=30)
