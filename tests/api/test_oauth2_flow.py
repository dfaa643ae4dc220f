"""Tests for the login, consent and logout endpoints."""
from unittest import mock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from identity_bff.api.dependencies import get_consent_handler, get_login_handler, get_logout_handler
from identity_bff.main import app
from identity_bff.models.challenges import (
    ConsentRequestInfo,
    Identity,
    IdentityTraits,
    LoginRequestInfo,
    LogoutRequestInfo,
    OAuth2ClientInfo,
    RedirectResponse,
)
from identity_bff.oauth2.consent import ConsentChallengeHandler
from identity_bff.oauth2.errors import ProviderError
from identity_bff.oauth2.kratos import INVALID_CREDENTIALS
from identity_bff.oauth2.login import LoginChallengeHandler
from identity_bff.oauth2.logout import LogoutChallengeHandler
from identity_bff.utils.result import Err, Ok

LOGGED_OUT_URL = "http://localhost:3000/oauth2/logged-out"


@pytest.fixture
def hydra():
    hydra = mock.AsyncMock()
    hydra.get_login_request.return_value = Ok(
        LoginRequestInfo(
            challenge="login-1",
            client=OAuth2ClientInfo(client_id="web-app", client_name="Web App"),
            requested_scope=["openid", "email"],
        )
    )
    hydra.get_consent_request.return_value = Ok(
        ConsentRequestInfo(challenge="consent-1", subject="identity-1", requested_scope=["openid", "email"])
    )
    hydra.get_logout_request.return_value = Ok(LogoutRequestInfo(challenge="logout-1", subject="identity-1"))
    for name in (
        "accept_login_request",
        "reject_login_request",
        "accept_consent_request",
        "reject_consent_request",
        "accept_logout_request",
    ):
        getattr(hydra, name).return_value = Ok(RedirectResponse(redirect_to=f"http://hydra.test/{name}"))
    return hydra


@pytest.fixture
def kratos():
    kratos = mock.AsyncMock()
    kratos.verify_credentials.return_value = Ok(Identity(id="identity-1"))
    kratos.get_identity.return_value = Ok(Identity(id="identity-1", traits=IdentityTraits(email="jane@example.com")))
    return kratos


@pytest_asyncio.fixture
async def client(hydra, kratos):
    app.dependency_overrides[get_login_handler] = lambda: LoginChallengeHandler(hydra, kratos)
    app.dependency_overrides[get_consent_handler] = lambda: ConsentChallengeHandler(hydra, kratos)
    app.dependency_overrides[get_logout_handler] = lambda: LogoutChallengeHandler(hydra, LOGGED_OUT_URL)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


class TestLoginEndpoints:
    @pytest.mark.asyncio
    async def test_get_login_awaiting_credentials(self, client):
        response = await client.get("/oauth2/login", params={"login_challenge": "login-1"})

        assert response.status_code == 200
        body = response.json()
        assert body["state"] == "awaiting_credentials"
        assert body["request"]["client"]["client_name"] == "Web App"
        assert "redirect_to" not in body

    @pytest.mark.asyncio
    async def test_get_login_skipped(self, client, hydra):
        hydra.get_login_request.return_value = Ok(
            LoginRequestInfo(challenge="login-1", skip=True, subject="identity-1")
        )

        response = await client.get("/oauth2/login", params={"login_challenge": "login-1"})

        assert response.json() == {"state": "skipped", "redirect_to": "http://hydra.test/accept_login_request"}

    @pytest.mark.asyncio
    async def test_get_login_missing_challenge(self, client, hydra):
        response = await client.get("/oauth2/login")

        assert response.status_code == 400
        assert response.json() == {
            "error": "missing_challenge",
            "error_description": "login_challenge parameter is required",
            "error_hint": "Please provide a valid login_challenge parameter",
            "status_code": 400,
        }
        hydra.get_login_request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_post_login_credentials(self, client, kratos):
        response = await client.post(
            "/oauth2/login",
            params={"login_challenge": "login-1"},
            json={"email": "jane@example.com", "password": "secret", "remember": True},
        )

        assert response.status_code == 200
        assert response.json() == {"redirect_to": "http://hydra.test/accept_login_request"}
        kratos.verify_credentials.assert_awaited_once_with("jane@example.com", "secret")

    @pytest.mark.asyncio
    async def test_post_login_credentials_with_skip_false(self, client, kratos, hydra):
        """Test the login form's skip: false flag is read as a credentials submission."""
        response = await client.post(
            "/oauth2/login",
            params={"login_challenge": "login-1"},
            json={"email": "jane@example.com", "password": "pw", "remember": False, "skip": False},
        )

        assert response.status_code == 200
        assert response.json() == {"redirect_to": "http://hydra.test/accept_login_request"}
        kratos.verify_credentials.assert_awaited_once_with("jane@example.com", "pw")
        accepted = hydra.accept_login_request.await_args.args[1]
        assert accepted.subject == "identity-1"
        assert accepted.remember is False

    @pytest.mark.asyncio
    async def test_post_login_skip_not_boolean(self, client, kratos):
        response = await client.post(
            "/oauth2/login",
            params={"login_challenge": "login-1"},
            json={"email": "jane@example.com", "password": "pw", "skip": "yes"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"
        kratos.verify_credentials.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_post_login_invalid_credentials_redirects(self, client, kratos, hydra):
        kratos.verify_credentials.return_value = Err(INVALID_CREDENTIALS)

        response = await client.post(
            "/oauth2/login",
            params={"login_challenge": "login-1"},
            json={"email": "jane@example.com", "password": "wrong"},
        )

        assert response.status_code == 200
        assert response.json() == {"redirect_to": "http://hydra.test/reject_login_request"}

    @pytest.mark.asyncio
    async def test_post_login_skip(self, client, kratos, hydra):
        response = await client.post(
            "/oauth2/login", params={"login_challenge": "login-1"}, json={"skip": True, "subject": "identity-1"}
        )

        assert response.status_code == 200
        kratos.verify_credentials.assert_not_awaited()
        hydra.accept_login_request.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_post_login_invalid_body(self, client, kratos):
        """Test a body matching neither shape is rejected without echoing the password."""
        response = await client.post(
            "/oauth2/login", params={"login_challenge": "login-1"}, json={"email": "not-an-email", "password": "pw-123"}
        )

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"
        assert "pw-123" not in response.text
        kratos.verify_credentials.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_post_login_identity_provider_down(self, client, kratos):
        kratos.verify_credentials.return_value = Err(
            ProviderError(code="kratos_unavailable", message="Unable to communicate", status_code=503)
        )

        response = await client.post(
            "/oauth2/login",
            params={"login_challenge": "login-1"},
            json={"email": "jane@example.com", "password": "secret"},
        )

        assert response.status_code == 503
        assert response.json()["error"] == "kratos_unavailable"

    @pytest.mark.asyncio
    async def test_post_login_used_challenge(self, client, hydra):
        hydra.accept_login_request.return_value = Err(
            ProviderError(code="challenge_already_used", message="used", status_code=410, hint="restart")
        )

        response = await client.post(
            "/oauth2/login",
            params={"login_challenge": "login-1"},
            json={"email": "jane@example.com", "password": "secret"},
        )

        assert response.status_code == 410
        assert response.json()["error_hint"] == "restart"

    @pytest.mark.asyncio
    async def test_upstream_status_not_passed_through(self, client, hydra):
        hydra.get_login_request.return_value = Err(ProviderError(code="hydra_error", message="boom", status_code=502))

        response = await client.get("/oauth2/login", params={"login_challenge": "login-1"})

        assert response.status_code == 500
        assert response.json()["status_code"] == 500


class TestConsentEndpoints:
    @pytest.mark.asyncio
    async def test_get_consent(self, client):
        response = await client.get("/oauth2/consent", params={"consent_challenge": "consent-1"})

        assert response.json()["state"] == "awaiting_decision"
        assert response.json()["request"]["requested_scope"] == ["openid", "email"]

    @pytest.mark.asyncio
    async def test_post_consent_grant(self, client, hydra):
        response = await client.post(
            "/oauth2/consent", params={"consent_challenge": "consent-1"}, json={"grant": True, "grant_scope": ["openid"]}
        )

        assert response.json() == {"redirect_to": "http://hydra.test/accept_consent_request"}
        _, body = hydra.accept_consent_request.await_args.args
        assert body.grant_scope == ["openid"]

    @pytest.mark.asyncio
    async def test_post_consent_deny(self, client, hydra):
        response = await client.post("/oauth2/consent", params={"consent_challenge": "consent-1"}, json={"grant": False})

        assert response.json() == {"redirect_to": "http://hydra.test/reject_consent_request"}
        hydra.get_consent_request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_post_consent_missing_challenge(self, client):
        response = await client.post("/oauth2/consent", json={"grant": True})

        assert response.status_code == 400
        assert response.json()["error"] == "missing_challenge"


class TestLogoutEndpoint:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["GET", "POST"])
    async def test_logout(self, client, method):
        response = await client.request(method, "/oauth2/logout", params={"logout_challenge": "logout-1"})

        assert response.status_code == 200
        assert response.json() == {"redirect_to": "http://hydra.test/accept_logout_request"}

    @pytest.mark.asyncio
    async def test_logout_without_challenge(self, client):
        response = await client.get("/oauth2/logout")

        assert response.status_code == 200
        assert response.json() == {"redirect_to": LOGGED_OUT_URL}
