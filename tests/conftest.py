"""Global test fixtures and configuration."""

import os
from typing import Any, Callable, Dict, List

import httpx
import jwt
import pytest

# Set up environment variables for testing before any settings are loaded
os.environ["SERVICE_ENV"] = "test"
os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
os.environ["OAUTH2_CLIENT_ID"] = "test-client"
os.environ["OAUTH2_REDIRECT_URI"] = "http://localhost:3000/callback"
os.environ["METRICS_USER"] = "metrics-test"
os.environ["METRICS_PASS"] = "metrics-secret"

from identity_bff.utils.config import Settings, get_settings  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    """Settings with a complete Relying Party configuration."""
    return Settings(
        service_env="test",
        oauth2_client_id="test-client",
        oauth2_redirect_uri="http://localhost:3000/callback",
        oauth2_authorization_endpoint="http://hydra.test/oauth2/auth",
        oauth2_token_endpoint="http://hydra.test/oauth2/token",
        oauth2_userinfo_endpoint="http://hydra.test/userinfo",
        hydra_admin_url="http://hydra-admin.test",
        hydra_public_url="http://hydra.test",
        kratos_public_url="http://kratos.test",
        kratos_admin_url="http://kratos-admin.test",
        logged_out_url="http://localhost:3000/oauth2/logged-out",
    )


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Drop cached settings so each test sees its own environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def make_id_token() -> Callable[..., str]:
    """Build an HS256-signed ID token; signatures are never verified by the code under test."""

    def factory(**claims: Any) -> str:
        payload = {"sub": "user-123", "email": "user@example.com", "name": "Test User"}
        payload.update(claims)
        return jwt.encode(payload, "test-signing-key-with-enough-length-123", algorithm="HS256")

    return factory


@pytest.fixture
def token_payload() -> Dict[str, Any]:
    """A token endpoint response body."""
    return {
        "access_token": "access-token-value",
        "token_type": "bearer",
        "expires_in": 3600,
        "refresh_token": "refresh-token-value",
        "scope": "openid email profile offline_access",
    }


@pytest.fixture
def mock_http():
    """
    Factory for an httpx.AsyncClient backed by MockTransport.

    Returns (client, calls): ``calls`` collects every request sent.
    """

    def factory(handler: Callable[[httpx.Request], httpx.Response]):
        calls: List[httpx.Request] = []

        def recording_handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return handler(request)

        return httpx.AsyncClient(transport=httpx.MockTransport(recording_handler)), calls

    return factory
