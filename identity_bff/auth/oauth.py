"""
OAuth2 implementation for the Relying Party side of the Hydra flow.

This module builds authorization and logout URLs and talks to the
authorization server's token and userinfo endpoints. Token endpoint calls
are never retried: authorization codes are single-use, and a refresh
failure ends the session.
"""
import logging
import time
import urllib.parse
from typing import Any, Dict, List, Optional, Union

import httpx
from pydantic import ValidationError

from identity_bff.auth.errors import TokenError
from identity_bff.auth.pkce import PKCEPair
from identity_bff.metrics import oauth2_token_requests_total, upstream_call_latency_seconds, upstream_errors_total
from identity_bff.models.tokens import TokenSet
from identity_bff.utils.config import DEFAULT_SCOPE, Settings, get_settings
from identity_bff.utils.logging_utils import mask_token


logger = logging.getLogger(__name__)

FORM_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded",
    "Accept": "application/json",
}


def build_authorization_url(
    authorization_endpoint: str,
    client_id: str,
    redirect_uri: str,
    pkce: PKCEPair,
    scope: Optional[Union[str, List[str]]] = None,
) -> str:
    """
    Build an OAuth2 authorization URL with PKCE.

    Args:
        authorization_endpoint: The authorization server's /oauth2/auth URL
        client_id: The OAuth2 client ID
        redirect_uri: The redirect URI after authorization
        pkce: Freshly generated verifier/challenge/state
        scope: Scope(s) to request, defaults to DEFAULT_SCOPE

    Returns:
        str: The complete authorization URL

    Raises:
        ValueError: If the endpoint, client ID or redirect URI is missing
    """
    if not authorization_endpoint or not client_id or not redirect_uri:
        raise ValueError("Authorization endpoint, client_id and redirect_uri are required")

    if scope is None:
        scope = DEFAULT_SCOPE
    if isinstance(scope, str):
        scope = [s for s in scope.split(" ") if s]

    params: Dict[str, str] = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scope": " ".join(scope),
        "state": pkce.state,
        "code_challenge": pkce.code_challenge,
        "code_challenge_method": "S256",
    }

    parsed = urllib.parse.urlsplit(authorization_endpoint)
    query = urllib.parse.parse_qsl(parsed.query) + list(params.items())
    return urllib.parse.urlunsplit(parsed._replace(query=urllib.parse.urlencode(query)))


def build_logout_url(
    hydra_public_url: str,
    id_token_hint: Optional[str] = None,
    post_logout_redirect_uri: Optional[str] = None,
) -> str:
    """
    Build the RP-initiated logout URL.

    The authorization server answers it by issuing a logout challenge to the
    logout UI, which ends in the logout challenge handler.
    """
    params: Dict[str, str] = {}
    if id_token_hint:
        params["id_token_hint"] = id_token_hint
    if post_logout_redirect_uri:
        params["post_logout_redirect_uri"] = post_logout_redirect_uri

    logout_endpoint = f"{hydra_public_url.rstrip('/')}/oauth2/sessions/logout"
    if not params:
        return logout_endpoint
    return f"{logout_endpoint}?{urllib.parse.urlencode(params)}"


def _token_error_from_response(response: httpx.Response, fallback_error: str, fallback_description: str) -> TokenError:
    try:
        error_data = response.json()
    except ValueError:
        error_data = None
    if not isinstance(error_data, dict):
        return TokenError(fallback_error, f"Received status {response.status_code}", response.status_code)
    return TokenError(
        error_data.get("error") or fallback_error,
        error_data.get("error_description") or fallback_description,
        response.status_code,
    )


async def _post_token_request(
    token_endpoint: str,
    data: Dict[str, str],
    *,
    fallback_error: str,
    fallback_description: str,
    timeout_seconds: Optional[float] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> TokenSet:
    grant_type = data["grant_type"]
    timeout = httpx.Timeout(timeout_seconds or get_settings().request_timeout_seconds)
    started = time.perf_counter()

    try:
        if http_client is not None:
            response = await http_client.post(token_endpoint, data=data, headers=FORM_HEADERS)
        else:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.post(token_endpoint, data=data, headers=FORM_HEADERS)
    except httpx.RequestError as e:
        logger.error(
            f"Network error during token request: {str(e)}",
            extra={"log_type": "token_request_error", "grant_type": grant_type},
        )
        upstream_errors_total.labels(provider="token_endpoint", error_code="network_error").inc()
        oauth2_token_requests_total.labels(grant_type=grant_type, status="error").inc()
        raise TokenError("network_error", f"Request failed: {str(e)}", 503) from e
    finally:
        upstream_call_latency_seconds.labels(provider="token_endpoint", operation=grant_type).observe(
            time.perf_counter() - started
        )

    if not response.is_success:
        error = _token_error_from_response(response, fallback_error, fallback_description)
        logger.warning(
            "Token request rejected by authorization server",
            extra={
                "log_type": "token_request_error",
                "grant_type": grant_type,
                "status_code": response.status_code,
                "error_code": error.error,
            },
        )
        upstream_errors_total.labels(provider="token_endpoint", error_code=error.error).inc()
        oauth2_token_requests_total.labels(grant_type=grant_type, status="error").inc()
        raise error

    try:
        token_set = TokenSet.model_validate(response.json())
    except (ValueError, ValidationError) as e:
        logger.error(f"Failed to parse token response: {str(e)}")
        oauth2_token_requests_total.labels(grant_type=grant_type, status="error").inc()
        raise TokenError("invalid_response", "Failed to parse token response") from e

    oauth2_token_requests_total.labels(grant_type=grant_type, status="success").inc()
    logger.info(
        "Token request successful",
        extra={
            "log_type": "token_request",
            "grant_type": grant_type,
            "has_refresh_token": token_set.refresh_token is not None,
            "has_id_token": token_set.id_token is not None,
        },
    )
    return token_set


async def exchange_code_for_tokens(
    code: str,
    code_verifier: str,
    redirect_uri: str,
    client_id: str,
    token_endpoint: str,
    client_secret: Optional[str] = None,
    *,
    timeout_seconds: Optional[float] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> TokenSet:
    """
    Exchange an authorization code for tokens.

    Args:
        code: Authorization code from the callback
        code_verifier: PKCE code verifier used to generate the challenge
        redirect_uri: Redirect URI that was used for authorization
        client_id: OAuth2 client ID
        token_endpoint: The authorization server's token endpoint
        client_secret: Optional client secret for confidential clients

    Returns:
        TokenSet: The issued tokens

    Raises:
        TokenError: With the authorization server's error/error_description
            on a non-2xx answer, or "network_error" if it was unreachable.
            A code that was already used fails here like any other.
    """
    data = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri,
        "client_id": client_id,
        "code_verifier": code_verifier,
    }
    if client_secret:
        data["client_secret"] = client_secret

    return await _post_token_request(
        token_endpoint,
        data,
        fallback_error="token_exchange_failed",
        fallback_description="Failed to exchange code for tokens",
        timeout_seconds=timeout_seconds,
        http_client=http_client,
    )


async def refresh_access_token(
    refresh_token: str,
    client_id: str,
    token_endpoint: str,
    client_secret: Optional[str] = None,
    *,
    timeout_seconds: Optional[float] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> TokenSet:
    """
    Refresh an access token using a refresh token.

    A failure is terminal for the session that owns the refresh token; the
    caller clears its tokens instead of retrying.

    Raises:
        TokenError: If the token refresh failed
    """
    data = {
        "grant_type": "refresh_token",
        "refresh_token": refresh_token,
        "client_id": client_id,
    }
    if client_secret:
        data["client_secret"] = client_secret
    logger.info(
        "Refreshing access token",
        extra={"log_type": "token_refresh", "refresh_token_hint": mask_token(refresh_token)},
    )

    return await _post_token_request(
        token_endpoint,
        data,
        fallback_error="token_refresh_failed",
        fallback_description="Failed to refresh access token",
        timeout_seconds=timeout_seconds,
        http_client=http_client,
    )


async def fetch_userinfo(
    access_token: str,
    userinfo_endpoint: str,
    *,
    timeout_seconds: Optional[float] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, Any]:
    """
    Fetch the OIDC userinfo document for an access token.

    Raises:
        TokenError: If the endpoint rejects the token or is unreachable
    """
    headers = {"Authorization": f"Bearer {access_token}", "Accept": "application/json"}
    timeout = httpx.Timeout(timeout_seconds or get_settings().request_timeout_seconds)
    try:
        if http_client is not None:
            response = await http_client.get(userinfo_endpoint, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.get(userinfo_endpoint, headers=headers)
    except httpx.RequestError as e:
        logger.error(f"Network error during userinfo request: {str(e)}")
        raise TokenError("network_error", f"Request failed: {str(e)}", 503) from e

    if not response.is_success:
        raise _token_error_from_response(response, "userinfo_failed", "Failed to fetch user information")

    return response.json()


class TokenClient:
    """Token endpoint operations bound to one Relying Party configuration."""

    def __init__(
        self,
        *,
        token_endpoint: str,
        client_id: str,
        redirect_uri: Optional[str] = None,
        client_secret: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.token_endpoint = token_endpoint
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self.client_secret = client_secret
        self.timeout_seconds = timeout_seconds
        self.http_client = http_client

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **kwargs: Any) -> "TokenClient":
        settings = settings or get_settings()
        return cls(
            token_endpoint=settings.oauth2_token_endpoint,
            client_id=settings.oauth2_client_id,
            redirect_uri=settings.oauth2_redirect_uri,
            client_secret=settings.oauth2_client_secret.get_secret_value() if settings.oauth2_client_secret else None,
            timeout_seconds=settings.request_timeout_seconds,
            **kwargs,
        )

    async def exchange_code(self, code: str, code_verifier: str) -> TokenSet:
        return await exchange_code_for_tokens(
            code=code,
            code_verifier=code_verifier,
            redirect_uri=self.redirect_uri,
            client_id=self.client_id,
            token_endpoint=self.token_endpoint,
            client_secret=self.client_secret,
            timeout_seconds=self.timeout_seconds,
            http_client=self.http_client,
        )

    async def refresh(self, refresh_token: str) -> TokenSet:
        return await refresh_access_token(
            refresh_token=refresh_token,
            client_id=self.client_id,
            token_endpoint=self.token_endpoint,
            client_secret=self.client_secret,
            timeout_seconds=self.timeout_seconds,
            http_client=self.http_client,
        )
