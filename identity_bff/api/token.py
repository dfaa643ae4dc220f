"""
API endpoints proxying the authorization server's token and userinfo endpoints.

Errors here use the OAuth2 body ``{error, error_description}`` with the
status the authorization server answered with.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse

from identity_bff.api.dependencies import get_token_client
from identity_bff.auth.errors import TokenError
from identity_bff.auth.oauth import TokenClient, fetch_userinfo
from identity_bff.models.tokens import RefreshTokenRequest, TokenExchangeRequest
from identity_bff.utils.config import ConfigurationError, Settings, get_settings


logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


def oauth2_error(error: str, error_description: str, status_code: int) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "error_description": error_description},
    )


def token_error_response(exc: TokenError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code or 500, content=exc.to_response())


def check_client_configuration(settings: Settings) -> Optional[JSONResponse]:
    """Return a server_error response when the Relying Party configuration is incomplete."""
    try:
        settings.require_oauth2_client()
    except ConfigurationError as e:
        logger.error(str(e), extra={"log_type": "configuration_error"})
        return oauth2_error("server_error", "OAuth2 client is not configured", 500)
    return None


@router.post("/token")
async def exchange_token(
    body: Optional[TokenExchangeRequest] = Body(None),
    settings: Settings = Depends(get_settings),
    token_client: TokenClient = Depends(get_token_client),
):
    """
    Exchange an authorization code and its PKCE verifier for tokens.

    Args:
        body: ``{code, code_verifier}``

    Returns:
        The token set, or the authorization server's error with its status
    """
    if body is None or not body.code or not body.code_verifier:
        return oauth2_error("invalid_request", "Missing required parameters: code and code_verifier", 400)

    misconfigured = check_client_configuration(settings)
    if misconfigured is not None:
        return misconfigured

    try:
        token_set = await token_client.exchange_code(body.code, body.code_verifier)
    except TokenError as e:
        return token_error_response(e)
    return token_set.model_dump(exclude_none=True)


@router.post("/refresh")
async def refresh_token(
    body: Optional[RefreshTokenRequest] = Body(None),
    settings: Settings = Depends(get_settings),
    token_client: TokenClient = Depends(get_token_client),
):
    """Trade a refresh token for a new token set."""
    if body is None or not body.refresh_token:
        return oauth2_error("invalid_request", "Missing required parameter: refresh_token", 400)

    misconfigured = check_client_configuration(settings)
    if misconfigured is not None:
        return misconfigured

    try:
        token_set = await token_client.refresh(body.refresh_token)
    except TokenError as e:
        return token_error_response(e)
    return token_set.model_dump(exclude_none=True)


@router.get("/userinfo")
async def userinfo(request: Request, settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    """Return the userinfo document for the caller's bearer token."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer ") or not auth_header[len("Bearer "):].strip():
        return oauth2_error("invalid_request", "Missing bearer token", 401)
    if not settings.oauth2_userinfo_endpoint:
        return oauth2_error("server_error", "Userinfo endpoint is not configured", 500)

    try:
        return await fetch_userinfo(
            auth_header[len("Bearer "):].strip(),
            settings.oauth2_userinfo_endpoint,
            timeout_seconds=settings.request_timeout_seconds,
        )
    except TokenError as e:
        return token_error_response(e)
