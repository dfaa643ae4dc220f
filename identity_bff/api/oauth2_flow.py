"""API endpoints for the login, consent and logout challenges issued by the authorization server."""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query
from pydantic import ValidationError

from identity_bff.api.dependencies import get_consent_handler, get_login_handler, get_logout_handler
from identity_bff.api.errors import ApiError, describe_validation_errors, invalid_request, unwrap_or_raise
from identity_bff.models.challenges import (
    ChallengeOutcome,
    ConsentDecision,
    LoginBody,
    LoginCredentials,
    SkipLogin,
)
from identity_bff.oauth2.consent import ConsentChallengeHandler
from identity_bff.oauth2.errors import missing_challenge
from identity_bff.oauth2.login import LoginChallengeHandler
from identity_bff.oauth2.logout import LogoutChallengeHandler


logger = logging.getLogger(__name__)

router = APIRouter(tags=["oauth2"])


def parse_login_body(payload: Dict[str, Any]) -> LoginBody:
    """
    Decode a login submission into a skip directive or credentials.

    A body with ``skip: true`` is a skip directive, anything else (including
    ``skip: false``) must be credentials.

    Raises:
        ApiError: invalid_request if the body matches neither shape
    """
    model = SkipLogin if payload.get("skip") is True else LoginCredentials
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise invalid_request(describe_validation_errors(e.errors())) from e


def outcome_response(outcome: ChallengeOutcome) -> Dict[str, Any]:
    """Body for a GET on a challenge: a redirect when decided, the request detail otherwise."""
    return outcome.model_dump(mode="json", exclude_none=True)


@router.get("/login")
async def get_login(
    login_challenge: Optional[str] = Query(None),
    handler: LoginChallengeHandler = Depends(get_login_handler),
) -> Dict[str, Any]:
    """
    Read a login challenge, accepting it straight away when it can be skipped.

    Returns:
        Dict[str, Any]: ``{state: skipped, redirect_to}`` or
        ``{state: awaiting_credentials, request}``
    """
    return outcome_response(unwrap_or_raise(await handler.resolve(login_challenge)))


@router.post("/login")
async def post_login(
    login_challenge: Optional[str] = Query(None),
    payload: Dict[str, Any] = Body(...),
    handler: LoginChallengeHandler = Depends(get_login_handler),
) -> Dict[str, str]:
    """Decide a login challenge with credentials or a skip directive."""
    if not login_challenge:
        raise ApiError(missing_challenge("login"))
    outcome = unwrap_or_raise(await handler.handle(login_challenge, parse_login_body(payload)))
    return {"redirect_to": outcome.redirect_to}


@router.get("/consent")
async def get_consent(
    consent_challenge: Optional[str] = Query(None),
    handler: ConsentChallengeHandler = Depends(get_consent_handler),
) -> Dict[str, Any]:
    """Read a consent challenge, accepting it straight away when it can be skipped."""
    return outcome_response(unwrap_or_raise(await handler.resolve(consent_challenge)))


@router.post("/consent")
async def post_consent(
    decision: ConsentDecision,
    consent_challenge: Optional[str] = Query(None),
    handler: ConsentChallengeHandler = Depends(get_consent_handler),
) -> Dict[str, str]:
    """Apply the user's consent decision."""
    outcome = unwrap_or_raise(await handler.handle(consent_challenge, decision))
    return {"redirect_to": outcome.redirect_to}


@router.get("/logout")
@router.post("/logout")
async def logout(
    logout_challenge: Optional[str] = Query(None),
    handler: LogoutChallengeHandler = Depends(get_logout_handler),
) -> Dict[str, str]:
    """Accept a logout challenge. Always answers with a redirect."""
    redirect = await handler.handle(logout_challenge)
    return redirect.model_dump()
