"""Start and finish the authorization code + PKCE flow for one browser session."""
import logging
from dataclasses import dataclass
from typing import Optional

from identity_bff.auth.errors import ClaimsDecodeError, TokenError
from identity_bff.auth.oauth import TokenClient, build_authorization_url, build_logout_url
from identity_bff.auth.pkce import generate_pkce_pair
from identity_bff.auth.session import FlowStateStore, TokenSession
from identity_bff.models.tokens import TokenSet, UserClaims
from identity_bff.utils.config import Settings, get_settings


logger = logging.getLogger(__name__)


@dataclass
class CallbackResult:
    """Tokens stored by a completed callback, plus any claims decoding failure."""

    tokens: TokenSet
    claims: Optional[UserClaims]
    claims_error: Optional[ClaimsDecodeError] = None


def begin_authorization(flow_store: FlowStateStore, settings: Optional[Settings] = None) -> str:
    """
    Generate PKCE values, store them, and return the URL to send the browser to.

    The verifier and state are saved before the URL is returned, so the
    callback can always find them.

    Raises:
        ConfigurationError: If the Relying Party configuration is incomplete
        PKCEGenerationError: If the entropy source fails
    """
    settings = settings or get_settings()
    settings.require_oauth2_client()

    pkce = generate_pkce_pair()
    flow_store.save(pkce.code_verifier, pkce.state)

    return build_authorization_url(
        authorization_endpoint=settings.oauth2_authorization_endpoint,
        client_id=settings.oauth2_client_id,
        redirect_uri=settings.oauth2_redirect_uri,
        pkce=pkce,
        scope=settings.oauth2_scope,
    )


def end_session(session: TokenSession, settings: Optional[Settings] = None) -> str:
    """
    Clear the local session and return the RP-initiated logout URL.

    The stored ID token is read before the session is cleared and passed as
    ``id_token_hint`` so the authorization server can identify the session.
    """
    settings = settings or get_settings()
    id_token_hint = session.id_token
    session.clear()
    logger.info("Local session cleared", extra={"log_type": "session_end", "had_id_token": id_token_hint is not None})

    return build_logout_url(settings.hydra_public_url, id_token_hint, settings.oauth2_post_logout_redirect_uri)


async def complete_authorization(
    flow_store: FlowStateStore,
    session: TokenSession,
    token_client: TokenClient,
    *,
    code: Optional[str],
    state: Optional[str],
    error: Optional[str] = None,
    error_description: Optional[str] = None,
) -> CallbackResult:
    """
    Handle the redirect back from the authorization server.

    The stored verifier and state are consumed on every path. A state
    mismatch aborts before any token request is made.

    Raises:
        TokenError: If the server reported an error, the code is missing, or
            the exchange failed
        FlowStateMissingError: If no flow was started in this session
        StateMismatchError: If the returned state differs from the stored one
    """
    if error:
        flow_store.discard()
        raise TokenError(error, error_description or error, 400)
    if not code:
        flow_store.discard()
        raise TokenError("invalid_request", "Missing authorization code", 400)

    code_verifier = flow_store.consume(state)

    token_set = await token_client.exchange_code(code, code_verifier)
    claims_error = session.set(token_set)
    logger.info(
        "Authorization code flow completed",
        extra={"log_type": "authorization_complete", "claims_decoded": claims_error is None},
    )
    return CallbackResult(tokens=session.get(), claims=session.claims, claims_error=claims_error)

