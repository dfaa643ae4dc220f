"""
Per-browser-session state of the Relying Party.

``TokenSession`` holds the current token set and the claims derived from the
ID token. ``FlowStateStore`` carries the PKCE verifier and CSRF state across
the redirect to the authorization server. Both are explicit objects owned by
one user session; nothing here is process-global.
"""
import hmac
import logging
from typing import MutableMapping, Optional

import jwt
from pydantic import ValidationError

from identity_bff.auth.errors import ClaimsDecodeError, FlowStateMissingError, StateMismatchError
from identity_bff.models.tokens import TokenSet, UserClaims


logger = logging.getLogger(__name__)

CODE_VERIFIER_KEY = "pkce_code_verifier"
STATE_KEY = "oauth2_state"


def decode_id_token(id_token: str) -> UserClaims:
    """
    Decode an ID token into user claims.

    The signature is not verified: the token came straight from the token
    endpoint over TLS and the claims are only used for display. The header
    segment must still be valid base64url JSON, since PyJWT parses it before
    the payload.

    Raises:
        ClaimsDecodeError: On a wrong segment count, an unparseable header or
            payload, or a payload without ``sub``.
    """
    if not isinstance(id_token, str) or id_token.count(".") != 2:
        raise ClaimsDecodeError("Invalid ID token format")

    try:
        payload = jwt.decode(id_token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        raise ClaimsDecodeError(f"Failed to decode ID token: {str(e)}") from e

    try:
        return UserClaims.model_validate(payload)
    except ValidationError as e:
        raise ClaimsDecodeError("ID token payload is missing required claims") from e


class TokenSession:
    """Token store for one browser session."""

    def __init__(self) -> None:
        self._tokens: Optional[TokenSet] = None
        self._claims: Optional[UserClaims] = None
        self.claims_error: Optional[ClaimsDecodeError] = None

    def get(self) -> Optional[TokenSet]:
        return self._tokens

    def set(self, token_set: TokenSet) -> Optional[ClaimsDecodeError]:
        """
        Store a new token set.

        A response without a refresh token keeps the previous refresh token
        (rotation is not assumed); one without an ID token keeps the previous
        ID token and claims. The tokens are stored even when the new ID token
        cannot be decoded; the decode error is returned and kept in
        ``claims_error``.
        """
        previous = self._tokens
        updates = {}
        if token_set.refresh_token is None and previous is not None and previous.refresh_token:
            updates["refresh_token"] = previous.refresh_token
        if token_set.id_token is None and previous is not None and previous.id_token:
            updates["id_token"] = previous.id_token
        merged = token_set.model_copy(update=updates) if updates else token_set

        decode_error: Optional[ClaimsDecodeError] = None
        if token_set.id_token is not None:
            try:
                self._claims = decode_id_token(token_set.id_token)
                self.claims_error = None
            except ClaimsDecodeError as e:
                logger.warning(
                    f"Could not derive user claims: {str(e)}",
                    extra={"log_type": "claims_decode_error"},
                )
                self._claims = None
                self.claims_error = e
                decode_error = e

        self._tokens = merged
        return decode_error

    def clear(self) -> None:
        self._tokens = None
        self._claims = None
        self.claims_error = None

    @property
    def claims(self) -> Optional[UserClaims]:
        return self._claims

    @property
    def access_token(self) -> Optional[str]:
        return self._tokens.access_token if self._tokens else None

    @property
    def refresh_token(self) -> Optional[str]:
        return self._tokens.refresh_token if self._tokens else None

    @property
    def id_token(self) -> Optional[str]:
        return self._tokens.id_token if self._tokens else None

    @property
    def is_authenticated(self) -> bool:
        return self.access_token is not None


class FlowStateStore:
    """
    Write-once, read-once carrier of the PKCE verifier and state.

    Wraps any mutable mapping scoped to the browser session, e.g. a
    server-side session dict.
    """

    def __init__(self, storage: Optional[MutableMapping[str, str]] = None) -> None:
        self.storage: MutableMapping[str, str] = storage if storage is not None else {}

    def save(self, code_verifier: str, state: str) -> None:
        # A second flow in the same session overwrites the first one
        self.storage[CODE_VERIFIER_KEY] = code_verifier
        self.storage[STATE_KEY] = state

    def discard(self) -> None:
        self.storage.pop(CODE_VERIFIER_KEY, None)
        self.storage.pop(STATE_KEY, None)

    def has_pending_flow(self) -> bool:
        return CODE_VERIFIER_KEY in self.storage

    def consume(self, returned_state: Optional[str]) -> str:
        """
        Remove the stored values and return the verifier if ``returned_state`` matches.

        The entries are deleted whatever the outcome.

        Raises:
            FlowStateMissingError: If no verifier or state is stored
            StateMismatchError: If the states differ
        """
        code_verifier = self.storage.pop(CODE_VERIFIER_KEY, None)
        stored_state = self.storage.pop(STATE_KEY, None)

        if not code_verifier or not stored_state:
            raise FlowStateMissingError("PKCE code verifier not found. Please restart the authentication flow.")
        if not returned_state or not hmac.compare_digest(
            stored_state.encode("utf-8"), returned_state.encode("utf-8")
        ):
            raise StateMismatchError("Invalid state parameter. Possible CSRF attack detected.")
        return code_verifier
