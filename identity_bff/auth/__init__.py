"""Relying Party side of the authorization code + PKCE flow."""

from identity_bff.auth.client import AuthenticatedClient
from identity_bff.auth.errors import (
    ClaimsDecodeError,
    FlowStateMissingError,
    PKCEGenerationError,
    ReauthenticationRequiredError,
    StateMismatchError,
    TokenError,
    UnauthenticatedError,
)
from identity_bff.auth.flow import CallbackResult, begin_authorization, complete_authorization
from identity_bff.auth.oauth import TokenClient
from identity_bff.auth.session import FlowStateStore, TokenSession

__all__ = [
    "AuthenticatedClient",
    "CallbackResult",
    "ClaimsDecodeError",
    "FlowStateMissingError",
    "FlowStateStore",
    "PKCEGenerationError",
    "ReauthenticationRequiredError",
    "StateMismatchError",
    "TokenClient",
    "TokenError",
    "TokenSession",
    "UnauthenticatedError",
    "begin_authorization",
    "complete_authorization",
]
