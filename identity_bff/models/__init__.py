"""Pydantic models and schemas."""

from identity_bff.models.challenges import (
    AcceptConsentRequest,
    AcceptLoginRequest,
    ChallengeOutcome,
    ChallengeRequestInfo,
    ChallengeState,
    ConsentDecision,
    ConsentRequestInfo,
    ConsentSession,
    Identity,
    IdentityName,
    IdentityTraits,
    LoginBody,
    LoginCredentials,
    LoginRequestInfo,
    LogoutRequestInfo,
    OAuth2ClientInfo,
    RedirectResponse,
    RejectRequest,
    SkipLogin,
)
from identity_bff.models.tokens import (
    RefreshTokenRequest,
    TokenExchangeRequest,
    TokenSet,
    UserClaims,
)

__all__ = [
    # Challenge models
    "AcceptConsentRequest",
    "AcceptLoginRequest",
    "ChallengeOutcome",
    "ChallengeRequestInfo",
    "ChallengeState",
    "ConsentDecision",
    "ConsentRequestInfo",
    "ConsentSession",
    "LoginBody",
    "LoginCredentials",
    "LoginRequestInfo",
    "LogoutRequestInfo",
    "OAuth2ClientInfo",
    "RedirectResponse",
    "RejectRequest",
    "SkipLogin",

    # Identity models
    "Identity",
    "IdentityName",
    "IdentityTraits",

    # Token models
    "RefreshTokenRequest",
    "TokenExchangeRequest",
    "TokenSet",
    "UserClaims",
]
