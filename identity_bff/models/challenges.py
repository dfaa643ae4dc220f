"""Models for login, consent and logout challenges and the bodies exchanged around them."""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class OAuth2ClientInfo(BaseModel):
    """The Relying Party asking for authorization, as shown to the user."""

    client_id: str = ""
    client_name: str = ""
    logo_uri: Optional[str] = None


class ChallengeRequestInfo(BaseModel):
    """Pending login or consent decision fetched from the authorization server."""

    challenge: str
    skip: bool = False
    subject: str = ""
    client: OAuth2ClientInfo = Field(default_factory=OAuth2ClientInfo)
    requested_scope: List[str] = Field(default_factory=list)
    requested_access_token_audience: List[str] = Field(default_factory=list)


class LoginRequestInfo(ChallengeRequestInfo):
    """Pending login challenge."""


class ConsentRequestInfo(ChallengeRequestInfo):
    """Pending consent challenge."""


class LogoutRequestInfo(BaseModel):
    """Pending logout challenge."""

    challenge: str
    subject: str = ""
    sid: str = ""
    request_url: str = ""
    rp_initiated: bool = False


class LoginCredentials(BaseModel):
    """Credentials submitted on the login screen."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["credentials"] = "credentials"
    email: EmailStr
    password: str = Field(..., min_length=1, repr=False)
    remember: bool = False
    skip: Literal[False] = False


class SkipLogin(BaseModel):
    """Directive to accept a login the authorization server marked as skippable."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["skip"] = "skip"
    skip: Literal[True] = True
    subject: str = Field(..., min_length=1)


LoginBody = Union[SkipLogin, LoginCredentials]


class ConsentDecision(BaseModel):
    """User decision on the consent screen."""

    grant: bool
    grant_scope: Optional[List[str]] = None
    remember: bool = False


class AcceptLoginRequest(BaseModel):
    """Body of an accept-login call."""

    subject: str
    remember: bool = False
    remember_for: Optional[int] = None


class ConsentSession(BaseModel):
    """Claims the authorization server embeds into issued tokens."""

    id_token: Dict[str, Any] = Field(default_factory=dict)
    access_token: Dict[str, Any] = Field(default_factory=dict)


class AcceptConsentRequest(BaseModel):
    """Body of an accept-consent call."""

    grant_scope: List[str]
    grant_access_token_audience: List[str] = Field(default_factory=list)
    remember: bool = False
    remember_for: Optional[int] = None
    session: ConsentSession = Field(default_factory=ConsentSession)


class RejectRequest(BaseModel):
    """Body of a reject-login or reject-consent call."""

    error: str
    error_description: str


class RedirectResponse(BaseModel):
    """Where the browser must go next."""

    redirect_to: str


class IdentityName(BaseModel):
    first: Optional[str] = None
    last: Optional[str] = None


class IdentityTraits(BaseModel):
    model_config = ConfigDict(extra="allow")

    email: Optional[str] = None
    name: Optional[IdentityName] = None
    role: str = "user"


class Identity(BaseModel):
    """Identity as reported by the identity provider."""

    id: str
    schema_id: str = "default"
    traits: IdentityTraits = Field(default_factory=IdentityTraits)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ChallengeState(str, Enum):
    """Where a login or consent challenge stands after it was read."""

    SKIPPED = "skipped"
    AWAITING_CREDENTIALS = "awaiting_credentials"
    AWAITING_DECISION = "awaiting_decision"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ChallengeOutcome(BaseModel):
    """Result of resolving or deciding a challenge.

    ``redirect_to`` is set for terminal states (skipped, accepted, rejected);
    ``request`` is set while the challenge waits for user input.
    """

    state: ChallengeState
    redirect_to: Optional[str] = None
    request: Optional[ChallengeRequestInfo] = None
