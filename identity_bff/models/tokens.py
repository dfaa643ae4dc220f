"""Models for OAuth2 token sets and the user claims derived from them."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenSet(BaseModel):
    """OAuth2 token endpoint response."""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(..., repr=False, description="Opaque access token")
    token_type: str = Field(..., description="Token type, normally 'bearer'")
    expires_in: int = Field(..., description="Access token lifetime in seconds")
    refresh_token: Optional[str] = Field(None, repr=False, description="Refresh token, when offline_access was granted")
    id_token: Optional[str] = Field(None, repr=False, description="OIDC ID token, when openid was granted")
    scope: Optional[str] = Field(None, description="Granted scope")

    # Expiration tracking, not part of the wire format
    issued_at: datetime = Field(default_factory=_utcnow, exclude=True)

    @property
    def expires_at(self) -> datetime:
        """Calculate when the access token will expire."""
        return self.issued_at + timedelta(seconds=self.expires_in)

    @property
    def is_expired(self) -> bool:
        """Check if the access token is expired."""
        # 60-second buffer for latency and clock skew
        buffer_time = timedelta(seconds=60)
        return _utcnow() >= (self.expires_at - buffer_time)


class UserClaims(BaseModel):
    """Claims decoded from the ID token payload."""

    model_config = ConfigDict(extra="allow")

    sub: str
    email: Optional[str] = None
    name: Optional[str] = None
    email_verified: Optional[bool] = None


class TokenExchangeRequest(BaseModel):
    """Body of POST /api/auth/token. Missing fields are reported by the route."""

    code: Optional[str] = Field(None, repr=False)
    code_verifier: Optional[str] = Field(None, repr=False)


class RefreshTokenRequest(BaseModel):
    """Body of POST /api/auth/refresh."""

    refresh_token: Optional[str] = Field(None, repr=False)
