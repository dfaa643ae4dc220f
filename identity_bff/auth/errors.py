"""Exceptions raised by the Relying Party side of the authorization code flow."""
from typing import Optional


class TokenError(Exception):
    """Exception raised when a token endpoint call fails."""

    def __init__(self, error: str, error_description: Optional[str] = None, status_code: Optional[int] = None):
        """Initialize the exception."""
        self.error = error
        self.error_description = error_description
        self.status_code = status_code
        message = f"Token error: {error}"
        if error_description:
            message += f" - {error_description}"
        super().__init__(message)

    def to_response(self) -> dict:
        """OAuth2 error body for the web layer."""
        return {
            "error": self.error,
            "error_description": self.error_description or self.error,
        }


class PKCEGenerationError(Exception):
    """The entropy source failed; authentication cannot start."""


class FlowStateMissingError(Exception):
    """No stored code verifier/state: the flow was never started or already consumed."""


class StateMismatchError(Exception):
    """The returned state does not match the stored one (possible CSRF)."""


class ClaimsDecodeError(Exception):
    """The ID token payload could not be decoded into claims."""


class UnauthenticatedError(Exception):
    """No access token is available for an authenticated call."""


class ReauthenticationRequiredError(Exception):
    """The session could not be refreshed; the user must log in again."""
