"""
OAuth2 PKCE (Proof Key for Code Exchange) implementation.

This module provides functions for generating cryptographically secure
code verifiers, S256 code challenges and anti-CSRF state values for the
authorization code flow.
"""
import base64
import hashlib
import secrets
from typing import NamedTuple

from identity_bff.auth.errors import PKCEGenerationError

# 32 random bytes encode to 43 characters, 96 bytes to 128
MIN_ENTROPY_BYTES = 32
MAX_ENTROPY_BYTES = 96


class PKCEPair(NamedTuple):
    """Values created right before redirecting to the authorization endpoint."""

    code_verifier: str
    code_challenge: str
    state: str


def _base64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _random_token(num_bytes: int) -> str:
    try:
        return _base64url(secrets.token_bytes(num_bytes))
    except (OSError, NotImplementedError) as e:
        raise PKCEGenerationError("unable to start authentication") from e


def generate_code_verifier(num_bytes: int = MIN_ENTROPY_BYTES) -> str:
    """
    Generate a cryptographically secure code verifier for PKCE.

    The verifier is URL-safe base64 without padding, so it only uses
    characters [A-Z], [a-z], [0-9], "-" and "_".

    Args:
        num_bytes: Random bytes to draw (32-96), giving 43-128 characters.

    Returns:
        A random code verifier string.

    Raises:
        ValueError: If num_bytes is outside 32-96.
        PKCEGenerationError: If the entropy source fails.
    """
    if not MIN_ENTROPY_BYTES <= num_bytes <= MAX_ENTROPY_BYTES:
        raise ValueError("Code verifier entropy must be between 32 and 96 bytes")

    return _random_token(num_bytes)


def generate_code_challenge(code_verifier: str) -> str:
    """
    Generate a code challenge from the code verifier using the S256 method.

    Args:
        code_verifier: The code verifier string to hash.

    Returns:
        The base64url encoded SHA-256 digest, without padding.
    """
    digest = hashlib.sha256(code_verifier.encode("utf-8")).digest()
    return _base64url(digest)


def generate_state() -> str:
    """Generate a random state parameter for CSRF protection."""
    return _random_token(MIN_ENTROPY_BYTES)


def generate_pkce_pair() -> PKCEPair:
    """
    Generate a code verifier, its challenge and a state value.

    Returns:
        PKCEPair: (code_verifier, code_challenge, state)
    """
    code_verifier = generate_code_verifier()
    return PKCEPair(
        code_verifier=code_verifier,
        code_challenge=generate_code_challenge(code_verifier),
        state=generate_state(),
    )
