"""Authenticated HTTP client for resources protected by the authorization server.

The client attaches the session's bearer token and, on a 401, refreshes the
token set exactly once and replays the request once. A second 401 is
returned to the caller as-is; a failed refresh clears the session.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

import httpx

from identity_bff.auth.errors import ReauthenticationRequiredError, TokenError, UnauthenticatedError
from identity_bff.auth.session import TokenSession
from identity_bff.models.tokens import TokenSet

logger = logging.getLogger(__name__)

__all__ = [
    "AuthenticatedClient",
    "TokenRefresher",
]


class TokenRefresher(Protocol):
    async def refresh(self, refresh_token: str) -> TokenSet: ...


class AuthenticatedClient:
    """Async HTTP client bound to one browser session's tokens."""

    def __init__(
        self,
        session: TokenSession,
        refresher: TokenRefresher,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ) -> None:
        self.session = session
        self.refresher = refresher
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)

    # ---------------------- async context manager helpers ------------------
    async def __aenter__(self) -> "AuthenticatedClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTPX client if this instance created it."""
        if self._owns_client:
            await self.http_client.aclose()

    # ---------------------- token utilities -------------------------------
    def _auth_headers(self, headers: Optional[Dict[str, str]], access_token: str) -> Dict[str, str]:
        merged = dict(headers or {})
        merged["Authorization"] = f"Bearer {access_token}"
        return merged

    async def _refresh_once(self) -> str:
        refresh_token = self.session.refresh_token
        if not refresh_token:
            self.session.clear()
            raise ReauthenticationRequiredError("No refresh token available. Please log in again.")

        try:
            token_set = await self.refresher.refresh(refresh_token)
        except TokenError as exc:
            logger.warning(
                "Token refresh failed, clearing session",
                extra={"log_type": "token_refresh_error", "error_code": exc.error},
            )
            self.session.clear()
            raise ReauthenticationRequiredError("Failed to refresh access token. Please log in again.") from exc

        self.session.set(token_set)
        logger.info("Access token refreshed", extra={"log_type": "token_refresh"})
        return token_set.access_token

    # ---------------------- HTTP request helpers --------------------------
    async def fetch_with_auth(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Perform a request with the session's bearer token.

        Raises:
            UnauthenticatedError: If the session has no access token (no request is made)
            ReauthenticationRequiredError: If a 401 could not be cured by a refresh
        """
        access_token = self.session.access_token
        if not access_token:
            raise UnauthenticatedError("No access token available")

        headers = kwargs.pop("headers", None)
        response = await self.http_client.request(
            method, url, headers=self._auth_headers(headers, access_token), **kwargs
        )
        if response.status_code != 401:
            return response

        logger.info("Access token rejected, attempting refresh", extra={"log_type": "token_refresh", "url": url})
        new_access_token = await self._refresh_once()
        return await self.http_client.request(
            method, url, headers=self._auth_headers(headers, new_access_token), **kwargs
        )

    # Convenience wrappers -------------------------------------------------
    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.fetch_with_auth("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.fetch_with_auth("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.fetch_with_auth("PUT", url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.fetch_with_auth("DELETE", url, **kwargs)
