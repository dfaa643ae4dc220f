"""Client for the Hydra admin API login, consent and logout request endpoints.

Every method returns a ``Result``; upstream failures are mapped to a
``ProviderError`` and never retried, since challenges are single-use.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from identity_bff.metrics import upstream_call_latency_seconds
from identity_bff.models.challenges import (
    AcceptConsentRequest,
    AcceptLoginRequest,
    ChallengeRequestInfo,
    ConsentRequestInfo,
    LoginRequestInfo,
    LogoutRequestInfo,
    OAuth2ClientInfo,
    RedirectResponse,
    RejectRequest,
)
from identity_bff.oauth2.errors import Provider, ProviderError, map_upstream_error
from identity_bff.utils.result import Err, Ok, Result

logger = logging.getLogger(__name__)

REQUESTS_PATH = "/admin/oauth2/auth/requests"


def to_request_info(challenge: str, data: Dict[str, Any], model: type = ChallengeRequestInfo) -> ChallengeRequestInfo:
    """Map a Hydra login or consent request document to our request info model."""
    client = data.get("client") or {}
    return model(
        challenge=challenge,
        skip=bool(data.get("skip") or False),
        subject=data.get("subject") or "",
        client=OAuth2ClientInfo(
            client_id=client.get("client_id") or "",
            client_name=client.get("client_name") or "",
            logo_uri=client.get("logo_uri") or None,
        ),
        requested_scope=list(data.get("requested_scope") or []),
        requested_access_token_audience=list(data.get("requested_access_token_audience") or []),
    )


class HydraAdminClient:
    """Async client for the authorization server's admin API."""

    def __init__(
        self,
        base_url: str,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "HydraAdminClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    async def _call(
        self,
        method: str,
        kind: str,
        action: Optional[str],
        challenge: str,
        *,
        operation: str,
        default_message: str,
        body: Optional[Dict[str, Any]] = None,
    ) -> Result[Optional[Dict[str, Any]], ProviderError]:
        path = f"{REQUESTS_PATH}/{kind}" + (f"/{action}" if action else "")
        started = time.perf_counter()
        try:
            response = await self.http_client.request(
                method,
                f"{self.base_url}{path}",
                params={f"{kind}_challenge": challenge},
                json=body,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            return Err(map_upstream_error(e, Provider.HYDRA, operation, default_message))
        finally:
            upstream_call_latency_seconds.labels(provider=Provider.HYDRA.value, operation=operation).observe(
                time.perf_counter() - started
            )

        if response.status_code == 204 or not response.content:
            return Ok(None)
        try:
            return Ok(response.json())
        except ValueError:
            logger.error(f"Unparseable Hydra response for {operation}")
            return Err(ProviderError(code="internal_error", message=default_message, status_code=500))

    def _redirect(self, result: Result, default_message: str) -> Result[RedirectResponse, ProviderError]:
        if isinstance(result, Err):
            return result
        try:
            return Ok(RedirectResponse.model_validate(result.value or {}))
        except ValidationError:
            return Err(ProviderError(code="internal_error", message=default_message, status_code=500))

    # ---------------------- login -----------------------------------------
    async def get_login_request(self, challenge: str) -> Result[LoginRequestInfo, ProviderError]:
        """Fetch login request details."""
        result = await self._call(
            "GET", "login", None, challenge,
            operation="login_request", default_message="Failed to fetch login request",
        )
        if isinstance(result, Err):
            return result
        return Ok(to_request_info(challenge, result.value or {}, LoginRequestInfo))

    async def accept_login_request(
        self, challenge: str, body: AcceptLoginRequest
    ) -> Result[RedirectResponse, ProviderError]:
        """Accept a login request for a subject."""
        result = await self._call(
            "PUT", "login", "accept", challenge,
            operation="accept_login", default_message="Failed to accept login request",
            body=body.model_dump(exclude_none=True),
        )
        return self._redirect(result, "Failed to accept login request")

    async def reject_login_request(
        self, challenge: str, error: str, error_description: str
    ) -> Result[RedirectResponse, ProviderError]:
        """Reject a login request."""
        result = await self._call(
            "PUT", "login", "reject", challenge,
            operation="reject_login", default_message="Failed to reject login request",
            body=RejectRequest(error=error, error_description=error_description).model_dump(),
        )
        return self._redirect(result, "Failed to reject login request")

    # ---------------------- consent ---------------------------------------
    async def get_consent_request(self, challenge: str) -> Result[ConsentRequestInfo, ProviderError]:
        """Fetch consent request details."""
        result = await self._call(
            "GET", "consent", None, challenge,
            operation="consent_request", default_message="Failed to fetch consent request",
        )
        if isinstance(result, Err):
            return result
        return Ok(to_request_info(challenge, result.value or {}, ConsentRequestInfo))

    async def accept_consent_request(
        self, challenge: str, body: AcceptConsentRequest
    ) -> Result[RedirectResponse, ProviderError]:
        """Accept a consent request with the granted scopes and session claims."""
        result = await self._call(
            "PUT", "consent", "accept", challenge,
            operation="accept_consent", default_message="Failed to accept consent request",
            body=body.model_dump(exclude_none=True),
        )
        return self._redirect(result, "Failed to accept consent request")

    async def reject_consent_request(
        self, challenge: str, error: str, error_description: str
    ) -> Result[RedirectResponse, ProviderError]:
        """Reject a consent request."""
        result = await self._call(
            "PUT", "consent", "reject", challenge,
            operation="reject_consent", default_message="Failed to reject consent request",
            body=RejectRequest(error=error, error_description=error_description).model_dump(),
        )
        return self._redirect(result, "Failed to reject consent request")

    # ---------------------- logout ----------------------------------------
    async def get_logout_request(self, challenge: str) -> Result[LogoutRequestInfo, ProviderError]:
        """Fetch logout request details."""
        result = await self._call(
            "GET", "logout", None, challenge,
            operation="logout_request", default_message="Failed to fetch logout request",
        )
        if isinstance(result, Err):
            return result
        data = result.value or {}
        return Ok(
            LogoutRequestInfo(
                challenge=challenge,
                subject=data.get("subject") or "",
                sid=data.get("sid") or "",
                request_url=data.get("request_url") or "",
                rp_initiated=bool(data.get("rp_initiated") or False),
            )
        )

    async def accept_logout_request(self, challenge: str) -> Result[RedirectResponse, ProviderError]:
        """Accept a logout request."""
        result = await self._call(
            "PUT", "logout", "accept", challenge,
            operation="accept_logout", default_message="Failed to accept logout request",
        )
        return self._redirect(result, "Failed to accept logout request")

    async def reject_logout_request(self, challenge: str) -> Result[None, ProviderError]:
        """Reject a logout request."""
        result = await self._call(
            "PUT", "logout", "reject", challenge,
            operation="reject_logout", default_message="Failed to reject logout request",
        )
        if isinstance(result, Err):
            return result
        return Ok(None)

    async def ping(self) -> bool:
        """Check that the admin API answers."""
        try:
            response = await self.http_client.get(f"{self.base_url}/health/alive")
        except httpx.RequestError:
            return False
        return response.is_success
