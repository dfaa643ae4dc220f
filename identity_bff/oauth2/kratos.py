"""Client for the Kratos identity provider: credential checks and identity lookups."""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from identity_bff.metrics import upstream_call_latency_seconds
from identity_bff.models.challenges import Identity
from identity_bff.oauth2.errors import Provider, ProviderError, map_upstream_error
from identity_bff.utils.result import Err, Ok, Result

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = ProviderError(
    code="invalid_credentials",
    message="Invalid email or password",
    hint="Please check your credentials and try again",
    status_code=401,
)


def to_identity(data: Dict[str, Any]) -> Identity:
    """Map a Kratos identity document to our Identity model."""
    traits = dict(data.get("traits") or {})
    traits.setdefault("role", "user")
    if not traits.get("role"):
        traits["role"] = "user"
    return Identity.model_validate(
        {
            "id": data["id"],
            "schema_id": data.get("schema_id") or "default",
            "traits": traits,
            "created_at": data.get("created_at"),
            "updated_at": data.get("updated_at"),
        }
    )


class KratosClient:
    """Async client for the identity provider's public and admin APIs."""

    def __init__(
        self,
        public_url: str,
        admin_url: str,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ) -> None:
        self.public_url = public_url.rstrip("/")
        self.admin_url = admin_url.rstrip("/")
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "KratosClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    async def verify_credentials(self, email: str, password: str) -> Result[Identity, ProviderError]:
        """
        Verify an email/password pair through a native login flow.

        Returns:
            Ok(Identity) when the credentials are valid, Err(invalid_credentials)
            when the identity provider refuses them, or another mapped error
            when it cannot be reached.
        """
        started = time.perf_counter()
        try:
            flow_response = await self.http_client.get(f"{self.public_url}/self-service/login/api")
            flow_response.raise_for_status()
            flow_id = flow_response.json()["id"]

            submit_response = await self.http_client.post(
                f"{self.public_url}/self-service/login",
                params={"flow": flow_id},
                json={"method": "password", "identifier": email, "password": password},
            )
            if submit_response.status_code in (400, 401, 403):
                logger.info("Credential verification refused", extra={"log_type": "invalid_credentials"})
                return Err(INVALID_CREDENTIALS)
            submit_response.raise_for_status()
            body = submit_response.json()
        except httpx.HTTPError as e:
            return Err(map_upstream_error(e, Provider.KRATOS, "verify_credentials", "Failed to verify credentials"))
        except (ValueError, KeyError):
            logger.error("Unexpected login flow response from identity provider")
            return Err(ProviderError(code="internal_error", message="Failed to verify credentials", status_code=500))
        finally:
            upstream_call_latency_seconds.labels(provider=Provider.KRATOS.value, operation="verify_credentials").observe(
                time.perf_counter() - started
            )

        identity_data = (body.get("session") or {}).get("identity")
        if not identity_data:
            return Err(INVALID_CREDENTIALS)
        try:
            return Ok(to_identity(identity_data))
        except (KeyError, ValidationError):
            return Err(ProviderError(code="internal_error", message="Failed to verify credentials", status_code=500))

    async def get_identity(self, identity_id: str) -> Result[Identity, ProviderError]:
        """Look up an identity by ID through the admin API."""
        started = time.perf_counter()
        try:
            response = await self.http_client.get(f"{self.admin_url}/admin/identities/{identity_id}")
            response.raise_for_status()
            return Ok(to_identity(response.json()))
        except httpx.HTTPError as e:
            return Err(map_upstream_error(e, Provider.KRATOS, "get_identity", "Failed to get identity"))
        except (ValueError, KeyError, ValidationError):
            return Err(ProviderError(code="internal_error", message="Failed to get identity", status_code=500))
        finally:
            upstream_call_latency_seconds.labels(provider=Provider.KRATOS.value, operation="get_identity").observe(
                time.perf_counter() - started
            )

    async def ping(self) -> bool:
        """Check that the public API answers."""
        try:
            response = await self.http_client.get(f"{self.public_url}/health/alive")
        except httpx.RequestError:
            return False
        return response.is_success
