"""
Structured errors for calls to the identity provider and authorization server.

Every failure crossing the web boundary has the same shape:
``{error, error_description, error_hint?, status_code}``.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from identity_bff.metrics import upstream_errors_total


logger = logging.getLogger(__name__)

PASSTHROUGH_STATUSES = {400, 404, 410, 503}

RESTART_HINT = "Please restart the OAuth2 flow from the beginning"


class Provider(str, Enum):
    HYDRA = "hydra"
    KRATOS = "kratos"


@dataclass(frozen=True)
class ProviderError:
    """Failure of an upstream call or of a request to this service."""

    code: str
    message: str
    status_code: int = 500
    hint: Optional[str] = None

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "error": self.code,
            "error_description": self.message,
            "status_code": self.status_code,
        }
        if self.hint:
            body["error_hint"] = self.hint
        return body


def http_status_for(error: ProviderError) -> int:
    """HTTP status the web layer answers with for ``error``."""
    if error.status_code in PASSTHROUGH_STATUSES:
        return error.status_code
    return 500


def missing_challenge(kind: str) -> ProviderError:
    return ProviderError(
        code="missing_challenge",
        message=f"{kind}_challenge parameter is required",
        hint=f"Please provide a valid {kind}_challenge parameter",
        status_code=400,
    )


def _error_message(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    # Ory APIs answer {"error": {"message": ...}} or the flat OAuth2 shape
    error = body.get("error")
    if isinstance(error, dict):
        return error.get("reason") or error.get("message")
    return body.get("error_description") or (error if isinstance(error, str) else None)


def map_upstream_error(
    exc: Exception,
    provider: Provider,
    operation: str,
    default_message: str,
) -> ProviderError:
    """
    Transform an httpx failure into a ProviderError.

    Args:
        exc: The exception raised by the upstream call
        provider: Which service was called
        operation: The operation that failed (e.g. 'login_request', 'accept_consent')
        default_message: Message used when the upstream gives none

    Returns:
        ProviderError: The structured error
    """
    readable = operation.replace("_", " ")
    status = exc.response.status_code if isinstance(exc, httpx.HTTPStatusError) else None

    if status == 404:
        if provider is Provider.HYDRA:
            error = ProviderError(
                code="challenge_not_found",
                message=f"The {readable} challenge was not found or has expired",
                hint=RESTART_HINT,
                status_code=404,
            )
        else:
            error = ProviderError(
                code="not_found",
                message=f"The {readable} was not found",
                hint="Please check the identifier and try again",
                status_code=404,
            )
    elif status == 410:
        if provider is Provider.HYDRA:
            error = ProviderError(
                code="challenge_already_used",
                message=f"The {readable} challenge has already been used",
                hint=RESTART_HINT,
                status_code=410,
            )
        else:
            error = ProviderError(
                code="flow_expired",
                message=f"The {readable} has expired or been replaced",
                hint="Please start again",
                status_code=410,
            )
    elif status == 400:
        error = ProviderError(
            code="invalid_request",
            message=_error_message(exc.response) or f"Invalid {readable} request",
            hint="Please check your request parameters and try again",
            status_code=400,
        )
    elif isinstance(exc, httpx.RequestError):
        if provider is Provider.HYDRA:
            error = ProviderError(
                code="hydra_unavailable",
                message="Unable to communicate with the authorization server",
                hint="Please try again later or contact support",
                status_code=503,
            )
        else:
            error = ProviderError(
                code="kratos_unavailable",
                message="Unable to communicate with the identity provider",
                hint="Please try again later or contact support",
                status_code=503,
            )
    elif status is not None:
        error = ProviderError(
            code=f"{provider.value}_error",
            message=_error_message(exc.response) or default_message,
            hint=f"An unexpected error occurred with the {'authorization server' if provider is Provider.HYDRA else 'identity provider'}",
            status_code=status,
        )
    else:
        error = ProviderError(
            code="internal_error",
            message=default_message,
            hint="An unexpected error occurred",
            status_code=500,
        )

    upstream_errors_total.labels(provider=provider.value, error_code=error.code).inc()
    logger.warning(
        f"{provider.value} {operation} failed: {error.code}",
        extra={
            "log_type": "upstream_error",
            "provider": provider.value,
            "operation": operation,
            "error_code": error.code,
            "status_code": error.status_code,
        },
    )
    return error
