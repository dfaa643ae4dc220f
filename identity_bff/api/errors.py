"""Conversion of challenge and provider errors into HTTP responses."""
import logging
from typing import Any, Dict

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from identity_bff.oauth2.errors import ProviderError, http_status_for
from identity_bff.utils.result import Err, Result, T


logger = logging.getLogger(__name__)


class ApiError(HTTPException):
    """HTTP error carrying a ProviderError; raised only by route handlers."""

    def __init__(self, error: ProviderError):
        status_code = http_status_for(error)
        super().__init__(status_code=status_code, detail=error.message)
        self.error = error

    def to_response(self) -> Dict[str, Any]:
        body = self.error.to_response()
        body["status_code"] = self.status_code
        return body


def invalid_request(message: str) -> ApiError:
    return ApiError(
        ProviderError(
            code="invalid_request",
            message=message,
            hint="Please check your request parameters and try again",
            status_code=400,
        )
    )


def unwrap_or_raise(result: Result[T, ProviderError]) -> T:
    """Return the value of an Ok result or raise the Err as an ApiError."""
    if isinstance(result, Err):
        raise ApiError(result.error)
    return result.value


def describe_validation_errors(errors) -> str:
    """One-line summary of pydantic errors without echoing submitted values."""
    parts = []
    for error in errors:
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        message = error.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or "Invalid request"


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_response())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info(
        "Request validation failed",
        extra={"log_type": "invalid_request", "path": str(request.url.path)},
    )
    return await api_error_handler(request, invalid_request(describe_validation_errors(exc.errors())))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error while processing request",
        extra={"log_type": "unhandled_error", "path": str(request.url.path)},
    )
    error = ProviderError(
        code="internal_error",
        message="An internal error occurred",
        hint="An unexpected error occurred",
        status_code=500,
    )
    return JSONResponse(status_code=500, content=error.to_response())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
