"""Middleware for request tracing, response redaction and cache control."""

import json
import logging
import uuid
from typing import Awaitable, Callable, List, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from identity_bff.utils.logging_utils import redact_sensitive_data


logger = logging.getLogger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware to track and propagate a unique request ID for each request.
    Adds X-Request-ID to response headers and attaches to request.state.
    """
    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class RedactSensitiveDataMiddleware(BaseHTTPMiddleware):
    """
    Middleware to redact sensitive fields from JSON error responses.
    Successful responses (token sets included) pass through untouched.
    """
    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        response = await call_next(request)
        if response.status_code < 400 or not response.headers.get("content-type", "").startswith("application/json"):
            return response

        body = b"".join([chunk async for chunk in response.body_iterator])
        headers = {k: v for k, v in response.headers.items() if k.lower() != "content-length"}
        try:
            data = json.loads(body)
        except ValueError:
            logger.warning("Error response declared JSON but could not be parsed", extra={"path": str(request.url.path)})
            return Response(content=body, status_code=response.status_code, headers=headers)
        return JSONResponse(redact_sensitive_data(data), status_code=response.status_code, headers=headers)


class CacheControl(BaseHTTPMiddleware):
    """Middleware marking responses that carry tokens or challenge state as uncacheable."""

    def __init__(self, app, no_store_paths: Optional[List[str]] = None):
        """
        Initialize the cache control middleware.

        Args:
            app: The FastAPI application
            no_store_paths: Path prefixes whose responses must never be cached
        """
        super().__init__(app)
        self.no_store_paths = no_store_paths or ["/api/auth/", "/oauth2/"]

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        response = await call_next(request)
        path = request.url.path
        # Applies to error responses too
        if any(path.startswith(prefix) for prefix in self.no_store_paths):
            response.headers["Cache-Control"] = "no-store"
            response.headers["Pragma"] = "no-cache"
        return response
