"""Main entry point for the Identity BFF service."""

import asyncio
import base64
import logging
import secrets
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import Depends, FastAPI
from fastapi.responses import Response
from prometheus_client import make_asgi_app
from starlette.middleware.cors import CORSMiddleware
from starlette.status import HTTP_401_UNAUTHORIZED

from identity_bff import __version__
from identity_bff.api.dependencies import close_clients, get_hydra_client, get_kratos_client
from identity_bff.api.errors import register_error_handlers
from identity_bff.api.middleware import CacheControl, RedactSensitiveDataMiddleware, RequestIDMiddleware
from identity_bff.api.oauth2_flow import router as oauth2_router
from identity_bff.api.token import router as token_router
from identity_bff.oauth2.hydra import HydraAdminClient
from identity_bff.oauth2.kratos import KratosClient
from identity_bff.utils.config import get_settings
from identity_bff.utils.logging_utils import setup_json_logging

settings = get_settings()
# Fall back to INFO when the configured level is not a logging level
try:
    log_level = settings.log_level
    if not isinstance(log_level, str) or not hasattr(logging, log_level.upper()):
        log_level = "INFO"
    setup_json_logging(log_level.upper(), settings.log_output, settings.log_file_path)
except (ValueError, TypeError):
    setup_json_logging("INFO", "stdout", None)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> Any:
    """
    Application startup and shutdown events.

    Args:
        app: The FastAPI application instance

    Yields:
        None
    """
    logger.info("Starting Identity BFF...")
    yield
    logger.info("Shutting down Identity BFF...")
    await close_clients()


class MetricsAuthMiddleware:
    """HTTP Basic auth in front of the Prometheus ASGI app."""

    def __init__(self, app, username, password):
        self.app = app
        self.username = username
        self.password = password

    async def _deny(self, scope, receive, send):
        response = Response(
            status_code=HTTP_401_UNAUTHORIZED,
            headers={"WWW-Authenticate": "Basic"},
        )
        await response(scope, receive, send)

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http":
            headers = dict(scope.get("headers") or [])
            auth_header = headers.get(b"authorization")
            if not auth_header or not auth_header.startswith(b"Basic "):
                await self._deny(scope, receive, send)
                return
            try:
                encoded = auth_header.split(b" ", 1)[1]
                decoded = base64.b64decode(encoded, validate=True).decode()
                username, password = decoded.split(":", 1)
            except ValueError:
                await self._deny(scope, receive, send)
                return
            if not (
                secrets.compare_digest(username, self.username)
                and secrets.compare_digest(password, self.password)
            ):
                await self._deny(scope, receive, send)
                return
        await self.app(scope, receive, send)


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: The configured FastAPI application
    """
    app = FastAPI(
        title="Identity BFF",
        description="Login, consent and logout UI backend for the OAuth2 authorization server",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CacheControl)
    app.add_middleware(RedactSensitiveDataMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_error_handlers(app)

    app.include_router(oauth2_router, prefix="/oauth2")
    app.include_router(token_router, prefix="/api/auth")

    @app.get("/health")
    async def health_check(
        hydra: HydraAdminClient = Depends(get_hydra_client),
        kratos: KratosClient = Depends(get_kratos_client),
    ) -> Dict[str, Any]:
        """
        Health check endpoint.

        Returns:
            dict: ``ok`` when both upstream services answer, ``degraded`` otherwise
        """
        hydra_up, kratos_up = await asyncio.gather(hydra.ping(), kratos.ping())
        services = {
            "api": "ok",
            "hydra": "ok" if hydra_up else "unavailable",
            "kratos": "ok" if kratos_up else "unavailable",
        }
        status = "ok" if hydra_up and kratos_up else "degraded"
        logger.info("Health check endpoint called", extra={"endpoint": "/health", "status": status})
        return {"status": status, "services": services}

    # Prometheus metrics behind basic auth
    metrics_app = make_asgi_app()
    app.mount(
        "/metrics",
        MetricsAuthMiddleware(metrics_app, settings.metrics_user, settings.metrics_pass.get_secret_value()),
    )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "identity_bff.main:app",
        host="0.0.0.0",
        port=3000,
        reload=settings.service_env == "development",
        log_level=settings.log_level.lower(),
    )
