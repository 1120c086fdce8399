"""
FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from authz.api.routes import router as api_router
from authz.core.config import Settings, get_settings
from authz.core.container import Container
from authz.core.errors import (
    AuthorizationError,
    InvalidPolicy,
    ManagementDenied,
    PolicyNotFound,
    StoreUnavailable,
    UnknownPermission,
    UnknownRole,
)
from authz.core.logging import configure_logging
from authz.utils.context import RequestContextMiddleware

logger = structlog.get_logger(__name__)

# Status codes of administrative errors
ERROR_STATUS: dict[type[AuthorizationError], int] = {
    ManagementDenied: 403,
    PolicyNotFound: 404,
    InvalidPolicy: 422,
    UnknownRole: 422,
    UnknownPermission: 422,
    StoreUnavailable: 503,
}


def create_app(
    settings: Settings | None = None,
    container: Container | None = None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        settings: Defaults to environment settings
        container: Prebuilt container (tests); built from settings otherwise
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan events."""
        configure_logging(settings)

        app.state.container = container or Container.from_settings(settings)
        await app.state.container.initialize()

        yield

        await app.state.container.shutdown()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
    )

    # Tests may drive the app without running the lifespan
    if container is not None:
        app.state.container = container

    app.add_middleware(RequestContextMiddleware)

    # Outermost, so the context middleware sees the rewritten client address
    if settings.authz.trusted_proxies:
        app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=settings.authz.trusted_proxies)

    app.include_router(api_router, prefix="/api")

    # Exception handlers
    @app.exception_handler(AuthorizationError)
    async def authorization_error_handler(request: Request, exc: AuthorizationError):
        """Map administrative errors; the detail stays in the logs."""
        status_code = next(
            (code for error, code in ERROR_STATUS.items() if isinstance(exc, error)),
            400,
        )
        logger.info(
            "Authorization request refused",
            path=request.url.path,
            reason=exc.reason,
            error=exc.detail,
        )
        return JSONResponse(
            status_code=status_code,
            content={"error": exc.reason.replace(" ", "_"), "message": exc.reason},
        )

    @app.get("/health")
    async def health_check():
        """Quick health check endpoint (for load balancers)."""
        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment,
        }

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("authz.main:create_app", factory=True, host="0.0.0.0", port=8000)
