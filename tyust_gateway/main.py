"""
FastAPI Gateway Application Factory
===================================

Entry point for the gateway that sits between the campus mobile app and
the university portal.

Architecture:
    Mobile App → Gateway (this service) → SSO / access gateway / academic system

Routers:
    - /api/*        : Login, timetable, grades, teaching calendar
    - /health       : Health check endpoint

Environment Variables Required:
    - SESSION_JWT_SECRET: Secret for signing session JWTs (32+ characters)

Optional:
    - SSO_BASE_URL, ACCESS_BASE_URL, JWGLXT_BASE_URL, PORTAL_BASE_URL
    - ACADEMIC_YEAR, TERM, SEMESTER_NAME, SEMESTER_START_DATE
    - AUTH_BUNDLE_TTL_HOURS, CLEANUP_INTERVAL_SECONDS
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    Development:
        uvicorn tyust_gateway.main:app --reload --host 0.0.0.0 --port 3000

    Production:
        uvicorn tyust_gateway.main:app --host 0.0.0.0 --port 3000

Credentials live in process memory, so run a single worker.
"""

import asyncio
import contextlib
import logging
import sys
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from . import __version__
from .api import router as api_router
from .config import Settings, get_settings
from .models import ApiResponse, HealthResponse
from .portal.errors import LoginError, PortalError, ReauthenticationRequired, describe
from .service import PortalService
from .store import CredentialStore, ProfileStore, run_cleanup_sweep

SERVICE_NAME = "tyust-gateway"


# Configure structured JSON logging
def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


def build_service(settings: Settings) -> PortalService:
    return PortalService(settings, CredentialStore(), ProfileStore())


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup tasks:
        - Configure logging
        - Build the credential and profile stores and the PortalService,
          unless a service was injected before startup (tests)
        - Start the background sweep that evicts expired credentials

    Shutdown tasks:
        - Cancel the sweep
    """
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    logger = logging.getLogger("tyust_gateway.main")

    service: Optional[PortalService] = getattr(app.state, "service", None)
    if service is None:
        service = build_service(settings)
        app.state.service = service

    logger.info(
        "Starting gateway service",
        extra={
            "sso_base_url": settings.SSO_BASE_URL,
            "jwglxt_base_url": settings.JWGLXT_BASE_URL,
            "log_level": settings.LOG_LEVEL,
        }
    )

    sweep = asyncio.create_task(
        run_cleanup_sweep(
            service.credentials,
            settings.CLEANUP_INTERVAL_SECONDS,
            timedelta(hours=settings.AUTH_BUNDLE_TTL_HOURS),
        )
    )

    yield

    logger.info("Shutting down gateway service")
    sweep.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweep
    logger.info("Gateway service shutdown complete")


def _portal_error_status(exc: PortalError) -> int:
    if isinstance(exc, (LoginError, ReauthenticationRequired)):
        return status.HTTP_401_UNAUTHORIZED
    return status.HTTP_502_BAD_GATEWAY


# Create FastAPI application
def create_app() -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application instance with:
        - Lifespan management
        - Route handlers
        - Exception handlers

    Returns:
        FastAPI: Configured application instance
    """
    app = FastAPI(
        title="TYUST Gateway",
        description="SSO login and academic data gateway for the campus mobile app",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.include_router(api_router, prefix="/api")

    # Health check endpoint
    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(status="ok", service=SERVICE_NAME, version=__version__)

    @app.exception_handler(PortalError)
    async def portal_exception_handler(request: Request, exc: PortalError) -> JSONResponse:
        """
        Render upstream failures as ApiResponse bodies.

        Failed logins and stale credentials are 401; every other upstream
        failure is 502.
        """
        status_code = _portal_error_status(exc)
        logging.getLogger("tyust_gateway.main").warning(
            f"Portal error: {describe(exc)}",
            extra={
                "path": request.url.path,
                "status_code": status_code,
                "exception_type": type(exc).__name__,
            }
        )
        return JSONResponse(
            status_code=status_code,
            content=ApiResponse.error(status_code, str(exc)).model_dump(),
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        Logs the error and returns a standardized error response.
        """
        logger = logging.getLogger("tyust_gateway.main")
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )

        return JSONResponse(
            status_code=500,
            content=ApiResponse.error(500, "An unexpected error occurred").model_dump(),
        )

    return app


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    """
    Direct execution entry point.

    This allows running the service directly with: python -m tyust_gateway.main
    """
    settings = get_settings()

    uvicorn.run(
        "tyust_gateway.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower()
    )
