"""Main FastAPI application for the Diamond Tier Capital API."""

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware

from diamondtier import __version__
from diamondtier.affiliates.service import affiliate_service
from diamondtier.api.rate_limit import limiter
from diamondtier.api.referral_capture import ReferralCaptureMiddleware
from diamondtier.api.routes.admin import router as admin_router
from diamondtier.api.routes.affiliate import router as affiliate_router
from diamondtier.api.routes.affiliate_program import router as affiliate_program_router
from diamondtier.api.routes.applications import router as applications_router
from diamondtier.api.routes.auth import router as auth_router
from diamondtier.logging_config import (
    bind_request_context,
    clear_request_context,
    configure_logging,
    get_logger,
)
from diamondtier.settings import settings
from diamondtier.storage.db import db

logger = get_logger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tag every log event of a request with a request id.

    An incoming X-Request-ID (from the hosting proxy) is reused, otherwise a
    new one is generated. The id is echoed back in the response headers.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        bind_request_context(request_id=request_id, method=request.method, path=request.url.path)
        try:
            response = await call_next(request)
        finally:
            clear_request_context()

        response.headers["X-Request-ID"] = request_id
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "camera=(), geolocation=(), microphone=(), payment=(), usb=()"

        if settings.env == "production":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("app_starting", env=settings.env)

    db.create_tables()
    logger.info("database_tables_created")

    created = affiliate_service.seed_default_tiers()
    logger.info("affiliate_tiers_ready", created=created)

    yield

    logger.info("app_shutting_down")


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI app
    """
    configure_logging()

    # Hide API docs in production
    is_production = settings.env == "production"

    app = FastAPI(
        title="Diamond Tier Capital API",
        description="Funding applications, admin back office and affiliate program",
        version=__version__,
        docs_url=None if is_production else "/api/docs",
        redoc_url=None if is_production else "/api/redoc",
        openapi_url=None if is_production else "/api/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(ReferralCaptureMiddleware)

    # Security Headers middleware (must be added before CORS)
    app.add_middleware(SecurityHeadersMiddleware)

    allowed_origins = [
        origin.strip()
        for origin in settings.allowed_origins.split(",")
        if origin.strip()
    ]

    # Credentials are sent cross-origin, so a wildcard is never acceptable in production
    if is_production and "*" in allowed_origins:
        logger.error("cors_wildcard_blocked", message="Wildcard CORS not allowed in production")
        allowed_origins = []

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
        max_age=3600,
    )

    # Outermost, so every other layer logs with the request id
    app.add_middleware(RequestContextMiddleware)

    # Rate limiting (shared instance from rate_limit module)
    app.state.limiter = limiter

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return JSONResponse(
            status_code=429,
            content={"success": False, "error": "Too many requests. Please try again later."},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error("unhandled_exception", path=request.url.path, error=str(exc), exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Internal server error"},
        )

    app.include_router(affiliate_router, prefix="/api")
    app.include_router(admin_router, prefix="/api")
    app.include_router(applications_router, prefix="/api")
    app.include_router(affiliate_program_router, prefix="/api")
    app.include_router(auth_router, prefix="/api")

    @app.get("/health")
    async def health_check():
        """Health check endpoint; 503 when the database is unreachable."""
        database_ok = db.ping()
        return JSONResponse(
            status_code=200 if database_ok else 503,
            content={
                "status": "healthy" if database_ok else "degraded",
                "database": "ok" if database_ok else "unreachable",
                "version": __version__,
                "env": settings.env,
            },
        )

    @app.get("/")
    async def root():
        return {
            "name": "Diamond Tier Capital API",
            "version": __version__,
            "docs": "/api/docs",
        }

    return app


# Create app instance
app = create_app()
