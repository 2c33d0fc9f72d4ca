"""Main FastAPI application for the reftrack API."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware

from reftrack.api.deps import build_services
from reftrack.api.rate_limit import limiter
from reftrack.api.v1.admin import router as admin_router
from reftrack.api.v1.discord import router as discord_router
from reftrack.api.v1.webhooks import router as webhooks_router
from reftrack.discord.client import DiscordClient
from reftrack.logging_config import configure_logging, get_logger
from reftrack.settings import Settings, settings as default_settings
from reftrack.storage.db import Database

logger = get_logger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses.

    The API serves JSON only, so anything richer is refused outright.
    """

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    services = app.state.services
    settings = services.settings

    # Startup config check (never log secret values)
    logger.info(
        "app_starting",
        env=settings.env,
        build_sha=settings.build_sha,
        debug_webhooks=settings.debug_webhooks,
        whop_webhook_secret_length=len(settings.whop_webhook_secret),
        discord_enabled=services.discord.enabled,
        reward_threshold=settings.reward_threshold,
    )

    services.db.create_tables()

    yield

    # Shutdown
    logger.info("app_shutting_down")
    await services.discord.close()
    services.db.dispose()


def create_app(
    settings: Settings | None = None,
    db: Database | None = None,
    discord: DiscordClient | None = None,
) -> FastAPI:
    """Create and configure FastAPI app.

    Args:
        settings: Settings to use (defaults to the environment)
        db: Pre-built database
        discord: Pre-built Discord client

    Returns:
        Configured FastAPI app
    """
    settings = settings or default_settings
    configure_logging(settings)

    app = FastAPI(
        title="reftrack API",
        description="Referral tracking for Whop purchases and Discord rewards",
        version="1.0.0",
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None,
        openapi_url=None if settings.is_production else "/openapi.json",
        lifespan=lifespan,
    )
    app.state.services = build_services(settings, db=db, discord=discord)

    app.add_middleware(SecurityHeadersMiddleware)

    # Rate limiting (shared instance from rate_limit module)
    app.state.limiter = limiter

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return JSONResponse(
            status_code=429,
            content={"ok": False, "error": "rate_limited"},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return JSONResponse(status_code=500, content={"ok": False, "error": "server_error"})

    app.include_router(webhooks_router)
    app.include_router(admin_router)
    app.include_router(discord_router)

    @app.get("/", response_class=PlainTextResponse)
    async def root():
        """Root endpoint."""
        return "ok"

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"ok": True}

    @app.get("/__debug/version")
    async def version():
        """Deployed commit."""
        return {"ok": True, "sha": settings.build_sha}

    @app.get("/__debug/whoplen")
    async def whop_secret_length():
        """Length of the configured webhook secret, never the value."""
        return {"ok": True, "whopSecretLen": len(settings.whop_webhook_secret)}

    return app
