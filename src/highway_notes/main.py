"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Process-wide collaborators (token issuer, notifier, Google
client, OTP policy) are built here from Settings and parked on app.state,
so a missing signing secret stops the process before it serves anything.
Lifespan handles the parts that need I/O (Redis, table creation).
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from highway_notes import __version__
from highway_notes.api import api_router
from highway_notes.auth.google import GoogleOAuthClient
from highway_notes.auth.jwt import TokenIssuer
from highway_notes.config import Settings, settings
from highway_notes.errors import HighwayError, Unauthorized, ValidationFailed
from highway_notes.services.notifier import build_notifier
from highway_notes.services.otp_service import OtpPolicy

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at shutdown.
    """
    app_settings: Settings = app.state.settings
    logger.info(
        "highway.starting",
        version=__version__,
        environment=app_settings.environment,
        port=app_settings.port,
        mail=app_settings.mail_configured,
        google=app_settings.google_configured,
    )

    from highway_notes.cache import close_redis, init_redis
    try:
        await init_redis(app_settings.redis_url)
        logger.info("highway.redis_connected", url=app_settings.redis_url)
    except Exception as e:
        logger.warning("highway.redis_unavailable", error=str(e))
        # Redis is optional: app works without rate limiting

    from highway_notes.db.engine import engine
    if app_settings.auto_create_tables:
        from highway_notes.db.models import Base

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("highway.tables_ready")

    yield

    logger.info("highway.shutdown")
    await close_redis()
    await engine.dispose()


def _error_body(exc: HighwayError) -> dict:
    return {"success": False, "message": exc.message, **exc.extra()}


def register_exception_handlers(app: FastAPI) -> None:
    """Map HighwayError subclasses and validation errors to JSON responses."""

    @app.exception_handler(HighwayError)
    async def handle_highway_error(request: Request, exc: HighwayError):
        headers = {}
        if isinstance(exc, Unauthorized):
            headers["WWW-Authenticate"] = "Bearer"
        retry_after = getattr(exc, "retry_after", None)
        if retry_after is not None:
            headers["Retry-After"] = str(retry_after)
        if exc.status_code >= 500:
            logger.error("highway.request_failed", error=exc.message)
        return JSONResponse(
            status_code=exc.status_code, content=_error_body(exc), headers=headers
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(part) for part in err.get("loc", ())[1:]),
                "message": err.get("msg", "Invalid value"),
            }
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400, content=_error_body(ValidationFailed(errors=errors))
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception("highway.unhandled_error", path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "Internal server error"},
        )


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """Build and return the FastAPI application."""
    app_settings = app_settings or settings

    app = FastAPI(
        title="Highway Notes API",
        description="Notes backend with email OTP and Google sign-in",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = app_settings
    app.state.token_issuer = TokenIssuer.from_settings(app_settings)
    app.state.notifier = build_notifier(app_settings)
    app.state.google_client = GoogleOAuthClient.from_settings(app_settings)
    app.state.otp_policy = OtpPolicy.from_settings(app_settings)

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RateLimit → Security → RequestId → handler

    from highway_notes.middleware.rate_limit import RateLimitMiddleware
    from highway_notes.middleware.request_id import RequestIdMiddleware
    from highway_notes.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=app_settings.rate_limit_rpm,
        auth_rpm=app_settings.rate_limit_auth_rpm,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Origin", "X-Requested-With", "Content-Type", "Accept", "Authorization"],
    )

    register_exception_handlers(app)
    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: highway_notes.main:app)
app = create_app()
