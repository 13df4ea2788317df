"""
api/main.py -- FastAPI application entry point for SessionAuth.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware      -- adds CORS headers for the configured frontend origins
  2. SlowAPIMiddleware   -- enforces per-route rate limits from api.limiter
  3. SessionMiddleware   -- carries the OAuth state between redirect and callback

Lifespan builds every collaborator once (engine, stores, codec, lifecycle
manager, OAuth adapter), puts them on app.state, and starts the background
purge of expired refresh-token records. Shutdown tears them down in reverse.
"""

from __future__ import annotations

import asyncio
import logging
import time
import traceback
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException
from starlette.middleware.sessions import SessionMiddleware

from api.limiter import limiter
from api.models import ErrorResponse, FieldError, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.errors import AppError
from auth.lifecycle import TokenLifecycleManager, clear_refresh_cookie
from auth.oauth import GoogleOAuthAdapter
from auth.store import RefreshTokenStore, UserStore, create_db_engine
from auth.tokens import TokenCodec
from core.config import get_settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("sessionauth.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Delete expired refresh-token records every REFRESH_PURGE_INTERVAL_SECONDS.

    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and unwinds the coroutine cleanly.
    """
    while True:
        await asyncio.sleep(_settings.refresh_purge_interval_seconds)
        try:
            removed = app.state.refresh_store.purge_expired()
        except Exception:
            logger.exception("Refresh token purge failed")
            continue
        if removed:
            logger.info("Purged %d expired refresh token(s)", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. Stores share one engine; the codec and lifecycle manager receive
    their collaborators explicitly rather than reaching for globals.
    """
    logger.info("SessionAuth API starting up (env=%s)", _settings.app_env)
    engine = create_db_engine(_settings.database_url)
    app.state.user_store = UserStore(engine)
    app.state.refresh_store = RefreshTokenStore(engine)
    app.state.token_codec = TokenCodec.from_settings(_settings)
    app.state.lifecycle = TokenLifecycleManager(
        app.state.token_codec,
        app.state.refresh_store,
        secure_cookies=_settings.secure_cookies,
    )
    app.state.oauth = GoogleOAuthAdapter.from_settings(_settings)
    if app.state.oauth is None:
        logger.warning("Google OAuth not configured -- external sign-in disabled")
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    engine.dispose()
    logger.info("SessionAuth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="SessionAuth API",
    description="Credential verification and access/refresh token issuance.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SessionMiddleware is required by authlib to store the OAuth state value
# between the authorization redirect and the callback (CSRF protection for
# the authorization code flow).
app.add_middleware(SessionMiddleware, secret_key=_settings.session_secret, https_only=_settings.is_production)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same {success: false, message, ...} envelope so
# clients can parse errors uniformly.
# ---------------------------------------------------------------------------


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render an AppError with its own status and message.

    Non-operational errors (InternalError and subclasses) get a generic
    message in production so internals never reach the client.
    """
    if exc.operational or not _settings.is_production:
        message = exc.message
    else:
        logger.error("Internal error on %s %s: %s", request.method, request.url.path, exc.message)
        message = "Internal server error"
    errors = [FieldError(**e) for e in exc.errors] if exc.errors else None
    response = JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(message=message, errors=errors).body(),
    )
    if exc.clears_refresh_cookie:
        clear_refresh_cookie(response, secure=_settings.secure_cookies)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with per-field messages when the body or query fails validation."""
    errors = [
        FieldError(
            field=".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            message=err.get("msg", "Invalid value"),
        )
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(message="Validation failed", errors=errors).body(),
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    logger.warning("Rate limit exceeded for %s on %s", request.client.host if request.client else "unknown", request.url.path)
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(message="Too many requests. Please try again later.").body(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return the envelope for FastAPI/Starlette HTTP exceptions (404 routes, 405s)."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(message=str(exc.detail)).body(),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """A unique constraint that escaped the route layer is still a conflict, not a crash."""
    logger.warning("Integrity error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=409,
        content=ErrorResponse(message="A record with this information already exists").body(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    In production the client receives only a generic message; the exception is
    logged server-side. Outside production the message and stack trace are
    included to speed up debugging.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    if _settings.is_production:
        body = ErrorResponse(message="Internal server error")
    else:
        body = ErrorResponse(
            message=str(exc) or "Something went wrong",
            stack="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        )
    return JSONResponse(status_code=500, content=body.body())


# ---------------------------------------------------------------------------
# Health endpoint
#
# No rate limit applied -- health checks from load balancers and monitoring
# systems must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and database reachability."""
    components = {"app": "ok"}
    try:
        with request.app.state.user_store.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        components["database"] = "ok"
    except Exception:
        logger.exception("Health check database probe failed")
        components["database"] = "error"
    return HealthResponse(version=VERSION, components=components)
