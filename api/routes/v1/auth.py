"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/register          -- create account; issue token pair
  POST /api/v1/auth/login             -- password login; issue token pair
  GET  /api/v1/auth/google            -- redirect to Google consent screen
  GET  /api/v1/auth/google/callback   -- Google callback; redirect to frontend with tokens
  POST /api/v1/auth/refresh           -- renew the access token
  POST /api/v1/auth/logout            -- revoke the refresh token; always 200
  GET  /api/v1/auth/profile           -- current user (requires access token)

Refresh token source for /refresh and /logout: body field refreshToken first,
then the refresh_token cookie.

Security:
  [H2] register/login are limited by AUTH_RATE_LIMIT, refresh/logout by
       TOKEN_RATE_LIMIT, per client IP.
  [C1] authenticate_user() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on every response that carries tokens.

  The Google callback hands tokens to the frontend in the redirect URL query
  string (token, refresh, user). URLs end up in browser history, proxy logs,
  and Referer headers. A one-time exchange code would be safer; the current
  frontend contract expects the raw tokens.

Handlers that hash or compare passwords are plain `def` so FastAPI runs them
in its thread pool and bcrypt never blocks the event loop.
"""

from __future__ import annotations

import json
import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter
from api.models import (
    AccessTokenData,
    AuthData,
    LoginRequest,
    RegisterRequest,
    TokenRequest,
    UserResponse,
    success_response,
)
from auth.dependencies import get_current_user
from auth.errors import AppError, ConflictError
from auth.identity import resolve_external_identity
from auth.lifecycle import REFRESH_COOKIE_NAME, TokenLifecycleManager
from auth.models import User
from auth.oauth import GoogleOAuthAdapter
from auth.passwords import authenticate_user, hash_password
from auth.store import UserStore
from core.config import get_settings

logger = logging.getLogger("sessionauth.api.auth")

_settings = get_settings()

# Auth policy:
# - POST /auth/register, /auth/login:      public, rate-limited
# - GET  /auth/google, /auth/google/callback: public
# - POST /auth/refresh, /auth/logout:      public (the refresh token is the credential)
# - GET  /auth/profile:                    requires access token (get_current_user)
router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _presented_refresh_token(request: Request, body: Optional[TokenRequest]) -> Optional[str]:
    if body is not None and body.refresh_token:
        return body.refresh_token
    return request.cookies.get(REFRESH_COOKIE_NAME)


def _frontend_callback_url(**params: str) -> str:
    return f"{_settings.frontend_url.rstrip('/')}/auth/callback?{urlencode(params)}"


# ---------------------------------------------------------------------------
# Password flows
# ---------------------------------------------------------------------------


@limiter.limit(_settings.auth_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/register", status_code=201)
def register(request: Request, response: Response, body: RegisterRequest) -> dict:
    """Create a password account and sign it in.

    The duplicate check runs before hashing so a taken email costs no bcrypt
    work. The unique index still backs it up against concurrent registrations.
    """
    user_store: UserStore = request.app.state.user_store
    lifecycle: TokenLifecycleManager = request.app.state.lifecycle

    if user_store.get_by_email(body.email) is not None:
        raise ConflictError("Email already registered")

    new_user = User(name=body.name, email=body.email, password_hash=hash_password(body.password))
    try:
        user = user_store.create_user(new_user)
    except IntegrityError as exc:
        raise ConflictError("Email already registered") from exc

    pair = lifecycle.issue(response, user.id)
    logger.info("Registered user %s", user.id)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return success_response(
        "Registration successful",
        AuthData(access_token=pair.access_token, refresh_token=pair.refresh_token, user=UserResponse.from_user(user)),
    )


@limiter.limit(_settings.auth_rate_limit)  # [H2]
@router.post("/auth/login")
def login(request: Request, response: Response, body: LoginRequest) -> dict:
    """Authenticate with email and password; issue a token pair.

    Unknown email, Google-only account, and wrong password all produce the same
    InvalidCredentials error.
    """
    user_store: UserStore = request.app.state.user_store
    lifecycle: TokenLifecycleManager = request.app.state.lifecycle

    user = authenticate_user(user_store, body.email, body.password)
    pair = lifecycle.issue(response, user.id)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return success_response(
        "Login successful",
        AuthData(access_token=pair.access_token, refresh_token=pair.refresh_token, user=UserResponse.from_user(user)),
    )


# ---------------------------------------------------------------------------
# Google sign-in
# ---------------------------------------------------------------------------


@router.get("/auth/google")
async def google_redirect(request: Request) -> RedirectResponse:
    """Send the browser to Google's consent screen (scopes: openid email profile)."""
    adapter: Optional[GoogleOAuthAdapter] = request.app.state.oauth
    if adapter is None:
        return RedirectResponse(_frontend_callback_url(error="Google sign-in is not configured"), status_code=302)
    return await adapter.redirect(request)


@router.get("/auth/google/callback")
async def google_callback(request: Request) -> RedirectResponse:
    """Finish Google sign-in and hand the tokens to the frontend.

    Flow:
      1. Exchange the authorization code for a verified identity [H1].
      2. Resolve it to a local user (create on first sign-in, link otherwise).
      3. Issue a token pair; the refresh cookie is set on the redirect.
      4. Redirect to FRONTEND_URL/auth/callback?token=...&refresh=...&user=...

    Any failure redirects to FRONTEND_URL/auth/callback?error=<message>.
    Store calls run in the thread pool so they do not block the event loop.
    """
    adapter: Optional[GoogleOAuthAdapter] = request.app.state.oauth
    if adapter is None:
        return RedirectResponse(_frontend_callback_url(error="Google sign-in is not configured"), status_code=302)

    user_store: UserStore = request.app.state.user_store
    lifecycle: TokenLifecycleManager = request.app.state.lifecycle

    resp = RedirectResponse(_settings.frontend_url, status_code=302)
    try:
        identity = await adapter.exchange_code(request)
        user = await run_in_threadpool(resolve_external_identity, user_store, identity)
        # The location is filled in once the tokens exist; issue() needs the
        # response first so the cookie lands on the redirect itself.
        pair = await run_in_threadpool(lifecycle.issue, resp, user.id)
    except AppError as exc:
        logger.warning("Google sign-in rejected: %s", exc.message)
        return RedirectResponse(_frontend_callback_url(error=exc.message), status_code=302)
    except Exception:
        logger.exception("Google sign-in failed")
        return RedirectResponse(_frontend_callback_url(error="Google authentication failed"), status_code=302)

    user_data = json.dumps({"id": user.id, "email": user.email, "name": user.name})
    resp.headers["location"] = _frontend_callback_url(
        token=pair.access_token,
        refresh=pair.refresh_token,
        user=user_data,
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Token management
# ---------------------------------------------------------------------------


@limiter.limit(_settings.token_rate_limit)  # [H2]
@router.post("/auth/refresh")
def refresh(request: Request, response: Response, body: Optional[TokenRequest] = None) -> dict:
    """Return a new access token for a live refresh token.

    The refresh token itself is not replaced. On failure the error handler
    clears the refresh cookie.
    """
    lifecycle: TokenLifecycleManager = request.app.state.lifecycle
    access_token = lifecycle.rotate(_presented_refresh_token(request, body))
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return success_response("Token refreshed successfully", AccessTokenData(access_token=access_token))


@limiter.limit(_settings.token_rate_limit)  # [H2]
@router.post("/auth/logout")
def logout(request: Request, response: Response, body: Optional[TokenRequest] = None) -> dict:
    """Revoke the presented refresh token and clear the cookie. Always succeeds."""
    lifecycle: TokenLifecycleManager = request.app.state.lifecycle
    lifecycle.revoke(response, _presented_refresh_token(request, body))
    return success_response("Logged out successfully")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/profile")
def profile(current_user: User = Depends(get_current_user)) -> dict:
    """Return the authenticated user. The password hash is never included."""
    return success_response("Profile retrieved successfully", UserResponse.from_user(current_user))
