"""
auth/dependencies.py -- FastAPI Depends() helpers for request authentication.

require_access_token() is the gate for protected routes:
  1. Extract "Authorization: Bearer <token>". Missing or malformed header
     -> MissingToken, before anything else runs.
  2. Verify the token with the access secret. Bad signature, malformed, or
     expired -> InvalidToken.
  3. Look the subject up in the user store. Absent -> UnknownSubject.
     A store failure is also an authentication failure (fail closed); it is
     not retried here.
  4. Stash the subject id on request.state.user_id and return it.

The subject lookup runs on every authenticated request so a deleted account
stops working immediately. It is the hot path if throughput ever matters.

get_current_user() wraps it for routes that need the full User record.

Layer rule: auth/dependencies.py may import from fastapi (Request) because
this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import Request

from auth.errors import AuthenticationFailed, MissingToken, UnknownSubject
from auth.models import User
from auth.store import UserStore
from auth.tokens import TokenCodec

logger = logging.getLogger("sessionauth.auth.dependencies")

_BEARER_PREFIX = "Bearer "


def extract_bearer_token(request: Request) -> str | None:
    """Return the token from an "Authorization: Bearer <token>" header, or None."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith(_BEARER_PREFIX):
        return None
    token = auth_header[len(_BEARER_PREFIX) :].strip()
    return token or None


def _load_subject(request: Request, user_id: str) -> User:
    user_store: UserStore = request.app.state.user_store
    try:
        user = user_store.get_by_id(user_id)
    except Exception as exc:
        logger.exception("Subject lookup failed during authentication")
        raise AuthenticationFailed() from exc
    if user is None:
        raise UnknownSubject()
    return user


def require_access_token(request: Request) -> str:
    """Require a valid access token. Returns the authenticated user id.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user_id: str = Depends(require_access_token)): ...
    """
    token = extract_bearer_token(request)
    if token is None:
        raise MissingToken()

    codec: TokenCodec = request.app.state.token_codec
    user_id = codec.verify_access_token(token)

    user = _load_subject(request, user_id)
    request.state.user_id = user.id
    request.state.user = user
    return user.id


def get_current_user(request: Request) -> User:
    """Require authentication and return the User record.

    Use as a FastAPI dependency:
        @router.get("/profile")
        def route(user: User = Depends(get_current_user)): ...
    """
    require_access_token(request)
    return request.state.user
