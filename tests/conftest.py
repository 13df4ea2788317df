"""
tests/conftest.py -- Shared test fixtures for SessionAuth.

This module provides:
  - engine: an isolated named shared-memory SQLite database per test
  - user_store / refresh_store: repositories bound to that engine
  - codec / lifecycle: the token codec and lifecycle manager under test
  - api_client: TestClient over the real app with a patched lifespan
  - make_user: helper that inserts a password user and returns it

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

The JWT secrets must be in the environment before any auth/core/api import:
get_settings() refuses to start without them. BCRYPT_ROUNDS is lowered to the
bcrypt minimum so hashing does not dominate the suite's runtime.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager

# CRITICAL: configure the environment before importing anything that reads it.
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("JWT_ACCESS_SECRET", "test-access-secret-0123456789abcdef0123456789")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret-fedcba9876543210fedcba9876")
os.environ.setdefault("SESSION_SECRET", "test-session-secret")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("FRONTEND_URL", "http://frontend.test")
os.environ.setdefault("BACKEND_URL", "http://backend.test")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from api.main import app
from auth.lifecycle import TokenLifecycleManager
from auth.models import User
from auth.passwords import hash_password
from auth.store import RefreshTokenStore, UserStore, create_db_engine
from auth.tokens import TokenCodec
from core.config import get_settings

TEST_PASSWORD = "password1"


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    url = f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    eng = create_db_engine(url)
    yield eng
    eng.dispose()


@pytest.fixture
def user_store(engine: Engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture
def refresh_store(engine: Engine) -> RefreshTokenStore:
    return RefreshTokenStore(engine)


@pytest.fixture
def make_user(user_store: UserStore) -> Callable[..., User]:
    """Return a factory that inserts a password user (password = TEST_PASSWORD)."""

    def _make(email: str = "a@x.com", name: str = "A", password: str | None = TEST_PASSWORD) -> User:
        hashed = hash_password(password) if password is not None else None
        return user_store.create_user(User(name=name, email=email, password_hash=hashed))

    return _make


# ---------------------------------------------------------------------------
# Token machinery
# ---------------------------------------------------------------------------


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec.from_settings(get_settings())


@pytest.fixture
def lifecycle(codec: TokenCodec, refresh_store: RefreshTokenStore) -> TokenLifecycleManager:
    return TokenLifecycleManager(codec, refresh_store, secure_cookies=False)


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, refresh_store: RefreshTokenStore, codec: TokenCodec, lifecycle):
    """Return an async context manager that replaces the real lifespan.

    Wires the per-test stores into app.state so routes see an isolated DB.
    The purge task is a long sleep so shutdown has a real task to cancel.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.refresh_store = refresh_store
        app.state.token_codec = codec
        app.state.lifecycle = lifecycle
        app.state.oauth = None
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture
def api_client(
    user_store: UserStore,
    refresh_store: RefreshTokenStore,
    codec: TokenCodec,
    lifecycle: TokenLifecycleManager,
) -> Generator[TestClient, None, None]:
    """Yield a TestClient over the real app backed by this test's stores.

    follow_redirects=False so the Google callback tests can assert on the
    Location header.
    """
    app.router.lifespan_context = _patch_lifespan(user_store, refresh_store, codec, lifecycle)
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield client
