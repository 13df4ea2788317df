"""
tests/test_auth_dependencies.py -- Access-token gate on protected routes.

Exercised through GET /api/v1/auth/profile, which depends on
get_current_user() -> require_access_token().

Covers:
  - missing or non-Bearer Authorization header -> 401 "Access token required"
  - expired, tampered, or refresh-secret tokens -> 401 "Invalid or expired access token"
  - token for a subject that no longer exists -> 401
  - store failure during subject lookup -> 401 AuthenticationFailed (fail closed)
  - valid token -> profile without the password hash
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from auth.dependencies import require_access_token
from auth.errors import AuthenticationFailed
from auth.store import UserStore
from auth.tokens import TokenCodec
from core.config import get_settings

PROFILE = "/api/v1/auth/profile"


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class TestMissingToken:
    @pytest.mark.parametrize(
        "headers",
        [
            {},
            {"Authorization": ""},
            {"Authorization": "Basic dXNlcjpwYXNz"},
            {"Authorization": "Bearer"},
            {"Authorization": "Bearer   "},
        ],
    )
    def test_rejected_before_verification(self, api_client: TestClient, headers: dict) -> None:
        resp = api_client.get(PROFILE, headers=headers)
        assert resp.status_code == 401
        assert resp.json()["message"] == "Access token required"


class TestInvalidToken:
    def test_expired_token(self, api_client: TestClient, make_user) -> None:
        user = make_user()
        settings = get_settings()
        expired = TokenCodec(
            settings.jwt_access_secret,
            settings.jwt_refresh_secret,
            access_ttl_seconds=-30,
            refresh_ttl_seconds=3600,
        ).mint_access_token(user.id)
        resp = api_client.get(PROFILE, headers=_bearer(expired))
        assert resp.status_code == 401
        assert resp.json()["message"] == "Invalid or expired access token"

    def test_tampered_token(self, api_client: TestClient, codec: TokenCodec, make_user) -> None:
        token = codec.mint_access_token(make_user().id)
        tampered = token[:-2] + ("AA" if not token.endswith("AA") else "BB")
        resp = api_client.get(PROFILE, headers=_bearer(tampered))
        assert resp.status_code == 401
        assert resp.json()["message"] == "Invalid or expired access token"

    def test_refresh_token_not_accepted(self, api_client: TestClient, codec: TokenCodec, make_user) -> None:
        resp = api_client.get(PROFILE, headers=_bearer(codec.mint_refresh_token(make_user().id)))
        assert resp.status_code == 401
        assert resp.json()["message"] == "Invalid or expired access token"

    def test_garbage_token(self, api_client: TestClient) -> None:
        resp = api_client.get(PROFILE, headers=_bearer("not.a.jwt"))
        assert resp.status_code == 401


class TestSubjectLookup:
    def test_unknown_subject(self, api_client: TestClient, codec: TokenCodec) -> None:
        resp = api_client.get(PROFILE, headers=_bearer(codec.mint_access_token("deleted-user")))
        assert resp.status_code == 401
        assert resp.json()["message"] == "User not found or inactive"

    def test_store_failure_fails_closed(
        self, api_client: TestClient, codec: TokenCodec, make_user, user_store: UserStore, monkeypatch
    ) -> None:
        token = codec.mint_access_token(make_user().id)

        def boom(user_id: str):
            raise RuntimeError("connection lost")

        monkeypatch.setattr(user_store, "get_by_id", boom)
        resp = api_client.get(PROFILE, headers=_bearer(token))
        assert resp.status_code == 401
        assert resp.json()["success"] is False
        assert resp.json()["message"] == "Authentication failed"

    def test_store_failure_raises_distinct_error(
        self, codec: TokenCodec, make_user, user_store: UserStore, monkeypatch
    ) -> None:
        user = make_user()

        def boom(user_id: str):
            raise RuntimeError("connection lost")

        monkeypatch.setattr(user_store, "get_by_id", boom)
        request = SimpleNamespace(
            headers={"Authorization": f"Bearer {codec.mint_access_token(user.id)}"},
            app=SimpleNamespace(state=SimpleNamespace(user_store=user_store, token_codec=codec)),
            state=SimpleNamespace(),
        )
        with pytest.raises(AuthenticationFailed) as exc_info:
            require_access_token(request)
        assert exc_info.value.code == "authentication_failed"
        assert exc_info.value.status_code == 401
        assert not hasattr(request.state, "user_id")


class TestValidToken:
    def test_profile_returns_user(self, api_client: TestClient, codec: TokenCodec, make_user) -> None:
        user = make_user(email="ada@example.com", name="Ada")
        resp = api_client.get(PROFILE, headers=_bearer(codec.mint_access_token(user.id)))
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["message"] == "Profile retrieved successfully"
        assert body["data"]["id"] == user.id
        assert body["data"]["email"] == "ada@example.com"
        assert body["data"]["name"] == "Ada"
        assert "passwordHash" not in body["data"]
        assert "password_hash" not in body["data"]
