"""Unit tests for auth/passwords.py -- hashing and credential verification.

Covers:
- hash/verify round trip; wrong password is False, not an error
- salting: the same password hashes differently each time
- malformed stored hash raises HashingError
- authenticate_user(): uniform InvalidCredentials for unknown email, wrong
  password, and Google-only accounts; success is case-insensitive on email
"""

from __future__ import annotations

import pytest

from auth.errors import HashingError, InvalidCredentials
from auth.models import User
from auth.passwords import authenticate_user, hash_password, verify_password
from auth.store import UserStore


class TestHashing:
    def test_round_trip(self) -> None:
        hashed = hash_password("correct horse")
        assert verify_password("correct horse", hashed) is True

    def test_wrong_password_is_false(self) -> None:
        hashed = hash_password("correct horse")
        assert verify_password("battery staple", hashed) is False

    def test_hash_is_salted(self) -> None:
        assert hash_password("same-input") != hash_password("same-input")

    def test_hash_is_not_plaintext(self) -> None:
        assert "secret-pass" not in hash_password("secret-pass")

    def test_cost_factor_is_encoded(self) -> None:
        assert hash_password("pw", rounds=5).startswith("$2b$05$")

    def test_malformed_hash_raises(self) -> None:
        with pytest.raises(HashingError):
            verify_password("anything", "not-a-bcrypt-hash")

    def test_long_password_does_not_raise(self) -> None:
        long_pw = "x" * 200
        assert verify_password(long_pw, hash_password(long_pw)) is True


class TestAuthenticateUser:
    def test_valid_credentials(self, make_user, user_store: UserStore) -> None:
        created = make_user(email="ada@example.com")
        user = authenticate_user(user_store, "ADA@example.com", "password1")
        assert user.id == created.id

    def test_wrong_password(self, make_user, user_store: UserStore) -> None:
        make_user(email="ada@example.com")
        with pytest.raises(InvalidCredentials) as exc_info:
            authenticate_user(user_store, "ada@example.com", "wrong-password")
        assert exc_info.value.message == "Invalid credentials"

    def test_unknown_email(self, user_store: UserStore) -> None:
        with pytest.raises(InvalidCredentials) as exc_info:
            authenticate_user(user_store, "nobody@example.com", "password1")
        assert exc_info.value.message == "Invalid credentials"

    def test_google_only_account(self, user_store: UserStore) -> None:
        user_store.create_user(User(name="G", email="g@example.com", google_id="g-1"))
        with pytest.raises(InvalidCredentials):
            authenticate_user(user_store, "g@example.com", "password1")
