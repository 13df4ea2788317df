"""
auth/passwords.py -- Password hashing and credential verification.

bcrypt is used directly (no passlib wrapper). The cost factor comes from
Settings.bcrypt_rounds (12 in production; tests lower it to keep the suite
fast). Every hash carries its own random salt, so hashing the same password
twice yields two different strings.

A wrong password is a normal False result, never an exception. HashingError
is raised only when bcrypt itself fails, e.g. a corrupt stored hash.

The _dummy_hash() value enables timing equalization in authenticate_user():
response time does not reveal whether an email is registered.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import TYPE_CHECKING

import bcrypt

from auth.errors import HashingError, InvalidCredentials
from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("sessionauth.auth.passwords")

# bcrypt only looks at the first 72 bytes. Newer bcrypt releases raise on
# longer input instead of truncating, so truncate explicitly.
_BCRYPT_MAX_BYTES = 72


def _encode(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str, rounds: int | None = None) -> str:
    """Return a salted bcrypt hash of the plaintext password."""
    cost = rounds if rounds is not None else get_settings().bcrypt_rounds
    try:
        return bcrypt.hashpw(_encode(plain), bcrypt.gensalt(rounds=cost)).decode("utf-8")
    except (ValueError, TypeError) as exc:
        logger.error("Password hashing failed: %s", exc)
        raise HashingError("Failed to hash password") from exc


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    Comparison happens inside bcrypt.checkpw, which re-hashes and compares in
    constant time. Raises HashingError if the stored hash is malformed.
    """
    try:
        return bcrypt.checkpw(_encode(plain), hashed.encode("utf-8"))
    except (ValueError, TypeError) as exc:
        logger.error("Password comparison failed: %s", exc)
        raise HashingError("Failed to compare password") from exc


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    """Hash used when there is no real one to check against.

    Computed once on first use, at the configured cost, so that a login for an
    unknown email spends the same bcrypt work as a login with a wrong password.
    """
    return hash_password("sessionauth_timing_dummy")


def authenticate_user(store: UserStore, email: str, password: str) -> User:
    """Authenticate an email/password login with timing equalization.

    Always runs bcrypt whether or not the user exists:
    - Unknown email: bcrypt runs against _dummy_hash() (same cost as real check)
    - Google-only account (no password hash): same as unknown email
    - Wrong password: bcrypt runs against the real hash

    Every failure raises the same InvalidCredentials so callers cannot leak
    which case occurred.
    """
    user = store.get_by_email(email)
    if user is None or user.password_hash is None:
        # Equalize timing -- do NOT return early before running bcrypt
        verify_password(password, _dummy_hash())
        raise InvalidCredentials()
    if not verify_password(password, user.password_hash):
        raise InvalidCredentials()
    return user
