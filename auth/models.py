"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the
lifecycle manager do the work; routes map these to transport models.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class User:
    """The subject that tokens authenticate.

    email is stored lower-cased and is the natural lookup key; it is unique
    across all users.

    password_hash is None for accounts created through Google sign-in.
    google_id is None until the user signs in with Google at least once, at
    which point identity resolution backfills it. Either may be added later.
    """

    name: str
    email: str
    id: str | None = None  # UUID4 string, assigned by the store on insert
    password_hash: str | None = None  # None = identity-provider-only user
    google_id: str | None = None  # provider's stable subject ID
    avatar: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class RefreshTokenRecord:
    """A live refresh token.

    A refresh token is only usable while this record exists AND expires_at is
    in the future. Records are never mutated: rotation and logout delete them.
    """

    token: str
    user_id: str
    expires_at: datetime  # timezone-aware UTC
    created_at: datetime | None = None


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class ExternalIdentity:
    """A verified identity returned by the external provider handshake."""

    subject: str  # provider's stable user ID
    email: str
    name: str | None = None
    avatar: str | None = None
