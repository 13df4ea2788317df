"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
UserStore and RefreshTokenStore are the repositories; _row_to_user /
_row_to_refresh_token are the mappers. Route and lifecycle code never touches
SQL directly.

Both stores receive an Engine at construction time. The application builds
one engine in its lifespan (api/main.py) and hands it to each store, so tests
can inject isolated in-memory databases without touching module globals.

Security:
  All queries use bound parameters. No f-strings in SQL.

Timestamps are stored as ISO 8601 UTC strings with a fixed microsecond
precision, so string comparison in SQL orders them chronologically
(purge_expired relies on this).

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine

from auth.models import RefreshTokenRecord, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(100), nullable=False),
    Column("email", String(255), nullable=False, unique=True),  # always lower-cased
    Column("password_hash", Text),  # NULL for Google-only users
    Column("google_id", String(255), unique=True),
    Column("avatar", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_refresh_tokens = Table(
    "refresh_tokens",
    _metadata,
    Column("token", String(1024), primary_key=True),
    Column("user_id", String(36), nullable=False, index=True),
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_db_engine(db_url: str) -> Engine:
    """Build an Engine for db_url and create the auth tables if missing."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    _metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore(create_db_engine("sqlite:///:memory:"))
        user = store.create_user(User(name="Ada", email="ada@example.com"))
        store.get_by_email("ADA@example.com")
    """

    # Fields update_user() will write. Anything else is a programming error.
    _UPDATABLE = {"name", "password_hash", "google_id", "avatar"}

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create_user(self, user: User) -> User:
        """Insert a new user and return it with id and timestamps filled in.

        Raises sqlalchemy.exc.IntegrityError if the email (or google_id) is
        already taken. Callers turn that into a 409.
        """
        now = _to_iso(_now())
        created = User(
            id=str(uuid.uuid4()),
            name=user.name,
            email=user.email.lower(),
            password_hash=user.password_hash,
            google_id=user.google_id,
            avatar=user.avatar,
            created_at=now,
            updated_at=now,
        )
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=created.id,
                    name=created.name,
                    email=created.email,
                    password_hash=created.password_hash,
                    google_id=created.google_id,
                    avatar=created.avatar,
                    created_at=created.created_at,
                    updated_at=created.updated_at,
                )
            )
            conn.commit()
        return created

    def get_by_id(self, user_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Case-insensitive lookup; emails are stored lower-cased."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email.lower())).fetchone()
        return _row_to_user(row) if row is not None else None

    def update_user(self, user_id: str, **fields) -> User | None:
        """Update mutable fields and stamp updated_at.

        Returns the updated user, or None if user_id was not found.
        Unknown field names raise ValueError.
        """
        unknown = set(fields) - self._UPDATABLE
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == user_id).values(updated_at=_to_iso(_now()), **fields)
            )
            conn.commit()
        if result.rowcount == 0:
            return None
        return self.get_by_id(user_id)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Refresh tokens
# ---------------------------------------------------------------------------


class RefreshTokenStore:
    """Repository for live refresh tokens, keyed by token value.

    There is deliberately no update method. A record is inserted at issuance
    and deleted at logout; nothing else changes it.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def put(self, user_id: str, token: str, expires_at: datetime) -> None:
        """Insert a new record.

        Raises sqlalchemy.exc.IntegrityError on a duplicate token value. Tokens
        carry a random jti, so a collision means something is badly wrong.
        """
        with self.engine.connect() as conn:
            conn.execute(
                _refresh_tokens.insert().values(
                    token=token,
                    user_id=user_id,
                    expires_at=_to_iso(expires_at),
                    created_at=_to_iso(_now()),
                )
            )
            conn.commit()

    def find_by_token(self, token: str) -> RefreshTokenRecord | None:
        with self.engine.connect() as conn:
            row = conn.execute(_refresh_tokens.select().where(_refresh_tokens.c.token == token)).fetchone()
        return _row_to_refresh_token(row) if row is not None else None

    def delete_by_token(self, token: str) -> None:
        """Delete the record if present. Deleting a missing token is a no-op."""
        with self.engine.connect() as conn:
            conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.token == token))
            conn.commit()

    def delete_all_for_user(self, user_id: str) -> int:
        """Delete every refresh token owned by user_id. Returns the count removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.user_id == user_id))
            conn.commit()
        return result.rowcount

    def purge_expired(self) -> int:
        """Delete records whose expiry has passed. Returns the count removed.

        Housekeeping only. Expired records are already unusable because
        rotation checks expires_at itself.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.expires_at <= _to_iso(_now())))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        password_hash=row.password_hash,
        google_id=row.google_id,
        avatar=row.avatar,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_refresh_token(row) -> RefreshTokenRecord:
    return RefreshTokenRecord(
        token=row.token,
        user_id=row.user_id,
        expires_at=_from_iso(row.expires_at),
        created_at=_from_iso(row.created_at),
    )
