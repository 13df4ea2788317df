"""
auth/tokens.py -- JWT codec for access and refresh tokens.

Security design decisions:
  JWT: python-jose with HS256. Two token kinds, two secrets. Access tokens are
       signed with JWT_ACCESS_SECRET, refresh tokens with JWT_REFRESH_SECRET,
       so a token of one kind can never pass verification as the other.

  Claims: {"id": subject id, "iat", "exp", "jti"}. iat/exp are whole seconds
       since the epoch (jose converts datetimes). jti is 128 random bits that
       makes every minted token unique, even two minted for the same subject
       within the same second -- refresh tokens are store keys and must not
       collide.

  Verification raises InvalidToken on any failure: bad signature, malformed
       token, expired, or a payload without a subject id. Callers decide how
       to report it (the refresh path re-raises as InvalidRefreshToken).

  Access tokens are stateless: there is no revocation list. A leaked access
       token stays valid until its short expiry.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.errors import InvalidToken
from core.config import Settings

_ALGORITHM = "HS256"


class TokenCodec:
    """Mint and verify signed, expiring bearer tokens.

    Construct with explicit secrets and lifetimes, or from Settings:
        codec = TokenCodec.from_settings(get_settings())
        token = codec.mint_access_token(user.id)
        user_id = codec.verify_access_token(token)
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_ttl_seconds: int,
        refresh_ttl_seconds: int,
    ) -> None:
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self.access_ttl = timedelta(seconds=access_ttl_seconds)
        self.refresh_ttl = timedelta(seconds=refresh_ttl_seconds)

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenCodec:
        return cls(
            access_secret=settings.jwt_access_secret,
            refresh_secret=settings.jwt_refresh_secret,
            access_ttl_seconds=settings.access_token_expire_seconds,
            refresh_ttl_seconds=settings.refresh_token_expire_seconds,
        )

    # ------------------------------------------------------------------
    # Minting
    # ------------------------------------------------------------------

    def mint_access_token(self, subject_id: str) -> str:
        return self._mint(subject_id, self._access_secret, self.access_ttl)

    def mint_refresh_token(self, subject_id: str) -> str:
        return self._mint(subject_id, self._refresh_secret, self.refresh_ttl)

    @staticmethod
    def _mint(subject_id: str, secret: str, ttl: timedelta) -> str:
        issued_at = datetime.now(timezone.utc)
        payload = {
            "id": subject_id,
            "iat": issued_at,
            "exp": issued_at + ttl,
            "jti": secrets.token_hex(16),
        }
        return jwt.encode(payload, secret, algorithm=_ALGORITHM)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify_access_token(self, token: str) -> str:
        """Return the subject id of a valid access token; raise InvalidToken otherwise."""
        return self._verify(token, self._access_secret)

    def verify_refresh_token(self, token: str) -> str:
        """Return the subject id of a valid refresh token; raise InvalidToken otherwise."""
        return self._verify(token, self._refresh_secret)

    @staticmethod
    def _verify(token: str, secret: str) -> str:
        try:
            payload = jwt.decode(token, secret, algorithms=[_ALGORITHM])
        except JWTError as exc:
            raise InvalidToken() from exc
        subject_id = payload.get("id")
        if not subject_id or not isinstance(subject_id, str):
            raise InvalidToken()
        return subject_id
