"""
auth/lifecycle.py -- Token issuance, access renewal, and revocation.

TokenLifecycleManager is the only component that creates or deletes refresh
token records. Per session lineage:

    ISSUED --rotate--> ISSUED --rotate--> ... --revoke--> REVOKED

Expiry is not a transition. It is checked lazily whenever a token is
presented, against both the JWT exp claim and the stored expires_at.

Renewal semantics:
  rotate() reissues the ACCESS token only. The presented refresh token is
  neither replaced nor deleted, so it stays usable until logout or expiry, and
  two concurrent rotate() calls with the same refresh token both succeed.
  Replay resistance is therefore bounded by the refresh lifetime, not by use.

Ordering:
  issue() writes the store record before it writes the cookie. If the insert
  raises, no cookie is emitted for a token the store never recorded.

Cookie:
  refresh_token; httpOnly; SameSite=lax; Path=/; Secure in production;
  Max-Age = refresh lifetime in seconds (Starlette's unit).

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from starlette.responses import Response

from auth.errors import InvalidRefreshToken, InvalidToken, MissingToken
from auth.models import TokenPair
from auth.store import RefreshTokenStore
from auth.tokens import TokenCodec

logger = logging.getLogger("sessionauth.auth.lifecycle")

REFRESH_COOKIE_NAME = "refresh_token"


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_refresh_cookie(response: Response, token: str, max_age: int, secure: bool) -> None:
    """Write the refresh token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation for the
        refresh and logout endpoints.
    max_age: matches the stored expiry so cookie and record expire together.
    """
    response.set_cookie(
        REFRESH_COOKIE_NAME,
        value=token,
        max_age=max_age,
        path="/",
        secure=secure,
        httponly=True,
        samesite="lax",
    )


def clear_refresh_cookie(response: Response, secure: bool) -> None:
    """Expire the refresh cookie. Attributes must match the ones it was set with."""
    response.delete_cookie(
        REFRESH_COOKIE_NAME,
        path="/",
        secure=secure,
        httponly=True,
        samesite="lax",
    )


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class TokenLifecycleManager:
    """Issue, renew, and revoke token pairs for a subject.

    Usage:
        manager = TokenLifecycleManager(codec, refresh_store, secure_cookies=False)
        pair = manager.issue(response, user.id)
        access = manager.rotate(pair.refresh_token)
        manager.revoke(response, pair.refresh_token)
    """

    def __init__(self, codec: TokenCodec, refresh_store: RefreshTokenStore, secure_cookies: bool = False) -> None:
        self.codec = codec
        self.refresh_store = refresh_store
        self.secure_cookies = secure_cookies

    @property
    def refresh_max_age(self) -> int:
        return int(self.codec.refresh_ttl.total_seconds())

    def issue(self, response: Response, user_id: str) -> TokenPair:
        """Mint a new access + refresh pair, persist the refresh token, set the cookie.

        Every call creates a brand-new, independently revocable refresh token,
        so one user can hold several sessions at once.
        """
        access_token = self.codec.mint_access_token(user_id)
        refresh_token = self.codec.mint_refresh_token(user_id)
        expires_at = datetime.now(timezone.utc) + self.codec.refresh_ttl

        self.refresh_store.put(user_id, refresh_token, expires_at)
        set_refresh_cookie(response, refresh_token, self.refresh_max_age, self.secure_cookies)

        logger.info("Issued token pair for user %s", user_id)
        return TokenPair(access_token=access_token, refresh_token=refresh_token)

    def rotate(self, presented: str | None) -> str:
        """Exchange a still-valid refresh token for a fresh access token.

        Raises:
            MissingToken: no token presented; the store is not consulted.
            InvalidRefreshToken: bad signature/expiry, no store record, or an
                expired store record. The error is flagged so the HTTP layer
                clears the refresh cookie on the response.

        A stale record is left in place; purge_expired() removes it later.
        """
        if not presented:
            raise MissingToken("No refresh token provided")

        try:
            user_id = self.codec.verify_refresh_token(presented)
        except InvalidToken as exc:
            logger.info("Refresh rejected: token failed verification")
            raise InvalidRefreshToken("Invalid or expired refresh token") from exc

        record = self.refresh_store.find_by_token(presented)
        if record is None or record.expires_at <= datetime.now(timezone.utc):
            logger.info("Refresh rejected for user %s: token revoked or expired", user_id)
            raise InvalidRefreshToken("Refresh token revoked or expired")

        return self.codec.mint_access_token(user_id)

    def revoke(self, response: Response, presented: str | None) -> None:
        """Delete the token's store record (if any) and clear the cookie.

        Never raises: logout always succeeds. A store failure is logged and the
        cookie is still cleared; the orphaned record expires on its own.
        """
        if presented:
            try:
                self.refresh_store.delete_by_token(presented)
            except Exception:
                logger.exception("Refresh token revocation failed")
            else:
                logger.info("Revoked refresh token")
        clear_refresh_cookie(response, self.secure_cookies)

    def revoke_all(self, user_id: str) -> int:
        """Delete every refresh token held by user_id. Returns the count removed."""
        removed = self.refresh_store.delete_all_for_user(user_id)
        logger.info("Revoked %d refresh token(s) for user %s", removed, user_id)
        return removed
