"""
auth/oauth.py -- Google sign-in adapter built on Authlib.

One provider, one concrete adapter with a fixed interface:
    await adapter.redirect(request)       -> RedirectResponse to Google
    await adapter.exchange_code(request)  -> ExternalIdentity

Security notes:
  [H1] Email verification is mandatory. exchange_code() raises
       ExternalIdentityError if Google does not confirm the email is verified.
       An unverified address could belong to someone else.

  OAuth state parameter (CSRF protection) is handled by authlib automatically
  via Starlette SessionMiddleware. The session stores the state between the
  authorization redirect and the callback.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuth, OAuthError
from starlette.requests import Request
from starlette.responses import RedirectResponse

from auth.errors import ExternalIdentityError
from auth.models import ExternalIdentity
from core.config import Settings

logger = logging.getLogger("sessionauth.auth.oauth")

CALLBACK_PATH = "/api/v1/auth/google/callback"


class GoogleOAuthAdapter:
    """Authorization-code flow against Google's OIDC endpoints."""

    def __init__(self, client_id: str, client_secret: str, callback_url: str) -> None:
        self.callback_url = callback_url
        registry = OAuth()
        registry.register(
            name="google",
            client_id=client_id,
            client_secret=client_secret,
            server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
            client_kwargs={"scope": "openid email profile"},
        )
        self.client = registry.create_client("google")

    @classmethod
    def from_settings(cls, settings: Settings) -> GoogleOAuthAdapter | None:
        """Return an adapter, or None when Google credentials are not configured."""
        if not settings.google_enabled:
            return None
        logger.info("Google OAuth provider registered")
        return cls(
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            callback_url=f"{settings.backend_url.rstrip('/')}{CALLBACK_PATH}",
        )

    async def redirect(self, request: Request) -> RedirectResponse:
        return await self.client.authorize_redirect(request, self.callback_url)

    async def exchange_code(self, request: Request) -> ExternalIdentity:
        """Trade the callback's authorization code for a verified identity.

        Raises:
            ExternalIdentityError: code exchange failed, or the id_token lacks
                a verified email or a subject claim [H1].
        """
        try:
            token = await self.client.authorize_access_token(request)
        except OAuthError as exc:
            logger.warning("Google token exchange failed: %s", exc.error)
            raise ExternalIdentityError(exc.description or "Google authentication failed") from exc
        return identity_from_userinfo(token.get("userinfo"))


def identity_from_userinfo(userinfo: dict | None) -> ExternalIdentity:
    """Extract an ExternalIdentity from OIDC id_token claims.

    [H1] The email claim is only accepted when email_verified is True. A
    missing email_verified claim counts as unverified.
    """
    if not userinfo:
        raise ExternalIdentityError("No profile returned by Google")
    if not userinfo.get("email_verified", False):
        raise ExternalIdentityError("Google account email is not verified")

    email = userinfo.get("email")
    subject = userinfo.get("sub")
    if not email or not subject:
        raise ExternalIdentityError("No email from Google")

    return ExternalIdentity(
        subject=str(subject),
        email=email.lower(),
        name=userinfo.get("name"),
        avatar=userinfo.get("picture"),
    )
