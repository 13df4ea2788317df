"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for SessionAuth happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_access_secret -> JWT_ACCESS_SECRET). Type coercion and
      validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Used to refuse startup when the signing
      secrets are missing, short, or shared between token kinds.

Security notes:
  [S1] Both JWT signing secrets are mandatory in every mode. There is no
       generated fallback: a missing secret is a startup failure, never a
       runtime condition.

  [S2] Access and refresh secrets must differ. A refresh token must never
       verify as an access token and vice versa.

  [S3] Secrets shorter than 32 chars are rejected. HS256 signing relies on
       key entropy -- a short key weakens every token.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("sessionauth.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'sessionauth.db'}"

_MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Everything except the two signing secrets has a default. The
    model_validator enforces the secret rules at startup.

    Environment variable name mapping: field names are uppercased automatically.
    E.g. `jwt_access_secret` reads from JWT_ACCESS_SECRET.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    app_env: str = "development"  # "development", "production", "test"
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Empty string is the "not configured" sentinel; the validator rejects it.
    jwt_access_secret: str = ""
    jwt_refresh_secret: str = ""
    access_token_expire_seconds: int = 60 * 60
    refresh_token_expire_seconds: int = 30 * 24 * 60 * 60

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    bcrypt_rounds: int = 12

    # ------------------------------------------------------------------
    # External identity provider (Google). Empty means disabled.
    # ------------------------------------------------------------------

    google_client_id: str = ""
    google_client_secret: str = ""
    frontend_url: str = "http://localhost:3000"
    backend_url: str = "http://localhost:8000"

    # Signs the Starlette session cookie that carries the OAuth state value
    # between the provider redirect and the callback.
    session_secret: str = ""

    # ------------------------------------------------------------------
    # HTTP boundary
    # ------------------------------------------------------------------

    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]
    rate_limit_enabled: bool = True
    auth_rate_limit: str = "20/hour"
    token_rate_limit: str = "10/hour"

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    refresh_purge_interval_seconds: int = 6 * 60 * 60

    # ------------------------------------------------------------------
    # Derived
    # ------------------------------------------------------------------

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    @property
    def secure_cookies(self) -> bool:
        """Cookies carry the Secure flag only in production."""
        return self.is_production

    @property
    def google_enabled(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Refuse to start without two independent signing secrets [S1][S2][S3].

        Also checks that the refresh window outlives the access window, since
        a refresh token that expires first could never renew anything.
        """
        if not self.jwt_access_secret:
            raise ValueError("JWT_ACCESS_SECRET is required. Set it in your environment or .env file.")
        if not self.jwt_refresh_secret:
            raise ValueError("JWT_REFRESH_SECRET is required. Set it in your environment or .env file.")
        for name, value in (("JWT_ACCESS_SECRET", self.jwt_access_secret), ("JWT_REFRESH_SECRET", self.jwt_refresh_secret)):
            if len(value) < _MIN_SECRET_LENGTH:
                raise ValueError(f"{name} must be at least {_MIN_SECRET_LENGTH} characters.")
        if self.jwt_access_secret == self.jwt_refresh_secret:
            raise ValueError("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must be different values.")
        if self.access_token_expire_seconds <= 0:
            raise ValueError("ACCESS_TOKEN_EXPIRE_SECONDS must be positive.")
        if self.refresh_token_expire_seconds <= self.access_token_expire_seconds:
            raise ValueError("REFRESH_TOKEN_EXPIRE_SECONDS must exceed ACCESS_TOKEN_EXPIRE_SECONDS.")
        if not self.session_secret:
            self.session_secret = secrets.token_hex(32)
            logger.warning(
                "WARNING: Using auto-generated SESSION_SECRET. " "In-flight OAuth logins will not survive restarts."
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings()
    directly.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
