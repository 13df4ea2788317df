"""
API request and response models for SessionAuth REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

JSON field names are camelCase (accessToken, refreshToken, createdAt) via an
alias generator; Python attribute names stay snake_case.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from auth.models import User

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    Email is trimmed and lower-cased before the pattern check, so the stored
    value is always the canonical form.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: str = Field(min_length=1, max_length=100)
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=8, max_length=255)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1, max_length=255)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


class TokenRequest(BaseModel):
    """Optional body for POST /refresh and /logout. The cookie is the fallback."""

    model_config = _CAMEL

    refresh_token: Optional[str] = None


# ---------------------------------------------------------------------------
# Response payloads
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user. There is no password field to leak."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    name: str
    email: str
    avatar: Optional[str] = None
    google_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            avatar=user.avatar,
            google_id=user.google_id,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class AuthData(BaseModel):
    """Payload returned by register and login."""

    model_config = _CAMEL

    access_token: str
    refresh_token: str
    user: UserResponse


class AccessTokenData(BaseModel):
    """Payload returned by refresh."""

    model_config = _CAMEL

    access_token: str


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


def success_response(message: str, data: Optional[BaseModel] = None) -> dict:
    """Build the {success: true, message, data?, timestamp} envelope."""
    body: dict = {"success": True, "message": message}
    if data is not None:
        body["data"] = data.model_dump(by_alias=True)
    body["timestamp"] = _now_iso()
    return body


class FieldError(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    message: str


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses.

    stack is only populated outside production mode.
    """

    model_config = ConfigDict(frozen=True)

    success: bool = False
    message: str
    errors: Optional[list[FieldError]] = None
    stack: Optional[str] = None
    timestamp: str = Field(default_factory=_now_iso)

    def body(self) -> dict:
        return self.model_dump(exclude_none=True)


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
