"""
auth/errors.py -- Exception taxonomy for the auth core.

Every failure the core can raise is an AppError subclass carrying its HTTP
status and a stable machine-readable code. api/main.py registers one handler
for AppError that renders the {success: false, message} envelope, so
components raise and never build responses themselves.

"Operational" errors are expected and safe to show to the client verbatim.
InternalError (and anything that is not an AppError) is not: the boundary
replaces its message with a generic one in production mode.

Layer rule: stdlib only. No imports from api/ or core/.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for errors mapped to HTTP responses."""

    status_code: int = 400
    code: str = "bad_request"
    operational: bool = True
    # Set on errors whose response must also delete the refresh cookie.
    clears_refresh_cookie: bool = False
    default_message: str = "Bad Request"

    def __init__(self, message: str | None = None, *, errors: list[dict] | None = None) -> None:
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    code = "validation_error"
    default_message = "Validation failed"


class UnauthorizedError(AppError):
    status_code = 401
    code = "unauthorized"
    default_message = "Unauthorized"


class NotFoundError(AppError):
    status_code = 404
    code = "not_found"
    default_message = "Not Found"


class ConflictError(AppError):
    status_code = 409
    code = "conflict"
    default_message = "Conflict"


class InternalError(AppError):
    status_code = 500
    code = "internal_error"
    operational = False
    default_message = "Internal server error"


# ---------------------------------------------------------------------------
# Token and credential failures (all 401)
# ---------------------------------------------------------------------------


class MissingToken(UnauthorizedError):
    code = "missing_token"
    default_message = "Access token required"


class InvalidToken(UnauthorizedError):
    """Signature, format, expiry or payload check failed."""

    code = "invalid_token"
    default_message = "Invalid or expired access token"


class InvalidRefreshToken(UnauthorizedError):
    """Refresh token failed signature/expiry or has no live store record."""

    code = "invalid_refresh_token"
    default_message = "Invalid or expired refresh token"
    clears_refresh_cookie = True


class InvalidCredentials(UnauthorizedError):
    """Uniform login failure. Never says which half of the pair was wrong."""

    code = "invalid_credentials"
    default_message = "Invalid credentials"


class UnknownSubject(UnauthorizedError):
    code = "unknown_subject"
    default_message = "User not found or inactive"


class AuthenticationFailed(UnauthorizedError):
    """The subject lookup itself failed. Authentication fails closed."""

    code = "authentication_failed"
    default_message = "Authentication failed"


# ---------------------------------------------------------------------------
# Collaborator failures
# ---------------------------------------------------------------------------


class HashingError(InternalError):
    code = "hashing_error"
    default_message = "Failed to process password"


class ExternalIdentityError(UnauthorizedError):
    """The identity provider handshake failed or returned an unusable identity."""

    code = "external_identity_failed"
    default_message = "Google authentication failed"
