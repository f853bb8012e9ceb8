"""
Error taxonomy for the auth core.

Every error carries an HTTP status and a caller-safe message. The API layer renders
them as `{"status": "fail", "message": ...}`; upstream/internal errors never expose
their detail to the caller (it goes to the server log instead).
"""
from __future__ import annotations

from typing import Optional

MAX_PASSWORD_LENGTH = 64


class AuthError(Exception):
    status_code: int = 400
    public_message: str = "Bad request"

    def __init__(self, message: Optional[str] = None, *, detail: Optional[str] = None) -> None:
        self.message = message or self.public_message
        # Server-side only (logs); never rendered to the caller.
        self.detail = detail
        super().__init__(self.message)


# ---- Validation (400) ----
class ValidationFailed(AuthError):
    status_code = 400
    public_message = "Invalid request"


class EmptyPassword(ValidationFailed):
    public_message = "Password cannot be empty"


class ExceededMaxLength(ValidationFailed):
    public_message = f"Password exceeds max length: {MAX_PASSWORD_LENGTH} characters"


class CsrfMismatch(ValidationFailed):
    public_message = "Invalid CSRF token"


class MissingVerifier(ValidationFailed):
    public_message = "Missing PKCE verifier"


class MissingEmail(ValidationFailed):
    public_message = "Identity provider did not return a verified email"


# ---- Credential (400) ----
class WrongCredentials(AuthError):
    status_code = 400
    public_message = "Incorrect email or password"


# ---- Token ----
class TokenNotFound(AuthError):
    status_code = 400
    public_message = "Invalid verification token"


class TokenExpired(AuthError):
    status_code = 400
    public_message = "Verification token has expired"


class InvalidToken(AuthError):
    status_code = 401
    public_message = "Token is invalid or malformed"


# ---- Conflict (409) ----
class EmailExists(AuthError):
    status_code = 409
    public_message = "Email already exists"


# ---- Authorization ----
class Unauthorized(AuthError):
    status_code = 401
    public_message = "User authentication required"


class Forbidden(AuthError):
    status_code = 403
    public_message = "You do not have permission to access this resource"


class NotFound(AuthError):
    status_code = 404
    public_message = "Not found"


class TooManyAttempts(AuthError):
    status_code = 429
    public_message = "Too many failed login attempts. Please try again later."


# ---- Upstream (5xx, opaque) ----
class UpstreamError(AuthError):
    status_code = 502
    public_message = "Upstream service error"


class OAuthError(UpstreamError):
    public_message = "OAuth exchange failed"


class OAuthProtocolError(OAuthError):
    """Provider answered, but not with what the protocol requires."""


class OAuthTransportError(OAuthError):
    """Provider could not be reached (DNS, TLS, timeout, connection reset)."""


class MailDeliveryError(UpstreamError):
    public_message = "Failed to send email"


# ---- Internal (500, opaque) ----
class InternalError(AuthError):
    status_code = 500
    public_message = "Internal server error"


class HashingError(InternalError):
    pass


class InvalidHashFormat(InternalError):
    pass


class InvalidSubject(InternalError):
    pass


class StoreError(InternalError):
    pass
