"""
auth/errors.py -- Stable error kinds raised by the credential and session core.

Every failure a caller can recover from has its own class with a fixed
error_code, so the API layer can pick the right status and message without
string matching. Callers should catch the specific class they care about and
let everything else reach the generic 500 handler.

status_code is the default HTTP mapping. A raise site may override it: the
OTP and verification-token flows answer NotFound/Expired with 400/401 to keep
the responses existing clients already handle.

Messages must never contain secrets -- no raw codes, hashes, or keys.

Layer rule: stdlib only.
"""

from __future__ import annotations

from typing import Optional


class AuthError(Exception):
    """Base class for recoverable authentication and account errors."""

    status_code: int = 400
    error_code: str = "auth_error"

    def __init__(self, message: str, *, status_code: Optional[int] = None, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.detail = detail


class RateLimited(AuthError):
    """A new OTP was requested inside the resend cooldown window."""

    status_code = 429
    error_code = "rate_limited"

    def __init__(self, message: str, *, retry_after: Optional[int] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class NotFound(AuthError):
    status_code = 404
    error_code = "not_found"


class Expired(AuthError):
    status_code = 400
    error_code = "expired"


class TooManyAttempts(AuthError):
    """The OTP attempt budget is spent; the challenge has been discarded."""

    status_code = 429
    error_code = "too_many_attempts"


class InvalidCode(AuthError):
    status_code = 400
    error_code = "invalid_code"


class Mismatch(AuthError):
    """A verification token was presented for a different email than it was issued to."""

    status_code = 401
    error_code = "mismatch"


class Unauthenticated(AuthError):
    status_code = 401
    error_code = "unauthenticated"


class SessionRevoked(AuthError):
    """The token's session version is older than the one on the credential."""

    status_code = 401
    error_code = "session_revoked"


class Forbidden(AuthError):
    status_code = 403
    error_code = "forbidden"


class DeliveryError(AuthError):
    """The notification collaborator could not deliver a message."""

    status_code = 502
    error_code = "delivery_failed"


class Conflict(AuthError):
    """Duplicate identity (email or mobile number already registered)."""

    status_code = 409
    error_code = "conflict"


__all__ = [
    "AuthError",
    "RateLimited",
    "NotFound",
    "Expired",
    "TooManyAttempts",
    "InvalidCode",
    "Mismatch",
    "Unauthenticated",
    "SessionRevoked",
    "Forbidden",
    "DeliveryError",
    "Conflict",
]
