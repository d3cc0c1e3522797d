"""Domain error taxonomy.

Every failure the service reports to a caller is an ``AppError`` subclass
carrying an HTTP status, a stable machine code and a human message. The
exception handlers in ``api.errors`` are the only place these are turned
into responses.
"""
from typing import Dict, List, Optional


class AppError(Exception):
    """Base class for errors mapped to HTTP responses."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        fields: Optional[Dict[str, List[str]]] = None,
        clear_refresh_cookie: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.fields = fields
        self.clear_refresh_cookie = clear_refresh_cookie


class ValidationFailed(AppError):
    """Malformed input (400)."""
    status_code = 400
    error_code = "validation_failed"


class Unauthorized(AppError):
    """Missing, invalid, expired or revoked credential (401)."""
    status_code = 401
    error_code = "unauthorized"


class InvalidCredentials(Unauthorized):
    """Username/password pair rejected (401)."""
    error_code = "invalid_credentials"


class Forbidden(AppError):
    """Authenticated but role not allowed (403)."""
    status_code = 403
    error_code = "forbidden"


class NotFound(AppError):
    status_code = 404
    error_code = "not_found"


class Conflict(AppError):
    """Duplicate username or email (409)."""
    status_code = 409
    error_code = "conflict"


class RateLimited(AppError):
    status_code = 429
    error_code = "rate_limited"


class InternalError(AppError):
    status_code = 500
    error_code = "internal_error"


__all__ = [
    "AppError",
    "ValidationFailed",
    "Unauthorized",
    "InvalidCredentials",
    "Forbidden",
    "NotFound",
    "Conflict",
    "RateLimited",
    "InternalError",
]
