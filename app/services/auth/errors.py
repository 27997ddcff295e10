"""Typed failures raised by the session core and mapped to HTTP responses in app.main."""
from fastapi import status


class AuthError(Exception):
    """Base class for session and account failures."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Authentication error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotFoundError(AuthError):
    """Account or session absent."""

    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class UnauthorizedError(AuthError):
    """Bad credentials, no session, or the session owner no longer exists."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "You are not authenticated"


class ConflictError(AuthError):
    """Request conflicts with current state (self-removal, taken username/email)."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict"


class InternalError(AuthError):
    """KV persistence or deletion failure."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal error"
