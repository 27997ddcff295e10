"""
Session-based authentication.

- SessionManager: login, logout, current/other sessions, revocation
- AuthGuard: resolves the caller's account from the active session
- MetadataResolver: device and location captured at login
- UserDirectory: account lookup and registration

Usage:
    from app.services.auth.dependencies import get_current_user

    # In routes:
    @router.get("/protected")
    async def protected_route(user: User = Depends(get_current_user)):
        ...
"""
from app.services.auth.errors import (
    AuthError,
    ConflictError,
    InternalError,
    NotFoundError,
    UnauthorizedError,
)
from app.services.auth.guard import AuthGuard
from app.services.auth.metadata import MetadataResolver, NetworkInfo
from app.services.auth.session_manager import LoginResult, RequestContext, SessionManager

__all__ = [
    "AuthError",
    "AuthGuard",
    "ConflictError",
    "InternalError",
    "LoginResult",
    "MetadataResolver",
    "NetworkInfo",
    "NotFoundError",
    "RequestContext",
    "SessionManager",
    "UnauthorizedError",
]
