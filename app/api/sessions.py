"""Session routes: login, logout, cookie reset, listing and revocation."""

from fastapi import APIRouter, Depends, Request, Response

from app.config import settings
from app.models.user import User
from app.services.auth.cookies import SessionCookie
from app.services.auth.dependencies import (
    get_current_user,
    get_request_context,
    get_session_cookie,
    get_session_manager,
)
from app.services.auth.errors import NotFoundError, UnauthorizedError
from app.services.auth.session_manager import RequestContext, SessionManager
from app.services.auth_schemas import LoginInput, SessionResponse, UserResponse


router = APIRouter(prefix="/sessions", tags=["sessions"])

MAX_USER_AGENT_LENGTH = 512


# =============================================================================
# Login / Logout
# =============================================================================


@router.post("/login", response_model=UserResponse)
async def login(
    request: Request,
    response: Response,
    credentials: LoginInput,
    ctx: RequestContext = Depends(get_request_context),
    manager: SessionManager = Depends(get_session_manager),
    cookie: SessionCookie = Depends(get_session_cookie),
):
    """Log in with username or email and set the session cookie."""
    user_agent = request.headers.get("user-agent", "")[:MAX_USER_AGENT_LENGTH]

    try:
        result = await manager.login(ctx, credentials, user_agent)
    except NotFoundError:
        if settings.collapse_login_errors:
            raise UnauthorizedError("Invalid credentials")
        raise

    # Only a persisted session id ever reaches the client
    cookie.set(response, result.session.id)
    return result.user


@router.post("/logout")
async def logout(
    user: User = Depends(get_current_user),
    ctx: RequestContext = Depends(get_request_context),
    manager: SessionManager = Depends(get_session_manager),
) -> bool:
    """Destroy the current session and clear its cookie."""
    return await manager.logout(ctx)


@router.post("/clear")
async def clear_session_cookie(
    user: User = Depends(get_current_user),
    ctx: RequestContext = Depends(get_request_context),
    manager: SessionManager = Depends(get_session_manager),
) -> bool:
    """Clear the session cookie without touching the stored session."""
    return await manager.clear_session_cookie(ctx)


# =============================================================================
# Session Management
# =============================================================================


@router.get("/current", response_model=SessionResponse)
async def find_current_session(
    user: User = Depends(get_current_user),
    ctx: RequestContext = Depends(get_request_context),
    manager: SessionManager = Depends(get_session_manager),
):
    """The session this request is authenticated with."""
    session = await manager.find_current(ctx)
    return SessionResponse.from_record(session)


@router.get("", response_model=list[SessionResponse])
async def find_sessions_by_user(
    user: User = Depends(get_current_user),
    ctx: RequestContext = Depends(get_request_context),
    manager: SessionManager = Depends(get_session_manager),
):
    """The caller's other active sessions, newest first."""
    sessions = await manager.find_by_user(ctx)
    return [SessionResponse.from_record(s) for s in sessions]


@router.delete("/{session_id}")
async def remove_session(
    session_id: str,
    user: User = Depends(get_current_user),
    ctx: RequestContext = Depends(get_request_context),
    manager: SessionManager = Depends(get_session_manager),
) -> bool:
    """Revoke one of the caller's other sessions."""
    return await manager.remove(ctx, session_id)
