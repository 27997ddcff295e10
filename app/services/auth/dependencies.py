"""FastAPI dependencies wiring the session core into request handling."""
import logging

from fastapi import Depends, Request, Response
from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User
from app.services.auth.cookies import SessionCookie
from app.services.auth.directory import UserDirectory
from app.services.auth.errors import InternalError
from app.services.auth.guard import AuthGuard
from app.services.auth.metadata import MetadataResolver, NetworkInfo
from app.services.auth.session_manager import RequestContext, SessionManager
from app.services.session_store import SessionStore

logger = logging.getLogger(__name__)


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def get_metadata_resolver(request: Request) -> MetadataResolver:
    return request.app.state.metadata_resolver


def get_session_cookie(request: Request) -> SessionCookie:
    return request.app.state.session_cookie


def get_user_directory(db: Session = Depends(get_db)) -> UserDirectory:
    return UserDirectory(db)


async def get_request_context(
    request: Request,
    response: Response,
    store: SessionStore = Depends(get_session_store),
    cookie: SessionCookie = Depends(get_session_cookie),
) -> RequestContext:
    """
    Resolve the session cookie into a RequestContext.

    A missing, badly signed or expired cookie gives an anonymous context.
    A valid cookie whose record is gone keeps its session_id but no session.
    """
    session_id = cookie.unsign(request.cookies.get(cookie.name))

    session = None
    if session_id is not None:
        try:
            session = await store.load(session_id)
        except RedisError as exc:
            logger.exception("Failed to load session %s", session_id)
            raise InternalError("Session store unavailable") from exc

    return RequestContext(
        session_id=session_id,
        session=session,
        network=NetworkInfo.from_request(request),
        clear_cookie=lambda: cookie.clear(response),
    )


def get_session_manager(
    store: SessionStore = Depends(get_session_store),
    directory: UserDirectory = Depends(get_user_directory),
    metadata_resolver: MetadataResolver = Depends(get_metadata_resolver),
) -> SessionManager:
    return SessionManager(store, directory, metadata_resolver)


async def get_current_user(
    ctx: RequestContext = Depends(get_request_context),
    directory: UserDirectory = Depends(get_user_directory),
) -> User:
    """
    Get the currently authenticated user.

    Raises UnauthorizedError (401) if the session is anonymous or its owner
    no longer exists.
    """
    return await AuthGuard(directory).authorize(ctx)
