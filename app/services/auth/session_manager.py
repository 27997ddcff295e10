"""Session lifecycle: login, logout, lookup, per-user listing and revocation."""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from redis.exceptions import RedisError

from app.models.user import User
from app.services.auth.directory import UserDirectory
from app.services.auth.errors import (
    ConflictError,
    InternalError,
    NotFoundError,
    UnauthorizedError,
)
from app.services.auth.metadata import MetadataResolver, NetworkInfo
from app.services.auth_schemas import LoginInput, SessionRecord
from app.services.session_store import SessionStore

logger = logging.getLogger(__name__)


_NEVER = datetime.min.replace(tzinfo=timezone.utc)


def _noop() -> None:
    pass


@dataclass
class RequestContext:
    """
    Framework-neutral view of the current request.

    session_id/session are whatever the session cookie resolved to (None
    for a client without a valid cookie). clear_cookie is supplied by the
    web layer. user is attached by AuthGuard.
    """

    session_id: Optional[str] = None
    session: Optional[SessionRecord] = None
    network: NetworkInfo = field(default_factory=NetworkInfo)
    clear_cookie: Callable[[], None] = _noop
    user: Optional[User] = None

    @property
    def user_id(self) -> Optional[str]:
        return self.session.user_id if self.session is not None else None


@dataclass
class LoginResult:
    user: User
    session: SessionRecord


class SessionManager:
    """
    State machine for session records: Anonymous -> Authenticated -> Deleted.

    login never upgrades a record in place: it writes a record under a new id
    and the caller hands that id to the client only after the write succeeded.
    """

    def __init__(
        self,
        store: SessionStore,
        directory: UserDirectory,
        metadata_resolver: MetadataResolver,
    ):
        self.store = store
        self.directory = directory
        self.metadata_resolver = metadata_resolver

    def _require_user_id(self, ctx: RequestContext) -> str:
        if ctx.user_id is None:
            raise UnauthorizedError()
        return ctx.user_id

    async def login(
        self, ctx: RequestContext, credentials: LoginInput, user_agent: str
    ) -> LoginResult:
        """
        Authenticate by username-or-email and password and persist a new session.

        Raises:
            NotFoundError: no account matches credentials.login
            UnauthorizedError: password does not match
            InternalError: the session could not be written
        """
        user = await self.directory.find_by_login(credentials.login)
        if user is None:
            logger.info("Login failed: unknown login")
            raise NotFoundError("User not found")

        if not await self.directory.verify_password(user.password_hash, credentials.password):
            logger.info("Login failed: invalid password for user %s", user.id)
            raise UnauthorizedError("Invalid password")

        metadata = self.metadata_resolver.resolve(ctx.network, user_agent)

        session = SessionRecord(
            id=self.store.new_id(),
            user_id=user.id,
            created_at=datetime.now(timezone.utc),
            metadata=metadata,
        )

        try:
            await self.store.save(session)
        except RedisError as exc:
            logger.exception("Failed to save session for user %s", user.id)
            raise InternalError("Failed to save session") from exc

        # The id the client presented is retired in favour of the new one
        if ctx.session_id and ctx.session_id != session.id:
            try:
                await self.store.destroy(ctx.session_id, ctx.user_id)
            except RedisError:
                logger.warning(
                    "Could not discard previous session %s", ctx.session_id, exc_info=True
                )

        ctx.session_id = session.id
        ctx.session = session
        logger.info("User %s logged in, session %s", user.id, session.id)
        return LoginResult(user=user, session=session)

    async def logout(self, ctx: RequestContext) -> bool:
        """Destroy the caller's session record, then clear the cookie once."""
        if ctx.session_id is None:
            raise UnauthorizedError()

        try:
            await self.store.destroy(ctx.session_id, ctx.user_id)
        except RedisError as exc:
            logger.exception("Failed to destroy session %s", ctx.session_id)
            raise InternalError("Failed to close session") from exc

        ctx.clear_cookie()
        logger.info("Session %s logged out", ctx.session_id)
        ctx.session_id = None
        ctx.session = None
        return True

    async def clear_session_cookie(self, ctx: RequestContext) -> bool:
        """Clear the cookie only; KV state is left untouched."""
        ctx.clear_cookie()
        return True

    async def find_current(self, ctx: RequestContext) -> SessionRecord:
        if ctx.session_id is None:
            raise UnauthorizedError()

        session = await self.store.load(ctx.session_id)
        if session is None:
            raise NotFoundError("Session not found")
        return session

    async def find_by_user(self, ctx: RequestContext) -> list[SessionRecord]:
        """The caller's other sessions, newest first."""
        user_id = self._require_user_id(ctx)

        sessions = [
            s
            for s in await self.store.load_for_user(user_id)
            if s.user_id == user_id and s.id != ctx.session_id
        ]
        # Sort by id first so equal timestamps always come back in the same order
        sessions.sort(key=lambda s: s.id)
        sessions.sort(key=lambda s: s.created_at or _NEVER, reverse=True)
        return sessions

    async def remove(self, ctx: RequestContext, session_id: str) -> bool:
        """
        Revoke another session belonging to the caller.

        The current session cannot be removed this way (use logout). A target
        that does not exist or belongs to someone else is reported as not found.
        """
        if session_id == ctx.session_id:
            raise ConflictError("Cannot remove current session")

        user_id = self._require_user_id(ctx)

        target = await self.store.load(session_id)
        if target is None or target.user_id != user_id:
            raise NotFoundError("Session not found")

        try:
            await self.store.destroy(session_id, user_id)
        except RedisError as exc:
            logger.exception("Failed to remove session %s", session_id)
            raise InternalError("Failed to remove session") from exc

        logger.info("User %s removed session %s", user_id, session_id)
        return True
