"""Request-time authentication gate."""
import logging

from app.models.user import User
from app.services.auth.directory import UserDirectory
from app.services.auth.errors import UnauthorizedError
from app.services.auth.session_manager import RequestContext

logger = logging.getLogger(__name__)


class AuthGuard:
    """
    Resolves the caller's account from the active session.

    Every call re-reads the account from the directory; nothing is cached.
    """

    def __init__(self, directory: UserDirectory):
        self.directory = directory

    async def authorize(self, ctx: RequestContext) -> User:
        """
        Attach the session owner to ctx and return it.

        Raises UnauthorizedError when the session is anonymous or its owner
        no longer exists.
        """
        if ctx.user_id is None:
            raise UnauthorizedError("You are not authenticated")

        user = await self.directory.find_by_id(ctx.user_id)
        if user is None:
            logger.warning(
                "Session %s refers to missing user %s", ctx.session_id, ctx.user_id
            )
            raise UnauthorizedError("You are not authenticated")

        ctx.user = user
        return user
