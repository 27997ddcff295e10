"""User directory: account lookup, password hashing and registration."""
import asyncio
import logging
from typing import Optional

import bcrypt
from sqlalchemy import or_
from sqlalchemy.orm import Session as DBSession

from app.models.user import User
from app.services.auth.errors import ConflictError
from app.services.auth_schemas import CreateUserInput

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def check_password(password_hash: str, password: str) -> bool:
    """Verify a password against its hash. A malformed hash never verifies."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


class UserDirectory:
    """
    Account storage used by the session core.

    Queries run on the request's SQLAlchemy session; bcrypt work is moved
    off the event loop.
    """

    def __init__(self, db: DBSession):
        self.db = db

    async def find_by_login(self, login: str) -> Optional[User]:
        """Match a username, or an email case-insensitively."""
        return (
            self.db.query(User)
            .filter(or_(User.username == login, User.email == normalize_email(login)))
            .first()
        )

    async def find_by_id(self, user_id: str) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    async def verify_password(self, password_hash: str, password: str) -> bool:
        if not password_hash:
            return False
        return await asyncio.to_thread(check_password, password_hash, password)

    async def is_username_taken(self, username: str) -> bool:
        return self.db.query(User.id).filter(User.username == username).first() is not None

    async def is_email_taken(self, email: str) -> bool:
        query = self.db.query(User.id).filter(User.email == normalize_email(email))
        return query.first() is not None

    async def create(self, data: CreateUserInput) -> User:
        """Register a new account. Username and email must be unused."""
        if await self.is_username_taken(data.username):
            raise ConflictError("This username is already taken.")

        if await self.is_email_taken(data.email):
            raise ConflictError("This email is already taken.")

        password_hash = await asyncio.to_thread(hash_password, data.password)
        user = User(
            username=data.username,
            email=normalize_email(data.email),
            password_hash=password_hash,
            display_name=data.username,
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)

        logger.info("Created user %s (%s)", user.id, user.username)
        return user
