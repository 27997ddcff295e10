from sqlalchemy import Column, String, DateTime, Text
from sqlalchemy.sql import func
import uuid

from app.database import Base


def _new_user_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """User account; owner of authenticated sessions."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_user_id)
    username = Column(String(64), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    display_name = Column(String(255), nullable=False)
    avatar = Column(String(1024), nullable=True)
    bio = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
