"""
Database models for the session service.

Import all models here so metadata.create_all() can see them.
"""

from app.database import Base
from app.models.user import User

__all__ = [
    "Base",
    "User",
]
