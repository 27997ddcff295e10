"""
Pydantic models for sessions, session metadata and account inputs.

SessionRecord doubles as the KV value format: it is dumped by alias
(camelCase, ISO-8601 timestamps) so stored records read as
{"userId": ..., "createdAt": ..., "metadata": {...}}.
"""

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

UNKNOWN = "Unknown"

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9]+(?:-[a-zA-Z0-9]+)*$")
PASSWORD_PATTERN = re.compile(
    r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$"
)
PASSWORD_RULES_MESSAGE = (
    "Password must contain at least one uppercase letter, one lowercase letter, "
    "one number, and one special character."
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Session metadata ---


class LocationInfo(CamelModel):
    model_config = ConfigDict(frozen=True)

    country: str = UNKNOWN
    city: str = UNKNOWN
    latitude: float = 0
    longitude: float = 0


class DeviceInfo(CamelModel):
    model_config = ConfigDict(frozen=True)

    browser: str = UNKNOWN
    os: str = UNKNOWN
    type: str = UNKNOWN


class SessionMetadata(CamelModel):
    """Device and approximate location captured once, at login."""

    model_config = ConfigDict(frozen=True)

    location: LocationInfo = Field(default_factory=LocationInfo)
    device: DeviceInfo = Field(default_factory=DeviceInfo)
    ip: str = UNKNOWN

    @classmethod
    def unknown(cls, ip: str) -> "SessionMetadata":
        return cls(location=LocationInfo(), device=DeviceInfo(), ip=ip)


# --- Sessions ---


class SessionRecord(CamelModel):
    """
    A server-side session.

    `id` is never part of the stored value; it is the KV key with the
    configured prefix stripped. A record without `user_id` is anonymous.
    """

    id: str = Field(exclude=True)
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None
    metadata: Optional[SessionMetadata] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


class SessionResponse(CamelModel):
    id: str
    user_id: str
    created_at: datetime
    metadata: SessionMetadata

    @classmethod
    def from_record(cls, record: SessionRecord) -> "SessionResponse":
        return cls(
            id=record.id,
            user_id=record.user_id,
            created_at=record.created_at,
            metadata=record.metadata or SessionMetadata(),
        )


# --- Accounts ---


class LoginInput(BaseModel):
    login: str = Field(min_length=1)  # username or email
    password: str = Field(min_length=1)


class CreateUserInput(BaseModel):
    username: str = Field(min_length=1, max_length=64)
    email: EmailStr
    password: str = Field(min_length=8)

    @field_validator("username")
    @classmethod
    def username_format(cls, value: str) -> str:
        if not USERNAME_PATTERN.match(value):
            raise ValueError("Username may contain letters, digits and single hyphens only.")
        return value

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        if not PASSWORD_PATTERN.match(value):
            raise ValueError(PASSWORD_RULES_MESSAGE)
        return value


class UserResponse(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    username: str
    display_name: str
    avatar: Optional[str] = None
    bio: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
