from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    environment: str = "production"

    database_url: str = "postgresql://postgres:postgres@db:5432/sessions"
    redis_url: str = "redis://redis:6379/0"

    # Session cookie
    session_secret_key: str = ""  # Required in production
    session_cookie_name: str = "session"
    session_cookie_domain: Optional[str] = None
    session_max_age: int = 86400 * 7  # 7 days, also the KV entry TTL
    session_cookie_secure: bool = False  # True in production
    session_cookie_httponly: bool = True

    # KV layout
    session_key_prefix: str = "sessions:"
    session_index_prefix: str = "user-sessions:"

    # Session metadata
    geoip_database_path: Optional[str] = None  # MaxMind GeoLite2/GeoIP2 City .mmdb

    allowed_origin: str = "http://localhost:3000"

    # Report unknown logins as "Invalid credentials" instead of 404
    collapse_login_errors: bool = False

    class Config:
        env_file = ".env"

    @property
    def is_dev(self) -> bool:
        return self.environment == "development"


settings = Settings()
