"""
Test configuration and fixtures for the session service.

- Function-scoped in-memory SQLite engine for the user directory
- fakeredis server standing in for the KV store
- TestClient with database, session store and metadata overrides
- Authenticated client fixture (logs in through the API)
"""

import os

# Must be set before app.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SESSION_SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENVIRONMENT", "test")

from typing import Generator

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import settings
from app.database import Base, get_db
from app.main import app
from app.models import User
from app.services.auth.dependencies import get_metadata_resolver, get_session_store
from app.services.auth.metadata import GeoLocation, MetadataResolver
from app.services.session_store import RedisKVStore, SessionStore
from tests.factories import TEST_PASSWORD, create_user


TEST_TTL = 3600

# Addresses the fake geolocation database knows about
BERLIN_IP = "203.0.113.7"
NOWHERE_IP = "198.51.100.1"  # in the database but without city/coordinates

CHROME_WINDOWS_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)


class FakeGeoLookup:
    """Dictionary-backed geolocation lookup that records the addresses it was asked about."""

    def __init__(self, locations: dict | None = None):
        self.locations = locations or {}
        self.calls: list[str] = []

    def __call__(self, ip: str):
        self.calls.append(ip)
        return self.locations.get(ip)


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def test_engine():
    """In-memory SQLite shared by every connection of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(test_engine) -> Generator[Session, None, None]:
    TestingSessionLocal = sessionmaker(bind=test_engine)
    session = TestingSessionLocal()

    yield session

    session.close()


# =============================================================================
# KV Store Fixtures
# =============================================================================


@pytest.fixture
def fake_redis_server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest.fixture
def redis_client(fake_redis_server):
    """Async client for tests running on the pytest-asyncio loop."""
    return fakeredis.FakeAsyncRedis(server=fake_redis_server)


@pytest.fixture
def redis_sync(fake_redis_server) -> fakeredis.FakeRedis:
    """Synchronous view of the same data, for inspecting state around TestClient calls."""
    return fakeredis.FakeRedis(server=fake_redis_server)


@pytest.fixture
def kv(redis_client) -> RedisKVStore:
    return RedisKVStore(redis_client)


@pytest.fixture
def session_store(kv) -> SessionStore:
    return SessionStore(kv, ttl=TEST_TTL)


# =============================================================================
# Metadata Fixtures
# =============================================================================


@pytest.fixture
def geo_lookup() -> FakeGeoLookup:
    return FakeGeoLookup(
        {
            BERLIN_IP: GeoLocation(
                country_code="DE", city="Berlin", coordinates=(52.52, 13.405)
            ),
            NOWHERE_IP: GeoLocation(country_code="US"),
        }
    )


@pytest.fixture
def metadata_resolver(geo_lookup) -> MetadataResolver:
    return MetadataResolver(geo_lookup)


# =============================================================================
# TestClient Fixtures
# =============================================================================


@pytest.fixture
def client(
    db: Session, fake_redis_server, metadata_resolver: MetadataResolver
) -> Generator[TestClient, None, None]:
    """
    TestClient with database, session store and metadata resolver overrides.

    The store gets a fresh fakeredis connection per request so nothing is
    bound to the pytest event loop.
    """

    def override_get_db():
        try:
            yield db
        finally:
            pass  # Don't close - managed by db fixture

    def override_get_session_store():
        redis = fakeredis.FakeAsyncRedis(server=fake_redis_server)
        return SessionStore(
            RedisKVStore(redis),
            key_prefix=settings.session_key_prefix,
            index_prefix=settings.session_index_prefix,
            ttl=TEST_TTL,
        )

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_store] = override_get_session_store
    app.dependency_overrides[get_metadata_resolver] = lambda: metadata_resolver

    with TestClient(app) as test_client:
        # Set default Referer so CSRF Origin middleware allows requests
        test_client.headers["referer"] = "http://testserver/"
        yield test_client

    app.dependency_overrides.clear()


# =============================================================================
# Authentication Fixtures
# =============================================================================


@pytest.fixture
def test_user(db: Session) -> User:
    """alice / a@x.com with password TEST_PASSWORD."""
    return create_user(db, username="alice", email="a@x.com")


@pytest.fixture
def auth_client(client: TestClient, test_user: User) -> TestClient:
    """Client holding a session cookie for test_user."""
    response = client.post(
        "/sessions/login",
        json={"login": test_user.username, "password": TEST_PASSWORD},
        headers={"user-agent": CHROME_WINDOWS_UA, "cf-connecting-ip": BERLIN_IP},
    )
    assert response.status_code == 200, response.text
    return client


# =============================================================================
# pytest markers
# =============================================================================


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers",
        "security: marks tests as security tests (deselect with '-m not security')",
    )
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
