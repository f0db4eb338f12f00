"""
Centralized Test Configuration.
"""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from backend.app.main import app
from backend.app.db.session import get_db, Base
from backend.app.core.redis_client import get_redis
from backend.app.core.jwt import create_user_token
from backend.app.domain.payments.gateway import get_payment_gateway
from backend.app.models.enums import UserRole
from backend.app.models.item import Item
from backend.app.models.user import User
from backend.app.services.notification_service import (
    Channel,
    NotificationDispatcher,
    get_notification_dispatcher,
)
import backend.app.core.redis_client as redis_client_module
from factories import FakeGateway, RecordingChannel

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# Event handler to enable foreign keys for SQLite
from sqlalchemy import event
from sqlalchemy.pool import Pool

@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None, nx=False):
        if self._closed:
            raise ConnectionError("Redis is closed")
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def flushdb(self):
        if not self._closed:
            self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


# Redis Fixture (Session Scope)
@pytest.fixture(scope="session")
def redis_client_session():
    return MockRedis()


@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session):
    """Apply overrides once for the session.
    Global override is safer here than per-test override to avoid app state flux.
    """

    # Patch the global redis client used for notification dedupe
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_client_session

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return redis_client_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    yield

    # Restore and clear
    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture(autouse=True)
async def setup_database(redis_client_session):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await redis_client_session.flushdb()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def gateway():
    fake = FakeGateway()
    app.dependency_overrides[get_payment_gateway] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_payment_gateway, None)


@pytest.fixture
def email_channel():
    return RecordingChannel("email-test")


@pytest.fixture
def sms_channel():
    return RecordingChannel("sms-test")


@pytest.fixture
async def dispatcher(email_channel, sms_channel):
    instance = NotificationDispatcher(
        channels={Channel.EMAIL: email_channel, Channel.SMS: sms_channel},
        timeout=1.0,
        dedupe_ttl=3600,
    )
    app.dependency_overrides[get_notification_dispatcher] = lambda: instance
    yield instance
    await instance.drain()
    app.dependency_overrides.pop(get_notification_dispatcher, None)


@pytest.fixture
async def client(gateway, dispatcher):
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
def make_user(db_session):
    """Factory: persist a user and return (user, bearer headers)."""
    async def _make(username, role=UserRole.RENTER, email=None, phone=None, is_active=True):
        user = User(
            username=username,
            email=email if email is not None else f"{username}@test.com",
            phone=phone,
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        await db_session.commit()
        headers = {"Authorization": f"Bearer {create_user_token(user)}"}
        return user, headers

    return _make


@pytest.fixture
def make_item(db_session):
    async def _make(owner, title="Camera"):
        item = Item(owner_id=owner.id, title=title)
        db_session.add(item)
        await db_session.commit()
        return item

    return _make


@pytest.fixture
async def parties(make_user, make_item):
    """Owner with one item, a renter and an admin."""
    owner, owner_headers = await make_user("owner1", UserRole.OWNER, phone="+910000000001")
    renter, renter_headers = await make_user("renter1", UserRole.RENTER, phone="+910000000002")
    admin, admin_headers = await make_user("admin1", UserRole.ADMIN)
    item = await make_item(owner)
    return {
        "owner": owner, "owner_headers": owner_headers,
        "renter": renter, "renter_headers": renter_headers,
        "admin": admin, "admin_headers": admin_headers,
        "item": item,
    }
