"""Pytest configuration and shared fixtures."""

import pytest
from fakeredis import FakeServer
from fakeredis import aioredis as fake_aioredis
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from app.cache.layer import CacheLayer
from app.core.config import Settings
from app.core.security import TokenSigner, hash_password
from app.models import User, UserRole
from app.services.auth_service import AuthService
from app.services.event_log_service import EventLogService
from app.services.task_service import TaskService
from app.services.user_service import UserService

from tests.fakes import TEST_PASSWORD, RecordingBroadcaster


@pytest.fixture
def settings() -> Settings:
    """Settings with no Redis, a fixed secret and the cheapest bcrypt cost."""
    return Settings(
        database_url="sqlite+aiosqlite://",
        redis_dsn="",
        secret_key="test-secret",
        bcrypt_rounds=4,
    )


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db(engine):
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest.fixture
def cache(settings) -> CacheLayer:
    """L1-only cache layer."""
    return CacheLayer(settings)


@pytest.fixture
def redis_settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite://",
        redis_dsn="redis://cache:6379/0",
        secret_key="test-secret",
        bcrypt_rounds=4,
    )


@pytest.fixture
def redis_server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def make_redis_cache(redis_settings, redis_server):
    """Factory for cache layers sharing one in-memory Redis, as workers do."""

    def _make() -> CacheLayer:
        layer = CacheLayer(redis_settings)
        layer._redis = fake_aioredis.FakeRedis(server=redis_server, decode_responses=True)
        return layer

    return _make


@pytest.fixture
def redis_cache(make_redis_cache) -> CacheLayer:
    return make_redis_cache()


@pytest.fixture
def broadcaster() -> RecordingBroadcaster:
    return RecordingBroadcaster()


@pytest.fixture
def events(db) -> EventLogService:
    return EventLogService(db)


@pytest.fixture
def task_service(db, cache, events, broadcaster) -> TaskService:
    return TaskService(db, cache, events, broadcaster)


@pytest.fixture
def signer(settings) -> TokenSigner:
    return TokenSigner(settings.secret_key, max_age=settings.access_token_ttl_seconds)


@pytest.fixture
def auth_service(db, signer) -> AuthService:
    return AuthService(db, signer, bcrypt_rounds=4)


@pytest.fixture
def user_service(db) -> UserService:
    return UserService(db)


@pytest.fixture
def make_user(db):
    """Factory that inserts a user directly into the store."""

    async def _make(email: str, role: UserRole = UserRole.USER) -> User:
        user = User(email=email, password_hash=hash_password(TEST_PASSWORD, rounds=4), role=role)
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user

    return _make


@pytest.fixture
async def alice(make_user) -> User:
    return await make_user("alice@example.com")


@pytest.fixture
async def bob(make_user) -> User:
    return await make_user("bob@example.com")


@pytest.fixture
async def admin(make_user) -> User:
    return await make_user("admin@example.com", role=UserRole.ADMIN)
