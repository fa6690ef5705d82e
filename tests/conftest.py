"""
Top-level pytest configuration for the TaskFlow API.

The settings instance in api_config.py is created at module load time from environment variables,
so they have to be set here before anything from taskflow_api is imported.

Every test gets its own in-memory SQLite database and in-process ExpiringStore,
so no docker services are needed to run the unit tests.
"""

import os

os.environ.setdefault("TASKFLOW_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs512-signing-0123456789abcdef")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import timedelta  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from pydantic import SecretStr  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from taskflow_api.crud.users import create_user  # noqa: E402
from taskflow_api.kv_store import InMemoryExpiringStore  # noqa: E402
from taskflow_api.models import Base, Role  # noqa: E402
from taskflow_api.schemas.users import UserCreate  # noqa: E402
from taskflow_api.security import TokenService  # noqa: E402
from taskflow_api.throttling import LoginThrottle  # noqa: E402

TEST_SECRET_KEY = SecretStr(os.environ["JWT_SECRET_KEY"])
DEFAULT_PASSWORD = "correct-horse-battery"


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def store():
    return InMemoryExpiringStore()


@pytest.fixture
def token_service(store):
    return TokenService(store=store, secret_key=TEST_SECRET_KEY)


@pytest.fixture
def throttle(store):
    return LoginThrottle(store=store, max_failed_attempts=5, lock_duration=timedelta(minutes=30))


@pytest.fixture
def make_user(db):
    """Factory fixture, creates a user (with DEFAULT_PASSWORD unless given)."""

    async def _make_user(
        username: str, roles: set[Role] | None = None, email: str | None = None, password: str = DEFAULT_PASSWORD
    ):
        user_data = UserCreate(
            username=username,
            email=email or f"{username}@example.com",
            password=SecretStr(password),
            roles=roles,
        )
        return await create_user(db=db, user_data=user_data)

    return _make_user
