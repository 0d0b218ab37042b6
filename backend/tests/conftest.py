"""Pytest configuration and shared fixtures."""

import os

# Settings are read at import time; these must be set before importing authcore
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-unit-tests-only-0123456789")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import datetime
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from authcore.core.database import Base
from authcore.crud.second_factor import SqlChallengeRepo, SqlCredentialRepo, SqlSecondFactorRepo
from authcore.crud.user import user_crud
from authcore.dependencies import build_orchestrator
from authcore.services.identity.base import DirectoryUser
from authcore.services.secret_cipher import SecretCipher

# StaticPool so in-memory SQLite shares one connection across the test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# RFC 6238 appendix B SHA-1 seed ("12345678901234567890") in base32
RFC6238_SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"


@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign keys for SQLite."""
    if hasattr(dbapi_conn, "execute"):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


class FrozenClock:
    """Callable clock the orchestrator reads instead of the wall clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    import authcore.models  # noqa: F401

    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> DirectoryUser:
    """Create an active directory user."""
    user = await user_crud.create(db_session, "alice@example.com")
    return DirectoryUser(id=user.id, email=user.email)


@pytest.fixture
def profile_repo(db_session: AsyncSession) -> SqlSecondFactorRepo:
    return SqlSecondFactorRepo(db_session)


@pytest.fixture
def credential_repo(db_session: AsyncSession) -> SqlCredentialRepo:
    return SqlCredentialRepo(db_session)


@pytest.fixture
def challenge_repo(db_session: AsyncSession) -> SqlChallengeRepo:
    return SqlChallengeRepo(db_session)


@pytest.fixture
def cipher() -> SecretCipher:
    return SecretCipher("unit-test-operator-secret")


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2033, 5, 18, 3, 33, 20))


@pytest.fixture
def orchestrator(db_session: AsyncSession, cipher: SecretCipher, clock: FrozenClock):
    """Orchestrator wired to the built-in directory with a frozen clock."""
    orch = build_orchestrator(db_session, cipher=cipher)
    orch.clock = clock
    return orch
