"""Shared pytest fixtures for all test suites."""

import os
from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from backend.chatbot.config import Settings, get_settings
from backend.chatbot.db.engine import (
    create_session_factory,
    enable_sqlite_foreign_keys,
    get_sessionmaker,
)
from backend.chatbot.db.models import Base
from backend.chatbot.db.queries import create_user
from backend.chatbot.llm.client import DeterministicStubClient, get_llm_client
from backend.chatbot.main import app
from backend.chatbot.models import User
from backend.chatbot.security import create_access_token


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        jwt_secret="test-secret",
        openai_api_key=None,
    )


@pytest_asyncio.fixture
async def test_engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    """SQLite file database with foreign keys enforced."""
    assert test_settings.database_url is not None
    engine = create_async_engine(test_settings.database_url, poolclass=NullPool, echo=False)
    enable_sqlite_foreign_keys(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(test_engine)


@pytest_asyncio.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def user(session_factory: async_sessionmaker[AsyncSession]) -> User:
    """A registered user (password: "p1")."""
    async with session_factory() as session:
        return await create_user(session, "owner@example.com", "p1")


@pytest_asyncio.fixture
async def other_user(session_factory: async_sessionmaker[AsyncSession]) -> User:
    async with session_factory() as session:
        return await create_user(session, "other@example.com", "p2")


@pytest.fixture
def auth_headers(test_settings: Settings) -> Callable[[User], dict[str, str]]:
    """Build a bearer header for a user."""

    def build(user: User) -> dict[str, str]:
        token = create_access_token(test_settings, user_id=user.id, email=user.email)
        return {"Authorization": f"Bearer {token}"}

    return build


@pytest_asyncio.fixture
async def client(
    test_settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app, wired to the test database and stub model."""
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_sessionmaker] = lambda: session_factory
    app.dependency_overrides[get_llm_client] = lambda: DeterministicStubClient()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def postgres_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create async engine for PostgreSQL integration tests.

    Requires DATABASE_URL to be set to a real PostgreSQL connection string.
    Tests using this fixture should be marked with @pytest.mark.postgres.
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set - skipping postgres test")

    # Ensure it's a postgres URL
    if not database_url.startswith(("postgresql://", "postgresql+asyncpg://")):
        pytest.skip(f"DATABASE_URL is not PostgreSQL: {database_url}")

    # Convert to async driver if needed
    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    engine = create_async_engine(database_url, poolclass=NullPool, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()
