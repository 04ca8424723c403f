"""
Pytest configuration and fixtures for push service tests.

This module provides the core testing infrastructure including:
- An in-memory SQLite database with the push tables created from metadata
- A file-backed SQLite database for tests that need separate connections
- Session fixtures for database access
- Test client for API integration tests, with host auth and content faked
"""

from collections.abc import AsyncGenerator
from typing import Optional

import pytest
from fastapi import Request
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool, StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from push_service.api.deps import get_current_user_id
from push_service.core.config import Settings
from push_service.db import base  # noqa: F401  # ensure models are imported for metadata
from push_service.db.session import get_session
from push_service.main import app
from push_service.testing import TEST_USER_HEADER, FakeContentSource

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="function")
async def engine():
    """
    Create a fresh in-memory database for each test.

    StaticPool keeps every session on the same connection so they all see
    the same in-memory database.
    """
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest.fixture(scope="function")
async def file_session_factory(tmp_path):
    """
    Session factory over a SQLite file, one connection per session.

    Sessions opened from it hold separate connections, so they can run
    statements concurrently the way independent workers do.
    """
    file_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'push.db'}",
        echo=False,
        future=True,
        poolclass=NullPool,
    )
    async with file_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield sessionmaker(
        bind=file_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    await file_engine.dispose()


@pytest.fixture(scope="function")
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for the test."""
    async with session_factory() as test_session:
        yield test_session
        test_session.expire_all()


@pytest.fixture
def test_settings() -> Settings:
    """Settings with small limits so edge cases are cheap to reach."""
    return Settings(
        _env_file=None,
        DATABASE_URL=TEST_DATABASE_URL,
        PUSH_MAX_TOKENS_PER_USER=2,
        PUSH_QUEUE_BATCH_SIZE=10,
        PUSH_QUEUE_MAX_ATTEMPTS=3,
        PUSH_WORKER_ENABLED=False,
    )


@pytest.fixture
def content_source() -> FakeContentSource:
    return FakeContentSource()


@pytest.fixture
async def client(
    session: AsyncSession,
    content_source: FakeContentSource,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an async HTTP client for testing API endpoints.

    This fixture:
    - Overrides the database session dependency to use the test session
    - Replaces host authentication with the X-Test-User-Id header
    - Installs a FakeContentSource on the app state

    Usage:
        async def test_endpoint(client: AsyncClient):
            response = await client.get("/api/v1/push/subscriptions/status", params=...)
            assert response.status_code == 200
    """

    async def override_get_session() -> AsyncGenerator[AsyncSession, None]:
        yield session

    async def override_get_current_user_id(request: Request) -> Optional[int]:
        value = request.headers.get(TEST_USER_HEADER)
        return int(value) if value else None

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_current_user_id] = override_get_current_user_id
    app.state.content_source = content_source

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    app.state.content_source = None
