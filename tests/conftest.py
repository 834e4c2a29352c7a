"""Pytest configuration and shared fixtures."""

import os
import time
from unittest.mock import AsyncMock, MagicMock

# Set required environment variables for testing BEFORE importing app
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("NEO4J_ENABLED", "false")
os.environ.setdefault("AUTH_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("ENVIRONMENT", "test")

import jwt
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from quest_core.core.database import Base
from quest_core.database import models  # noqa: F401  registers tables on Base.metadata
from quest_core.database.models import User
from quest_core.main import app


@pytest.fixture
def test_client() -> TestClient:
    """Create FastAPI test client.

    Returns:
        TestClient: FastAPI test client instance
    """
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


@pytest_asyncio.fixture
async def db_engine():
    """In-memory SQLite engine with the full schema."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def user(db_session) -> User:
    """A committed local user."""
    record = User(external_user_id="auth|alice", email="alice@example.com", full_name="Alice")
    db_session.add(record)
    await db_session.commit()
    return record


@pytest_asyncio.fixture
async def other_user(db_session) -> User:
    record = User(external_user_id="auth|bob", email="bob@example.com", full_name="Bob")
    db_session.add(record)
    await db_session.commit()
    return record


@pytest.fixture
def mock_graph_client() -> MagicMock:
    """Graph client double recording every Cypher statement it receives."""
    client = MagicMock()
    client.execute_write_query = AsyncMock(return_value={})
    client.run_read_query = AsyncMock(return_value=[])
    return client


@pytest.fixture
def make_token():
    """Sign a bearer token with the test secret."""

    def _make(sub: str = "auth|alice", **claims) -> str:
        payload = {"sub": sub, "exp": int(time.time()) + 3600, "aud": "authenticated", **claims}
        return jwt.encode(payload, os.environ["AUTH_JWT_SECRET"], algorithm="HS256")

    return _make
