"""
NodeBase Backend: Test Configuration (conftest.py)
===================================================

What:  Shared pytest fixtures for the whole suite.
How:   Environment variables are set before any `nodebase` import so the
       module-level settings (and the module-level app) never point at a
       real database. App-level tests run against an in-memory SQLite
       database (aiosqlite + StaticPool) created per test.

Fixture Hierarchy (all function-scoped):
    ├── mock_db_session:  AsyncMock standing in for AsyncSession
    ├── test_settings:    Settings with test-friendly values
    ├── database:         fresh in-memory database with tables created
    ├── app:              create_app(settings, database)
    ├── test_client:      httpx AsyncClient over ASGITransport
    ├── create_users:     helper that inserts N users
    └── signed_in_client: test_client with a signed-in session
"""

import os

# Override settings for testing BEFORE any app imports
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["SESSION_SECRET"] = "test-session-secret-not-real"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["STORE_RETRY_MIN_WAIT"] = "0"
os.environ["STORE_RETRY_MAX_WAIT"] = "0"
os.environ["QUERY_RETRY_DELAY"] = "0"
os.environ["QUERY_MAX_RETRY_DELAY"] = "0"

from typing import Awaitable, Callable, List
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.pool import StaticPool

from nodebase.config import Settings
from nodebase.database import Database
from nodebase.main import create_app
from nodebase.models.user import User
from nodebase.security import hash_password

from helpers import TEST_PASSWORD


@pytest.fixture
def mock_db_session():
    """
    A mock async database session.

    Usage:
        async def test_list(mock_db_session):
            mock_db_session.execute.return_value.scalars.return_value.all.return_value = []
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def test_settings():
    return Settings()


@pytest_asyncio.fixture
async def database():
    """In-memory SQLite shared across sessions through a single connection."""
    db = Database(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def app(test_settings, database):
    return create_app(settings=test_settings, database=database)


@pytest_asyncio.fixture
async def test_client(app):
    """
    HTTPX AsyncClient wired straight to the ASGI app (no server).

    Redirects are not followed so tests can assert on 303 responses.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def create_users(database) -> Callable[..., Awaitable[List[User]]]:
    """
    Returns `await create_users(n)`: inserts n users and returns them.

    Emails continue across calls (user1@, user2@, ...) so repeated calls
    never collide.
    """
    created = 0

    async def _create(count: int, password: str = TEST_PASSWORD) -> List[User]:
        nonlocal created
        users = [
            User(
                email=f"user{i}@example.com",
                name=f"User {i}",
                password_hash=hash_password(password),
            )
            for i in range(created + 1, created + count + 1)
        ]
        created += count
        async with database.session_factory() as session:
            session.add_all(users)
            await session.commit()
        return users

    return _create


@pytest_asyncio.fixture
async def signed_in_client(test_client, create_users):
    """test_client after signing in as user1@example.com."""
    await create_users(1)
    response = await test_client.post(
        "/login",
        data={"email": "user1@example.com", "password": TEST_PASSWORD},
    )
    assert response.status_code == 303
    assert response.headers["location"] == "/"
    return test_client
