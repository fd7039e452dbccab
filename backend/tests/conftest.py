"""Pytest configuration and fixtures for TaskHub tests.

Each test gets a fresh in-memory SQLite database (aiosqlite), a recording
notifier in place of the WebSocket fan-out, and JWT headers for one
manager and two plain users.
"""

import os

# Settings are read at import time; point them at SQLite before the app loads
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("DEBUG", "false")

from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.auth.jwt import create_access_token
from app.database import Base, get_db
from app.main import app
from app.models import User, UserRole
from app.services.notifier import get_notifier


class RecordingNotifier:
    """Notifier that keeps every broadcast for inspection."""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []

    async def broadcast(self, event: str, payload: Any) -> None:
        self.events.append((event, payload))

    def names(self) -> list[str]:
        return [event for event, _ in self.events]


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """Fresh in-memory database shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # SQLite does not enforce foreign keys by default
    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for direct service-level tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest_asyncio.fixture
async def client(session_factory, notifier) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with overridden database and notifier dependencies."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Test Data Fixtures ───────────────────────────────────────────

async def _add_user(session_factory, name: str, email: str, role: UserRole, **kwargs) -> User:
    async with session_factory() as session:
        user = User(name=name, email=email, role=role, **kwargs)
        session.add(user)
        await session.commit()
        return user


@pytest_asyncio.fixture
async def manager(session_factory) -> User:
    return await _add_user(session_factory, "Maya Manager", "maya@example.com", UserRole.MANAGER)


@pytest_asyncio.fixture
async def other_manager(session_factory) -> User:
    return await _add_user(session_factory, "Omar Manager", "omar@example.com", UserRole.MANAGER)


@pytest_asyncio.fixture
async def user_a(session_factory) -> User:
    return await _add_user(session_factory, "Ana User", "ana@example.com", UserRole.USER)


@pytest_asyncio.fixture
async def user_b(session_factory) -> User:
    return await _add_user(session_factory, "Ben User", "ben@example.com", UserRole.USER)


@pytest_asyncio.fixture
async def inactive_user(session_factory) -> User:
    return await _add_user(
        session_factory, "Ivy Inactive", "ivy@example.com", UserRole.USER, is_active=False
    )


def _headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role.value)}"}


@pytest.fixture
def manager_headers(manager: User) -> dict:
    return _headers(manager)


@pytest.fixture
def other_manager_headers(other_manager: User) -> dict:
    return _headers(other_manager)


@pytest.fixture
def user_a_headers(user_a: User) -> dict:
    return _headers(user_a)


@pytest.fixture
def user_b_headers(user_b: User) -> dict:
    return _headers(user_b)


@pytest.fixture
def make_task(client: AsyncClient, manager_headers: dict, user_a: User):
    """POST a task as the manager, assigned to user A unless overridden."""

    async def _make(headers: dict | None = None, **fields) -> dict:
        body = {
            "title": "Write release notes",
            "description": "Summarize the changes for 1.4",
            "assignedTo": user_a.id,
            **fields,
        }
        response = await client.post("/api/tasks", json=body, headers=headers or manager_headers)
        assert response.status_code == 201, response.text
        return response.json()["task"]

    return _make


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: HTTP API tests")
    config.addinivalue_line("markers", "realtime: WebSocket and notifier tests")
