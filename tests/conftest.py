"""
Test Configuration
==================
Pytest fixtures for APImetrics tests.
"""

import asyncio
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from backend.api.deps import get_dispatcher
from backend.database import get_session
from backend.main import app
from backend.models.base import Base
from backend.schemas.usage import TrackedCall
from backend.services.notifications import NotificationDispatcher

# Test database URL (use SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite://"

# Fixed evaluation time for alert tests
NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


def ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


class FakeSender:
    """Records deliveries; can be told to fail or hang per channel."""

    def __init__(self):
        self.emails: list[tuple[str, str, str]] = []
        self.webhooks: list[tuple[str, dict[str, Any]]] = []
        self.fail_email: Exception | None = None
        self.fail_webhook: Exception | None = None
        self.hang_webhook = False
        self.closed = False

    async def send_email(self, address: str, subject: str, body: str) -> None:
        if self.fail_email:
            raise self.fail_email
        self.emails.append((address, subject, body))

    async def post_webhook(self, url: str, message: dict[str, Any]) -> None:
        if self.hang_webhook:
            await asyncio.sleep(60)
        if self.fail_webhook:
            raise self.fail_webhook
        self.webhooks.append((url, message))

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
async def test_engine():
    """Create a fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def test_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def session_context(session_factory) -> Callable[[], Any]:
    """Job-style session factory backed by the test database."""

    @asynccontextmanager
    async def factory() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    return factory


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def fake_sender() -> FakeSender:
    return FakeSender()


@pytest.fixture
def dispatcher(fake_sender) -> NotificationDispatcher:
    return NotificationDispatcher(fake_sender, timeout=0.5)


@pytest.fixture
async def client(test_session, dispatcher) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Create API client with database session and dispatcher overrides."""

    async def override_get_session():
        yield test_session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"X-User-Id": "user-1"},
    ) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def make_call() -> Callable[..., dict[str, Any]]:
    """Build a call in the SDK's camelCase wire format."""

    def factory(call_id: str, **overrides: Any) -> dict[str, Any]:
        call = {
            "id": call_id,
            "timestamp": ms(NOW - timedelta(minutes=5)),
            "provider": "openai",
            "model": "gpt-4o",
            "endpoint": "chat.completions",
            "inputTokens": 100,
            "outputTokens": 50,
            "totalTokens": 150,
            "cost": 0.5,
            "latency": 200,
            "status": "success",
        }
        call.update(overrides)
        return call

    return factory


@pytest.fixture
def tracked(make_call) -> Callable[..., TrackedCall]:
    """Build a validated ``TrackedCall``."""

    def factory(call_id: str, **overrides: Any) -> TrackedCall:
        return TrackedCall.model_validate(make_call(call_id, **overrides))

    return factory
