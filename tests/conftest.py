"""Shared test fixtures."""

from datetime import datetime, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from beacon.db.base import Base
# Import all models to register with Base.metadata
import beacon.db.models  # noqa: F401
from beacon.models.enums import NotificationChannel
from beacon.services.delivery import SendResult
from beacon.services.notification_service import NotificationService

# A Wednesday, mid-morning UTC: outside default quiet hours and not a weekend
T0 = datetime(2025, 3, 12, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
async def db_engine():
    """Create an in-memory SQLite async engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(db_engine):
    """Create a test database session."""
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def notification_service(db_session):
    return NotificationService(db_session, max_attempts=3, now_fn=lambda: T0)


class FakeSender:
    """Records sends; fails while ``failures`` is positive."""

    def __init__(self, channel: NotificationChannel, failures: int = 0):
        self.channel = channel
        self.failures = failures
        self.sent: list[str] = []
        self.digests: list[tuple] = []

    async def send(self, notification, recipient) -> SendResult:
        if self.failures > 0:
            self.failures -= 1
            return SendResult(ok=False, error="provider down")
        self.sent.append(notification.notification_id)
        return SendResult(ok=True, provider_id=f"msg_{len(self.sent)}")

    async def send_html(self, recipient, subject, html) -> SendResult:
        if self.failures > 0:
            self.failures -= 1
            return SendResult(ok=False, error="provider down")
        self.digests.append((recipient.user_id if recipient else None, subject, html))
        return SendResult(ok=True, provider_id=f"digest_{len(self.digests)}")


@pytest.fixture
def fake_senders():
    return {channel: FakeSender(channel) for channel in NotificationChannel}


@pytest.fixture
def app(db_engine, fake_senders):
    """Create a test application instance with in-memory DB."""
    from beacon.main import create_app

    _app = create_app()
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    _app.state.db_engine = db_engine
    _app.state.db_session_factory = session_factory
    _app.state.redis = None
    _app.state.senders = fake_senders
    return _app


@pytest.fixture
async def client(app):
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
