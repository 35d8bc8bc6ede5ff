"""
Shared fixtures: in-memory SQLite for fast tests, fake Redis and mail.
"""

from __future__ import annotations

import os

# Settings are read at import time by app.core.database / app.core.redis
os.environ.setdefault("HS_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("HS_PUBLIC_BASE_URL", "https://status.test")
os.environ.setdefault("HS_LOG_FORMAT", "text")

import uuid
from datetime import datetime, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

import app.models  # noqa: F401  (registers every table on SQLModel.metadata)
from app.core.database import get_session
from app.core.errors import DeliveryError
from app.models.organization import Organization
from app.models.subscriber import Subscriber
from app.services.catalog import create_service
from app.services.notifications import NotificationDispatcher, get_dispatcher
from heystatus_shared.schemas.services import ServiceCreate

BASE_URL = "https://status.test"


def at(hour: int, minute: int = 0, day: int = 1, month: int = 3, second: int = 0) -> datetime:
    """Fixed UTC instants for scenario tests (2026-03-01 by default)."""
    return datetime(2026, month, day, hour, minute, second, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the feed cache and pub/sub."""

    def __init__(self):
        self.values: dict[str, str] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.published: list[tuple[str, str]] = []

    async def get(self, key):
        return self.values.get(key)

    async def set(self, key, value, ex=None):
        self.values[key] = value
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            removed += int(self.values.pop(key, None) is not None)
            removed += int(self.hashes.pop(key, None) is not None)
        return removed

    async def hmget(self, key, fields):
        stored = self.hashes.get(key, {})
        return [stored.get(f) for f in fields]

    async def hset(self, key, mapping=None):
        stored = self.hashes.setdefault(key, {})
        for field, value in (mapping or {}).items():
            stored[field] = str(value)
        return len(mapping or {})

    async def publish(self, channel, message):
        self.published.append((channel, message))
        return 1

    async def ping(self):
        return True


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    fake = FakeRedis()

    async def _get_redis():
        return fake

    for target in (
        "app.core.events.get_redis",
        "app.services.status_feed.get_redis",
        "app.main.get_redis",
    ):
        monkeypatch.setattr(target, _get_redis)
    return fake


# ---------------------------------------------------------------------------
# Mail
# ---------------------------------------------------------------------------


class FakeMailSender:
    """Records sends; addresses in ``failing`` raise DeliveryError."""

    def __init__(self, failing: tuple[str, ...] = ()):
        self.failing = set(failing)
        self.sent: list[dict] = []

    async def send(self, to_addresses, subject, html_body):
        if any(addr in self.failing for addr in to_addresses):
            raise DeliveryError(f"rejected {to_addresses[0]}")
        self.sent.append({"to": list(to_addresses), "subject": subject, "html": html_body})


@pytest.fixture
def mail_sender():
    return FakeMailSender()


@pytest.fixture
def dispatcher(session_factory, mail_sender):
    return NotificationDispatcher(session_factory, mail_sender, BASE_URL, concurrency=2)


# ---------------------------------------------------------------------------
# Domain helpers
# ---------------------------------------------------------------------------


@pytest.fixture
async def org(session):
    org = Organization(name="Acme", slug="acme")
    session.add(org)
    await session.commit()
    return org


@pytest.fixture
def make_service(session, org):
    async def _make(name: str = "API", created: datetime | None = None):
        service = await create_service(
            session, ServiceCreate(name=name), org.id, now=created or at(0)
        )
        await session.commit()
        return service

    return _make


@pytest.fixture
def make_subscribers(session, org):
    async def _make(*emails: str):
        subs = [Subscriber(organization_id=org.id, email=e) for e in emails]
        session.add_all(subs)
        await session.commit()
        return subs

    return _make


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


@pytest.fixture
async def client(session_factory, mail_sender):
    from app.main import app

    async def _session():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_dispatcher] = lambda: NotificationDispatcher(
        session_factory, mail_sender, BASE_URL, concurrency=2
    )
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def actor_headers():
    return {"X-Actor-Id": str(uuid.uuid4())}
