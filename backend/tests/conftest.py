"""
Test Configuration — Fixtures for async DB, test client, and mock data.

Each test gets a fresh in-memory SQLite database. StaticPool keeps every
session in a test on the same connection so they see the same database.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "test")

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from api.deps import get_db, get_notifier
from api.main import app
from db.alert_store import AlertStore
from db.session import Base

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Fixed "now" for every clock-dependent test.
NOW = datetime(2026, 3, 2, 12, 0, 0)


class FakeNotifier:
    """Records notifications instead of sending email."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[dict] = []
        self.admin_calls: list[dict] = []

    async def notify(self, recipient, subject, title, body, priority):
        if self.fail:
            raise RuntimeError("smtp unavailable")
        self.sent.append(
            {"recipient": recipient, "subject": subject, "title": title, "body": body, "priority": priority}
        )
        return True

    async def notify_admins(self, title, body, priority="high"):
        if self.fail:
            raise RuntimeError("smtp unavailable")
        self.admin_calls.append({"title": title, "body": body, "priority": priority})
        return 1


@pytest.fixture
async def test_engine():
    """Create a test database engine and build all tables."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def test_db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(test_db):
    return AlertStore(test_db)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def make_order(test_db):
    """Factory for orders positioned relative to NOW."""
    from db.models import Order

    async def _make(
        order_number: str = "ORD-1",
        *,
        order_id: str | None = None,
        status: str = "received",
        payment_status: str = "unpaid",
        ship_in_days: float | None = None,
        updated_days_ago: float = 0,
        total_value: str = "1000.00",
    ) -> Order:
        order = Order(
            id=order_id or order_number,
            order_number=order_number,
            status=status,
            payment_status=payment_status,
            total_value=Decimal(total_value),
            estimated_delivery=NOW + timedelta(days=ship_in_days) if ship_in_days is not None else None,
            created_at=NOW - timedelta(days=30),
            updated_at=NOW - timedelta(days=updated_days_ago),
        )
        test_db.add(order)
        await test_db.commit()
        return order

    return _make


@pytest.fixture
def make_material(test_db):
    from db.models import Material

    async def _make(name: str = "Oak Railing", *, stock: int = 50, threshold: int = 10, unit: str = "sets"):
        material = Material(
            name=name,
            category="Railings",
            current_stock=stock,
            max_stock=200,
            threshold=threshold,
            unit=unit,
        )
        test_db.add(material)
        await test_db.commit()
        return material

    return _make


@pytest.fixture
async def client(test_db, notifier):
    """Create an async test client with dependency overrides."""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
