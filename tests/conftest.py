"""
Pytest configuration for the application
"""
import datetime as dt
import os
from decimal import Decimal
from typing import AsyncGenerator, Awaitable, Callable, Dict
from uuid import uuid4

import httpx
import jwt
import pytest
import pytest_asyncio
from asgi_lifespan import LifespanManager
from fastapi import FastAPI
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from src.api.deps import get_subscription_engine
from src.core.config import settings
from src.db.base import Base
from src.db.models import AuditLogEntry, PaymentCycle, Subscription  # noqa: F401
from src.db.models.enums import BillingFrequency, RequestType
from src.db.session import build_session_factory
from src.main import create_application
from src.services import limits as limits_service
from src.services.clock import FixedClock
from src.services.engine import SubscriptionEngine


# Set test environment and override runtime settings to avoid external deps
os.environ["ENV"] = "test"
settings.ENV = "test"
settings.scheduler.enabled = False

API_PREFIX = f"{settings.API_PREFIX}/v1"
ACTOR_ID = "finance.approver@example.com"
START_OF_DAY = dt.datetime(2025, 1, 1, 9, 0, tzinfo=dt.timezone.utc)


@pytest_asyncio.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """
    File-backed SQLite engine, one database per test.

    Transactions start with BEGIN IMMEDIATE so concurrent writers queue on the
    database lock the way row locks queue them on PostgreSQL.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'engine.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(START_OF_DAY)


@pytest.fixture
def engine(session_factory, clock) -> SubscriptionEngine:
    return SubscriptionEngine(session_factory, clock=clock)


def subscription_values(**overrides) -> Dict:
    values = {
        "request_type": RequestType.INVOICE,
        "tool_name": "Figma",
        "vendor_name": "Figma Inc.",
        "department_id": uuid4(),
        "amount": Decimal("1200.00"),
        "currency": "INR",
        "billing_frequency": BillingFrequency.MONTHLY,
        "start_date": dt.date(2025, 1, 1),
    }
    values.update(overrides)
    return values


@pytest.fixture
def make_subscription(
    engine: SubscriptionEngine,
) -> Callable[..., Awaitable[Subscription]]:
    """Create a PENDING subscription through the engine."""

    async def _make(**overrides) -> Subscription:
        result = await engine.create_subscription(subscription_values(**overrides), ACTOR_ID)
        return result.unwrap()

    return _make


@pytest.fixture
def make_active_subscription(engine, make_subscription):
    """Create and approve a subscription, opening cycle #1."""

    async def _make(**overrides) -> Subscription:
        subscription = await make_subscription(**overrides)
        result = await engine.transition(subscription.id, "approve", ACTOR_ID)
        return result.unwrap()

    return _make


class FakeRedis:
    """Minimal async Redis stub for rate limiting and idempotency tests."""

    def __init__(self) -> None:
        self.store: Dict[str, int | str] = {}

    async def incr(self, key: str) -> int:
        current = int(self.store.get(key, 0)) + 1
        self.store[key] = current
        return current

    async def expire(self, key: str, seconds: int) -> None:
        self.store.setdefault(f"{key}:ttl", seconds)

    async def set(self, key: str, value: str, ex: int | None = None, nx: bool = False) -> bool:
        if nx and key in self.store:
            return False
        self.store[key] = value
        if ex is not None:
            self.store[f"{key}:ttl"] = ex
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.store.pop(f"{key}:ttl", None)
        return removed


@pytest.fixture
def fake_redis(monkeypatch) -> FakeRedis:
    """Patch the limits module to use an in-memory Redis stub."""

    fake = FakeRedis()
    monkeypatch.setattr(limits_service, "_redis_client", fake, raising=False)
    yield fake
    monkeypatch.setattr(limits_service, "_redis_client", None, raising=False)


def build_auth_header(actor_id: str = ACTOR_ID) -> Dict[str, str]:
    token = jwt.encode({"sub": actor_id}, settings.JWT_SECRET, algorithm=settings.JWT_ALG)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def test_app(engine: SubscriptionEngine) -> AsyncGenerator[FastAPI, None]:
    """
    Create a FastAPI test application bound to the test engine.
    """
    app = create_application()
    app.dependency_overrides[get_subscription_engine] = lambda: engine
    async with LifespanManager(app):
        yield app


@pytest_asyncio.fixture
async def client(test_app: FastAPI, fake_redis) -> AsyncGenerator[httpx.AsyncClient, None]:
    """
    Create an async HTTP client for testing.
    """
    transport = httpx.ASGITransport(app=test_app)
    async with httpx.AsyncClient(
        transport=transport,
        base_url="http://test",
    ) as client:
        yield client
