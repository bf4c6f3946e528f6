"""
Test Suite Configuration

Every test gets its own file-backed SQLite database. NullPool hands each
session a fresh connection, so concurrent transactions really conflict.
"""
from datetime import datetime, timezone
from typing import AsyncGenerator

import pytest
from redis import exceptions as redis_errors
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from carwash.database.connection import create_session_factory
from carwash.database.models import Base
from carwash.kiosk.service import KioskService
from carwash.members import (
    LoyaltyRepository,
    MemberStore,
    PrepaidRepository,
    SubscriptionRepository,
)
from carwash.visits.aggregation import VisitAggregator

NOW = datetime(2026, 10, 19, 15, 30, tzinfo=timezone.utc)
TODAY_KEY = "2026-10-19"


class UnreachableRedis:
    """Client whose every command fails as if the server went away"""

    async def ping(self):
        raise redis_errors.ConnectionError("Connection refused")

    async def get(self, key):
        raise redis_errors.ConnectionError("Connection refused")

    async def set(self, key, value, ex=None):
        raise redis_errors.ConnectionError("Connection refused")

    async def delete(self, *keys):
        raise redis_errors.ConnectionError("Connection refused")

    async def scan_iter(self, match=None):
        raise redis_errors.ConnectionError("Connection refused")
        yield


@pytest.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create test database engine"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'carwash.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(test_engine)


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def aggregator(session_factory, clock) -> VisitAggregator:
    """Aggregator on a fixed clock with room for heavy contention"""
    return VisitAggregator(session_factory, clock=clock, max_attempts=500, backoff_ms=2)


@pytest.fixture
def subscriptions(session_factory) -> SubscriptionRepository:
    return SubscriptionRepository(session_factory)


@pytest.fixture
def loyalty(session_factory) -> LoyaltyRepository:
    return LoyaltyRepository(session_factory)


@pytest.fixture
def prepaid(session_factory) -> PrepaidRepository:
    return PrepaidRepository(session_factory)


@pytest.fixture
def store(subscriptions, loyalty, prepaid) -> MemberStore:
    return MemberStore(subscriptions, loyalty, prepaid)


@pytest.fixture
def kiosk(store, aggregator) -> KioskService:
    return KioskService(store, aggregator, free_wash_interval=10)


@pytest.fixture
def sample_subscription() -> dict:
    return {
        "id": "B123",
        "name": "Dana Whitman",
        "car": "Blue Subaru Outback",
        "is_active": True,
        "valid_payment": True,
        "notes": "",
        "email": "dana@example.com",
    }


@pytest.fixture
def sample_loyalty() -> dict:
    return {
        "id": "L1001",
        "name": "Sam Ortiz",
        "issue_date": "2026-01-05",
        "last_visit_date": "2026-10-01",
        "visit_count": 3,
    }


@pytest.fixture
def sample_prepaid() -> dict:
    return {
        "id": "DB101",
        "name": "Kit Larsen",
        "tier": "D",
        "issue_date": "2026-03-14",
        "prepaid_washes": 3,
    }
