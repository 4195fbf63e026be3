import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./.lineup-test.db")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")

from datetime import date, datetime, time, timezone

import fakeredis
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from lineup.app.core import redis_client as redis_module
from lineup.app.core.clock import FixedClock, get_clock
from lineup.app.db.session import get_session, get_session_factory
from lineup.app.db.tables import hours_rule, metadata, restaurant
from lineup.app.main import app
from lineup.app.services.availability.engine import AvailabilityEngine
from lineup.app.services.ledger.service import ReservationLedger
from lineup.app.services.ledger.store import LedgerStore
from lineup.app.services.restaurant_config import RestaurantConfig, ServiceHours


RESTAURANT_ID = "demo-bistro"
RESTAURANT_TZ = "America/New_York"
# Wednesday; New York is on EST (-05:00) after the November DST switch.
SERVICE_DAY = date(2025, 11, 5)
# Tuesday 12:00 in New York, a day ahead of SERVICE_DAY.
NOW = datetime(2025, 11, 4, 17, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    try:
        yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    finally:
        await engine.dispose()


@pytest.fixture
def store(session_factory) -> LedgerStore:
    return LedgerStore(session_factory)


@pytest.fixture
def ledger(store, clock) -> ReservationLedger:
    return ReservationLedger(store, clock)


@pytest.fixture
def availability_engine(ledger, clock) -> AvailabilityEngine:
    return AvailabilityEngine(ledger, clock)


@pytest.fixture
def restaurant_config() -> RestaurantConfig:
    """50 seats, 90 minute turns, open 11:00-22:00 every day."""
    return RestaurantConfig(
        total_seats=50,
        avg_dining_duration=90,
        timezone=RESTAURANT_TZ,
        hours={weekday: ServiceHours(open=time(11, 0), close=time(22, 0)) for weekday in range(7)},
    )


@pytest_asyncio.fixture
async def seeded_restaurant(session_factory) -> str:
    async with session_factory() as session:
        async with session.begin():
            await session.execute(
                insert(restaurant).values(
                    id=RESTAURANT_ID,
                    name="Demo Bistro",
                    timezone=RESTAURANT_TZ,
                    total_seats=50,
                    avg_dining_minutes=90,
                )
            )
            # Closed on Mondays.
            for day in range(1, 7):
                await session.execute(
                    insert(hours_rule).values(
                        restaurant_id=RESTAURANT_ID,
                        day_of_week=day,
                        open_time=time(11, 0),
                        close_time=time(22, 0),
                    )
                )
    return RESTAURANT_ID


@pytest_asyncio.fixture
async def fake_redis():
    redis = fakeredis.FakeAsyncRedis(decode_responses=True)
    redis_module.redis_client = redis
    try:
        yield redis
    finally:
        redis_module.redis_client = None
        await redis.aclose()


@pytest_asyncio.fixture
async def client(session_factory, clock, fake_redis):
    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_clock] = lambda: clock

    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as http:
            yield http
    finally:
        app.dependency_overrides.clear()
