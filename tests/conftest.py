"""
Shared fixtures: a throwaway SQLite database per test, a pinned clock,
a notification sink that records instead of publishing, and row factories.
"""
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from ridematch.clock import FixedClock
from ridematch.database import Base
from ridematch.models import Driver, DriverSchedule, Junction, RideRequest, RoutePrice
from ridematch.services.notifications import Notice

MONDAY_0940 = datetime(2025, 1, 6, 9, 40, tzinfo=timezone.utc)


class RecordingSink:
    def __init__(self, fail_for: set[str] | None = None):
        self.sent: list[Notice] = []
        self.fail_for = fail_for or set()

    async def notify(self, recipient_id: str, title: str, body: str, payload: dict) -> None:
        if recipient_id in self.fail_for:
            raise ConnectionError("push gateway unreachable")
        self.sent.append(Notice(recipient_id, title, body, payload))

    def to(self, recipient_id: str) -> list[Notice]:
        return [n for n in self.sent if n.recipient_id == recipient_id]


class Factory:
    """Inserts rows in their own committed transaction and hands them back detached."""

    def __init__(self, session_factory, clock: FixedClock):
        self.session_factory = session_factory
        self.clock = clock

    async def _save(self, obj):
        async with self.session_factory() as session:
            session.add(obj)
            await session.commit()
        return obj

    async def junction(self, name: str | None = None, lat: float | None = None, lng: float | None = None) -> Junction:
        return await self._save(Junction(name=name or f"Junction {uuid.uuid4().hex[:6]}", lat=lat, lng=lng))

    async def route_price(self, start: Junction, end: Junction, base_price: str, vehicle_type: str = "KEKE") -> RoutePrice:
        return await self._save(
            RoutePrice(
                vehicle_type=vehicle_type,
                start_junction_id=start.id,
                end_junction_id=end.id,
                base_price=Decimal(base_price),
            )
        )

    async def driver(self, vehicle_type: str = "KEKE", *, online: bool = True, available: bool = True,
                     blocked: bool = False, rating: float = 4.8) -> Driver:
        return await self._save(
            Driver(
                name="Driver",
                phone=f"+234{uuid.uuid4().int % 10**10:010d}",
                vehicle_type=vehicle_type,
                is_online=online,
                is_available=available,
                is_blocked=blocked,
                rating=rating,
            )
        )

    async def keke_request(
        self,
        start: Junction,
        end: Junction,
        *,
        passenger_id: str | None = None,
        scheduled_for: datetime | None = None,
        created_ago: timedelta = timedelta(minutes=1),
        chartered: bool = False,
        status: str = "PENDING",
        price: str = "500",
        matching_since: datetime | None = None,
        broadcast_count: int = 0,
    ) -> RideRequest:
        return await self._save(
            RideRequest(
                passenger_id=passenger_id or f"passenger-{uuid.uuid4().hex[:8]}",
                vehicle_type="KEKE",
                ride_type="SHARED",
                start_junction_id=start.id,
                end_junction_id=end.id,
                scheduled_for=scheduled_for,
                price_quoted=Decimal(price),
                is_chartered=chartered,
                status=status,
                matching_since=matching_since,
                broadcast_count=broadcast_count,
                created_at=self.clock.now() - created_ago,
            )
        )

    async def geo_request(
        self,
        start_lat: float,
        start_lng: float,
        *,
        vehicle_type: str = "CAR",
        end_lat: float = 6.6018,
        end_lng: float = 3.3515,
        passenger_id: str | None = None,
        status: str = "PENDING",
        price: str = "1500",
    ) -> RideRequest:
        return await self._save(
            RideRequest(
                passenger_id=passenger_id or f"passenger-{uuid.uuid4().hex[:8]}",
                vehicle_type=vehicle_type,
                ride_type="PRIVATE",
                start_lat=start_lat,
                start_lng=start_lng,
                end_lat=end_lat,
                end_lng=end_lng,
                price_quoted=Decimal(price),
                status=status,
                created_at=self.clock.now(),
            )
        )

    async def schedule(
        self,
        driver: Driver,
        start: Junction,
        end: Junction,
        departure_time: datetime,
        *,
        capacity: int = 4,
        seats_filled: int = 0,
        is_active: bool = True,
    ) -> DriverSchedule:
        return await self._save(
            DriverSchedule(
                driver_id=driver.id,
                vehicle_type="KEKE",
                start_junction_id=start.id,
                end_junction_id=end.id,
                departure_time=departure_time,
                capacity=capacity,
                seats_filled=seats_filled,
                is_active=is_active,
            )
        )

    async def fetch(self, model, row_id: str):
        async with self.session_factory() as session:
            return await session.get(model, row_id)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ridematch.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FixedClock(MONDAY_0940)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def factory(session_factory, clock):
    return Factory(session_factory, clock)


@pytest_asyncio.fixture
async def route(factory):
    """A junction pair most KEKE tests ride on."""
    start = await factory.junction("Ikeja Along")
    end = await factory.junction("Oshodi")
    return start, end
