"""
Passenger ride requests: creation (with quote) and cancellation.
"""
import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ridematch.clock import Clock, system_clock
from ridematch.config import get_settings
from ridematch.database import atomic
from ridematch.exceptions import RequestUnavailable
from ridematch.models.ride_request import RideRequest
from ridematch.models.schedule import DriverSchedule
from ridematch.services.pricing import QuoteFunction, quote_route
from ridematch.services.routing import GeoRoute, JunctionRoute, Route, expires_at
from ridematch.services.transitions import request_guard

logger = logging.getLogger(__name__)
settings = get_settings()


async def create_request(
    db: AsyncSession,
    passenger_id: str,
    vehicle_type: str,
    route: Route,
    *,
    scheduled_for: datetime | None = None,
    seats_needed: int = 1,
    chartered: bool = False,
    clock: Clock = system_clock,
    quote: QuoteFunction = quote_route,
) -> tuple[RideRequest, list[DriverSchedule]]:
    """
    KEKE requests ride SHARED on a junction pair and come back with upcoming
    schedules on that pair as suggestions; CAR / BUS requests are PRIVATE on
    free-form coordinates.
    """
    now = clock.now()
    if vehicle_type == "KEKE":
        if not isinstance(route, JunctionRoute):
            raise ValueError("KEKE requests need a start and end junction")
        ride_type = "SHARED"
        columns = {"start_junction_id": route.start_junction_id, "end_junction_id": route.end_junction_id}
    else:
        if not isinstance(route, GeoRoute):
            raise ValueError(f"{vehicle_type} requests need start and end coordinates")
        ride_type = "PRIVATE"
        columns = {
            "start_lat": route.start_lat,
            "start_lng": route.start_lng,
            "end_lat": route.end_lat,
            "end_lng": route.end_lng,
        }

    suggestions: list[DriverSchedule] = []
    async with atomic(db):
        price = await quote(db, vehicle_type, route)
        request = RideRequest(
            passenger_id=passenger_id,
            vehicle_type=vehicle_type,
            ride_type=ride_type,
            scheduled_for=scheduled_for,
            seats_needed=seats_needed,
            price_quoted=price,
            is_chartered=chartered,
            expires_at=expires_at(chartered, scheduled_for, now),
            status="PENDING",
            created_at=now,
            **columns,
        )
        db.add(request)

        if isinstance(route, JunctionRoute) and not chartered:
            result = await db.execute(
                select(DriverSchedule)
                .where(
                    DriverSchedule.vehicle_type == "KEKE",
                    DriverSchedule.start_junction_id == route.start_junction_id,
                    DriverSchedule.end_junction_id == route.end_junction_id,
                    DriverSchedule.is_active.is_(True),
                    DriverSchedule.departure_time >= (scheduled_for or now),
                )
                .order_by(DriverSchedule.departure_time)
                .limit(settings.schedule_suggestion_limit)
            )
            suggestions = list(result.scalars().all())

    logger.info(
        "Passenger %s requested %s %s ride %s (price=%s, chartered=%s)",
        passenger_id, vehicle_type, ride_type, request.id, price, chartered,
    )
    return request, suggestions


async def list_requests(
    db: AsyncSession,
    passenger_id: str,
    *,
    chartered_only: bool = False,
    limit: int = 10,
) -> list[RideRequest]:
    query = select(RideRequest).where(RideRequest.passenger_id == passenger_id)
    if chartered_only:
        query = query.where(RideRequest.is_chartered.is_(True))
    result = await db.execute(query.order_by(RideRequest.created_at.desc()).limit(limit))
    return list(result.scalars().all())


async def cancel_request(db: AsyncSession, passenger_id: str, request_id: str) -> None:
    """Withdraw a request that no driver has taken yet."""
    async with atomic(db):
        result = await db.execute(
            update(RideRequest)
            .where(
                RideRequest.id == request_id,
                RideRequest.passenger_id == passenger_id,
                request_guard("CANCELLED", only=("PENDING", "MATCHING")),
            )
            .values(status="CANCELLED", matching_since=None)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise RequestUnavailable(f"Request {request_id} cannot be cancelled")
    logger.info("Passenger %s cancelled request %s", passenger_id, request_id)
