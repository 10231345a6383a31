"""
Seat allocation primitives shared by the acceptance workflows and the matcher.

Every helper here runs inside the caller's transaction and never commits.
Counter updates are guarded in SQL so a concurrent writer can never push
`seats_filled` outside `[0, capacity]`.
"""
import logging
import secrets
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from ridematch.exceptions import CapacityExceeded
from ridematch.models.ride import Ride, RidePassenger
from ridematch.models.ride_request import RideRequest
from ridematch.models.schedule import DriverSchedule
from ridematch.services.routing import Route, route_columns
from ridematch.services.transitions import request_guard

logger = logging.getLogger(__name__)

SeatCounted = type[Ride] | type[DriverSchedule]


def generate_short_code() -> str:
    """4-digit code the driver types to start the ride."""
    return str(1000 + secrets.randbelow(9000))


def generate_ticket_code() -> str:
    return str(1000 + secrets.randbelow(9000))


def generate_scan_code() -> str:
    return uuid.uuid4().hex


def new_ride(
    *,
    driver_id: str,
    vehicle_type: str,
    ride_type: str,
    route: Route,
    pickup_time: datetime,
    capacity: int,
    schedule_id: str | None = None,
) -> Ride:
    return Ride(
        id=str(uuid.uuid4()),
        driver_id=driver_id,
        schedule_id=schedule_id,
        vehicle_type=vehicle_type,
        ride_type=ride_type,
        status="SCHEDULED",
        scan_code=generate_scan_code(),
        short_code=generate_short_code(),
        pickup_time=pickup_time,
        capacity=capacity,
        seats_filled=0,
        total_amount=Decimal("0"),
        commission=Decimal("0"),
        scheduled_by_driver=True,
        **route_columns(route),
    )


def new_schedule(
    *,
    driver_id: str,
    vehicle_type: str,
    route: Route,
    departure_time: datetime,
    capacity: int,
) -> DriverSchedule:
    columns = route_columns(route)
    return DriverSchedule(
        id=str(uuid.uuid4()),
        driver_id=driver_id,
        vehicle_type=vehicle_type,
        start_junction_id=columns.get("start_junction_id"),
        end_junction_id=columns.get("end_junction_id"),
        departure_time=departure_time,
        capacity=capacity,
        seats_filled=0,
        is_active=True,
    )


def new_ride_passenger(ride: Ride, request: RideRequest, payment_method: str = "CASH") -> RidePassenger:
    return RidePassenger(
        id=str(uuid.uuid4()),
        ride_id=ride.id,
        passenger_id=request.passenger_id,
        request_id=request.id,
        payment_method=payment_method,
        price_paid=request.price_quoted or Decimal("0"),
        ticket_code=generate_ticket_code(),
        scan_code=generate_scan_code(),
    )


async def claim_request(
    db: AsyncSession,
    request_id: str,
    ride_id: str,
    from_statuses: Iterable[str] = ("PENDING",),
) -> bool:
    """
    Move a request to ACCEPTED on `ride_id` if it is still in `from_statuses`.
    Returns False when another transaction got there first.
    """
    result = await db.execute(
        update(RideRequest)
        .where(RideRequest.id == request_id, request_guard("ACCEPTED", only=from_statuses))
        .values(status="ACCEPTED", accepted_ride_id=ride_id, matching_since=None)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def is_seated(db: AsyncSession, ride_id: str, passenger_id: str) -> bool:
    result = await db.execute(
        select(func.count(RidePassenger.id)).where(
            RidePassenger.ride_id == ride_id,
            RidePassenger.passenger_id == passenger_id,
            RidePassenger.cancelled_at.is_(None),
        )
    )
    return result.scalar_one() > 0


async def add_seats(db: AsyncSession, model: SeatCounted, row_id: str, count: int) -> None:
    """Increment `seats_filled` by `count` in one statement, refusing to overflow."""
    if count <= 0:
        return
    result = await db.execute(
        update(model)
        .where(model.id == row_id, model.seats_filled + count <= model.capacity)
        .values(seats_filled=model.seats_filled + count)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise CapacityExceeded(f"{model.__tablename__} {row_id} has fewer than {count} free seat(s)")


async def set_seats(db: AsyncSession, model: SeatCounted, row_id: str, seats_taken: int) -> None:
    """Write an absolute seat count; used when the row was created in this transaction."""
    result = await db.execute(
        update(model)
        .where(model.id == row_id, model.capacity >= seats_taken)
        .values(seats_filled=seats_taken)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise CapacityExceeded(f"{model.__tablename__} {row_id} cannot hold {seats_taken} seat(s)")


async def release_seats(db: AsyncSession, model: SeatCounted, row_id: str, count: int) -> None:
    """Decrement `seats_filled`, never below zero."""
    if count <= 0:
        return
    result = await db.execute(
        update(model)
        .where(model.id == row_id, model.seats_filled >= count)
        .values(seats_filled=model.seats_filled - count)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.warning("Seat release of %s on %s %s skipped: counter already lower", count, model.__tablename__, row_id)
