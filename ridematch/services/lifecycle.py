"""
Ride lifecycle transitions that touch seat accounting.
"""
import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ridematch.clock import Clock, system_clock
from ridematch.database import atomic
from ridematch.exceptions import InvalidRideState, InvalidShortCode, RideNotFound
from ridematch.models.ride import Ride, RidePassenger
from ridematch.models.ride_request import RideRequest
from ridematch.models.schedule import DriverSchedule
from ridematch.services.allocation import release_seats
from ridematch.services.notifications import Notice, NotificationSink, dispatch
from ridematch.services.transitions import RIDE_TRANSITIONS, is_valid_transition, request_guard

logger = logging.getLogger(__name__)


def _transition(ride: Ride, next_state: str) -> None:
    if not is_valid_transition(RIDE_TRANSITIONS, ride.status, next_state):
        raise InvalidRideState(f"Ride {ride.id} cannot go from {ride.status} to {next_state}")
    ride.status = next_state


async def _load_ride(db: AsyncSession, ride_id: str, driver_id: str | None = None) -> Ride:
    result = await db.execute(select(Ride).where(Ride.id == ride_id).with_for_update())
    ride = result.scalar_one_or_none()
    if ride is None or (driver_id is not None and ride.driver_id != driver_id):
        raise RideNotFound()
    return ride


async def _active_seat(db: AsyncSession, ride_id: str, passenger_id: str) -> RidePassenger:
    result = await db.execute(
        select(RidePassenger).where(
            RidePassenger.ride_id == ride_id,
            RidePassenger.passenger_id == passenger_id,
            RidePassenger.cancelled_at.is_(None),
        )
    )
    ride_passenger = result.scalar_one_or_none()
    if ride_passenger is None:
        raise RideNotFound("Passenger is not on this ride")
    return ride_passenger


async def start_ride(db: AsyncSession, driver_id: str, ride_id: str, code: str, *, clock: Clock = system_clock) -> Ride:
    async with atomic(db):
        ride = await _load_ride(db, ride_id, driver_id)
        if ride.short_code != code:
            raise InvalidShortCode()
        _transition(ride, "ONGOING")
        ride.started_at = clock.now()
    logger.info("Ride %s started by driver %s", ride_id, driver_id)
    return ride


async def complete_ride(db: AsyncSession, driver_id: str, ride_id: str, *, clock: Clock = system_clock) -> Ride:
    async with atomic(db):
        ride = await _load_ride(db, ride_id, driver_id)
        _transition(ride, "COMPLETED")
        ride.ended_at = clock.now()
        if ride.schedule_id:
            await db.execute(
                update(DriverSchedule)
                .where(DriverSchedule.id == ride.schedule_id)
                .values(is_active=False)
                .execution_options(synchronize_session=False)
            )
    logger.info("Ride %s completed", ride_id)
    return ride


async def cancel_ride(
    db: AsyncSession,
    driver_id: str,
    ride_id: str,
    reason: str | None = None,
    *,
    clock: Clock = system_clock,
    sink: NotificationSink | None = None,
) -> Ride:
    """
    Driver pulls out: every seat is released, the schedule stops being
    matchable and the passengers' requests go back to PENDING for rematching.
    """
    now = clock.now()
    async with atomic(db):
        ride = await _load_ride(db, ride_id, driver_id)
        _transition(ride, "CANCELLED")

        result = await db.execute(
            select(RidePassenger).where(RidePassenger.ride_id == ride.id, RidePassenger.cancelled_at.is_(None))
        )
        passengers = list(result.scalars().all())
        for ride_passenger in passengers:
            ride_passenger.cancelled_at = now

        await db.execute(
            update(RideRequest)
            .where(RideRequest.accepted_ride_id == ride.id, request_guard("PENDING", only=("ACCEPTED",)))
            .values(status="PENDING", accepted_ride_id=None)
            .execution_options(synchronize_session=False)
        )
        if ride.schedule_id:
            await release_seats(db, DriverSchedule, ride.schedule_id, len(passengers))
            await db.execute(
                update(DriverSchedule)
                .where(DriverSchedule.id == ride.schedule_id)
                .values(is_active=False)
                .execution_options(synchronize_session=False)
            )
        ride.seats_filled = 0
        ride.cancel_reason = reason

    notices = [
        Notice(
            recipient_id=ride_passenger.passenger_id,
            title="Ride Cancelled",
            body="Your driver cancelled the ride. We are looking for another driver.",
            payload={"type": "RIDE_CANCELLED", "rideId": ride.id, "reason": reason},
        )
        for ride_passenger in passengers
    ]
    if sink is not None:
        await dispatch(sink, notices)
    logger.info("Ride %s cancelled by driver %s (%s passengers released)", ride_id, driver_id, len(passengers))
    return ride


async def leave_ride(db: AsyncSession, passenger_id: str, ride_id: str, *, clock: Clock = system_clock) -> Ride:
    """Passenger gives up their seat before the ride starts."""
    async with atomic(db):
        ride = await _load_ride(db, ride_id)
        if ride.status != "SCHEDULED":
            raise InvalidRideState(f"Ride {ride_id} is {ride.status}")
        ride_passenger = await _active_seat(db, ride.id, passenger_id)
        ride_passenger.cancelled_at = clock.now()

        await release_seats(db, Ride, ride.id, 1)
        if ride.schedule_id:
            await release_seats(db, DriverSchedule, ride.schedule_id, 1)
        await db.execute(
            update(Ride)
            .where(Ride.id == ride.id)
            .values(total_amount=Ride.total_amount - ride_passenger.price_paid)
            .execution_options(synchronize_session=False)
        )
        if ride_passenger.request_id:
            await db.execute(
                update(RideRequest)
                .where(RideRequest.id == ride_passenger.request_id, request_guard("CANCELLED", only=("ACCEPTED",)))
                .values(status="CANCELLED")
                .execution_options(synchronize_session=False)
            )
        await db.flush()
        await db.refresh(ride)
    logger.info("Passenger %s left ride %s", passenger_id, ride_id)
    return ride


async def rate_ride(db: AsyncSession, passenger_id: str, ride_id: str, rating: int) -> RidePassenger:
    if not 1 <= rating <= 5:
        raise ValueError("rating must be between 1 and 5")
    async with atomic(db):
        ride = await _load_ride(db, ride_id)
        if ride.status != "COMPLETED":
            raise InvalidRideState("Only completed rides can be rated")
        ride_passenger = await _active_seat(db, ride.id, passenger_id)
        ride_passenger.rating = rating
    return ride_passenger
