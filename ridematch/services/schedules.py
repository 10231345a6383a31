"""
Driver schedules: posting standing offers, listing them, and seating a
request on a schedule's ride.
"""
import logging
from datetime import datetime, timedelta

from sqlalchemy import exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ridematch.clock import Clock, system_clock
from ridematch.config import get_settings
from ridematch.database import atomic
from ridematch.exceptions import AlreadyBooked, RequestUnavailable, ScheduleNotAllowed, ScheduleNotFound
from ridematch.models.driver import Driver
from ridematch.models.ride import Ride, RidePassenger
from ridematch.models.ride_request import RideRequest
from ridematch.models.schedule import DriverSchedule
from ridematch.services.allocation import add_seats, claim_request, is_seated, new_ride, new_ride_passenger
from ridematch.services.notifications import Notice, NotificationSink, dispatch
from ridematch.services.routing import JunctionRoute, seat_capacity, target_time

logger = logging.getLogger(__name__)
settings = get_settings()


async def get_driver_schedules(db: AsyncSession, driver_id: str, limit: int = 10) -> list[DriverSchedule]:
    result = await db.execute(
        select(DriverSchedule)
        .where(DriverSchedule.driver_id == driver_id)
        .order_by(DriverSchedule.departure_time)
        .limit(limit)
    )
    return list(result.scalars().all())


async def create_schedule(
    db: AsyncSession,
    driver_id: str,
    route: JunctionRoute,
    departure_time: datetime,
    capacity: int = seat_capacity("KEKE"),
) -> DriverSchedule:
    """Post a standing offer. Only active KEKE drivers run junction schedules."""
    async with atomic(db):
        driver = await db.get(Driver, driver_id)
        if driver is None or driver.vehicle_type != "KEKE" or driver.is_blocked:
            raise ScheduleNotAllowed()
        schedule = DriverSchedule(
            driver_id=driver_id,
            vehicle_type="KEKE",
            start_junction_id=route.start_junction_id,
            end_junction_id=route.end_junction_id,
            departure_time=departure_time,
            capacity=capacity,
            seats_filled=0,
            is_active=True,
        )
        db.add(schedule)
    logger.info("Driver %s posted schedule %s at %s", driver_id, schedule.id, departure_time)
    return schedule


async def available_schedules(db: AsyncSession, *, clock: Clock = system_clock) -> list[DriverSchedule]:
    """Upcoming active KEKE schedules that still have free seats."""
    result = await db.execute(
        select(DriverSchedule)
        .where(
            DriverSchedule.vehicle_type == "KEKE",
            DriverSchedule.is_active.is_(True),
            DriverSchedule.seats_filled < DriverSchedule.capacity,
            DriverSchedule.departure_time >= clock.now(),
        )
        .order_by(DriverSchedule.departure_time)
    )
    return list(result.scalars().all())


async def smart_scan(
    db: AsyncSession,
    start_junction_id: str,
    end_junction_id: str,
    window_minutes: int,
    *,
    clock: Clock = system_clock,
) -> tuple[list[RideRequest], list[DriverSchedule]]:
    """
    Pending shared KEKE demand leaving within the next `window_minutes`, plus
    upcoming schedules on the pair. Either junction may be "all".
    """
    now = clock.now()
    window_end = now + timedelta(minutes=window_minutes)

    request_query = select(RideRequest).where(
        RideRequest.vehicle_type == "KEKE",
        RideRequest.ride_type == "SHARED",
        RideRequest.status == "PENDING",
    )
    schedule_query = select(DriverSchedule).where(
        DriverSchedule.vehicle_type == "KEKE",
        DriverSchedule.is_active.is_(True),
        DriverSchedule.departure_time >= now,
        DriverSchedule.departure_time <= window_end,
    )
    if start_junction_id != "all":
        request_query = request_query.where(RideRequest.start_junction_id == start_junction_id)
        schedule_query = schedule_query.where(DriverSchedule.start_junction_id == start_junction_id)
    if end_junction_id != "all":
        request_query = request_query.where(RideRequest.end_junction_id == end_junction_id)
        schedule_query = schedule_query.where(DriverSchedule.end_junction_id == end_junction_id)

    requests = (await db.execute(request_query.order_by(RideRequest.created_at))).scalars().all()
    # ASAP requests count as leaving now
    in_window = [r for r in requests if now <= target_time(r, now) <= window_end]
    schedules = (
        await db.execute(schedule_query.order_by(DriverSchedule.departure_time).limit(10))
    ).scalars().all()
    return in_window, list(schedules)


async def find_matching_schedule(db: AsyncSession, request: RideRequest, now: datetime) -> DriverSchedule | None:
    """
    Earliest active schedule on the request's junction pair with a free seat
    whose departure puts the request's target time within
    [departure - before, departure + after].
    """
    wanted = target_time(request, now)
    earliest = wanted - timedelta(minutes=settings.request_after_departure_minutes)
    latest = wanted + timedelta(minutes=settings.request_before_departure_minutes)
    running = exists().where(
        Ride.schedule_id == DriverSchedule.id,
        Ride.status.in_(("ONGOING", "COMPLETED")),
    )

    result = await db.execute(
        select(DriverSchedule)
        .where(
            DriverSchedule.vehicle_type == "KEKE",
            DriverSchedule.is_active.is_(True),
            DriverSchedule.start_junction_id == request.start_junction_id,
            DriverSchedule.end_junction_id == request.end_junction_id,
            DriverSchedule.seats_filled < DriverSchedule.capacity,
            DriverSchedule.departure_time >= earliest,
            DriverSchedule.departure_time <= latest,
            ~running,
        )
        .order_by(DriverSchedule.departure_time, DriverSchedule.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def ride_for_schedule(db: AsyncSession, schedule: DriverSchedule) -> Ride:
    """
    The SCHEDULED ride materialising this schedule, created on first use.

    Looked up by `schedule_id` only: rides without a schedule are chartered or
    private single-seat rides and never take shared passengers.
    """
    result = await db.execute(
        select(Ride)
        .where(Ride.schedule_id == schedule.id, Ride.status == "SCHEDULED")
        .order_by(Ride.created_at)
        .limit(1)
        .with_for_update()
    )
    ride = result.scalar_one_or_none()
    if ride is not None:
        return ride

    ride = new_ride(
        driver_id=schedule.driver_id,
        vehicle_type=schedule.vehicle_type,
        ride_type="SHARED",
        route=JunctionRoute(schedule.start_junction_id, schedule.end_junction_id),
        pickup_time=schedule.departure_time,
        capacity=schedule.capacity,
        schedule_id=schedule.id,
    )
    db.add(ride)
    await db.flush()
    return ride


async def seat_on_schedule(
    db: AsyncSession,
    request: RideRequest,
    schedule: DriverSchedule,
    *,
    bind_duplicates: bool = False,
) -> tuple[Ride, RidePassenger | None]:
    """
    Seat `request` on the schedule's ride inside the caller's transaction.

    A passenger already on the ride raises AlreadyBooked, unless
    `bind_duplicates` is set: then the request is just marked ACCEPTED on
    that ride and no second seat is taken.
    """
    ride = await ride_for_schedule(db, schedule)

    if await is_seated(db, ride.id, request.passenger_id):
        if not bind_duplicates:
            raise AlreadyBooked()
        if not await claim_request(db, request.id, ride.id):
            raise RequestUnavailable(f"Request {request.id} is no longer pending")
        return ride, None

    if not await claim_request(db, request.id, ride.id):
        raise RequestUnavailable(f"Request {request.id} is no longer pending")

    ride_passenger = new_ride_passenger(ride, request)
    db.add(ride_passenger)
    await add_seats(db, Ride, ride.id, 1)
    await add_seats(db, DriverSchedule, schedule.id, 1)
    await db.execute(
        update(Ride)
        .where(Ride.id == ride.id)
        .values(total_amount=Ride.total_amount + ride_passenger.price_paid)
        .execution_options(synchronize_session=False)
    )
    await db.refresh(ride)
    await db.refresh(schedule)
    return ride, ride_passenger


def matched_notice(request: RideRequest, ride: Ride, schedule: DriverSchedule) -> Notice:
    return Notice(
        recipient_id=request.passenger_id,
        title="Ride Matched!",
        body=f"Your ride has been matched to a driver schedule. Departure at {schedule.departure_time:%H:%M}.",
        payload={"type": "RIDE_MATCHED", "rideId": ride.id, "scheduleId": schedule.id, "requestId": request.id},
    )


async def join_schedule(
    db: AsyncSession,
    passenger_id: str,
    request_id: str,
    schedule_id: str,
    *,
    sink: NotificationSink | None = None,
) -> tuple[Ride, RidePassenger]:
    """Passenger picks a schedule for one of their pending requests."""
    async with atomic(db):
        schedule = (
            await db.execute(select(DriverSchedule).where(DriverSchedule.id == schedule_id).with_for_update())
        ).scalar_one_or_none()
        if schedule is None or not schedule.is_active:
            raise ScheduleNotFound()

        request = (
            await db.execute(select(RideRequest).where(RideRequest.id == request_id).with_for_update())
        ).scalar_one_or_none()
        if request is None or request.passenger_id != passenger_id or request.status != "PENDING":
            raise RequestUnavailable(f"Request {request_id} is not available")
        if (request.start_junction_id, request.end_junction_id) != (
            schedule.start_junction_id,
            schedule.end_junction_id,
        ):
            raise RequestUnavailable("Request route does not match the schedule")

        ride, ride_passenger = await seat_on_schedule(db, request, schedule)

    if sink is not None:
        await dispatch(sink, [matched_notice(request, ride, schedule)])
    return ride, ride_passenger
