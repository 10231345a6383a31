"""
Driver acceptance workflows.

Direct acceptance:
  1. Lock the request, require PENDING
  2. Create the standing DriverSchedule (unless chartered) and the Ride
  3. For shared KEKE, pull in other pending requests on the same junction
     pair, nearest target time first, until the ride is full
  4. Claim every seated request with a conditional PENDING -> ACCEPTED update
  5. Bump Ride / Schedule seat counters once, guarded against overflow

Grouped acceptance does the same for a bundle of request ids produced by the
periodic matcher, and notifies each seated passenger after commit.

Everything between lock and counter update is one transaction: two drivers
racing for the same request cannot both commit it.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ridematch.clock import Clock, system_clock
from ridematch.database import atomic
from ridematch.exceptions import HeterogeneousGroup, NoValidRequests, RequestUnavailable
from ridematch.models.ride import Ride, RidePassenger
from ridematch.models.ride_request import RideRequest
from ridematch.models.schedule import DriverSchedule
from ridematch.services.allocation import (
    add_seats,
    claim_request,
    new_ride,
    new_ride_passenger,
    new_schedule,
    set_seats,
)
from ridematch.services.notifications import Notice, NotificationSink, dispatch
from ridematch.services.routing import (
    GROUPED_CAPACITY,
    JunctionRoute,
    charter_policy,
    is_shared_keke,
    route_of,
    seat_capacity,
    target_time,
)
from ridematch.services.transitions import request_guard

logger = logging.getLogger(__name__)


@dataclass
class AcceptanceResult:
    ride: Ride
    schedule: DriverSchedule | None
    accepted_request_ids: list[str]
    ride_passengers: list[RidePassenger]
    notices: list[Notice] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Direct acceptance
# ---------------------------------------------------------------------------

async def accept_request(
    db: AsyncSession,
    driver_id: str,
    request_id: str,
    *,
    clock: Clock = system_clock,
) -> AcceptanceResult:
    now = clock.now()

    async with atomic(db):
        result = await db.execute(
            select(RideRequest).where(RideRequest.id == request_id).with_for_update()
        )
        request = result.scalar_one_or_none()
        if request is None or request.status != "PENDING":
            raise RequestUnavailable(f"Request {request_id} is not available")

        policy = charter_policy(request.is_chartered)
        capacity = seat_capacity(request.vehicle_type)
        departure = target_time(request, now)
        route = route_of(request)

        schedule = None
        if policy.creates_schedule:
            schedule = new_schedule(
                driver_id=driver_id,
                vehicle_type=request.vehicle_type,
                route=route,
                departure_time=departure,
                capacity=capacity,
            )
            db.add(schedule)
            await db.flush()

        ride = new_ride(
            driver_id=driver_id,
            vehicle_type=request.vehicle_type,
            ride_type=request.ride_type,
            route=route,
            pickup_time=departure,
            capacity=capacity,
            schedule_id=schedule.id if schedule else None,
        )
        db.add(ride)
        await db.flush()

        candidates = [request]
        if is_shared_keke(request) and policy.aggregates_neighbours:
            candidates.extend(await _nearest_pending(db, request, departure, now))

        seated = await _seat_candidates(db, ride, candidates, capacity, primary_id=request.id)

        await add_seats(db, Ride, ride.id, len(seated))
        if schedule is not None:
            await add_seats(db, DriverSchedule, schedule.id, len(seated))

        ride.total_amount = sum((rp.price_paid for _, rp in seated), Decimal("0"))
        await db.flush()
        await db.refresh(ride)
        if schedule is not None:
            await db.refresh(schedule)

    logger.info(
        "Driver %s accepted request %s: ride=%s seats=%s/%s",
        driver_id, request_id, ride.id, ride.seats_filled, ride.capacity,
    )
    return AcceptanceResult(
        ride=ride,
        schedule=schedule,
        accepted_request_ids=[r.id for r, _ in seated],
        ride_passengers=[rp for _, rp in seated],
    )


async def _nearest_pending(
    db: AsyncSession,
    anchor: RideRequest,
    anchor_time: datetime,
    now: datetime,
) -> list[RideRequest]:
    """Other pending shared KEKE requests on the anchor's junction pair, nearest in time first."""
    result = await db.execute(
        select(RideRequest)
        .where(
            RideRequest.id != anchor.id,
            RideRequest.status == "PENDING",
            RideRequest.vehicle_type == "KEKE",
            RideRequest.ride_type == "SHARED",
            RideRequest.is_chartered.is_(False),
            RideRequest.start_junction_id == anchor.start_junction_id,
            RideRequest.end_junction_id == anchor.end_junction_id,
        )
        .order_by(RideRequest.created_at, RideRequest.id)
        .with_for_update(skip_locked=True)
    )
    neighbours = list(result.scalars().all())
    # sorted() is stable, so equal distances keep arrival order
    return sorted(neighbours, key=lambda r: abs((target_time(r, now) - anchor_time).total_seconds()))


async def _seat_candidates(
    db: AsyncSession,
    ride: Ride,
    candidates: Sequence[RideRequest],
    capacity: int,
    *,
    primary_id: str | None = None,
    from_statuses: Sequence[str] = ("PENDING",),
) -> list[tuple[RideRequest, RidePassenger]]:
    seated_passengers: set[str] = set()
    seated: list[tuple[RideRequest, RidePassenger]] = []

    for candidate in candidates:
        if len(seated) >= capacity:
            break
        if candidate.passenger_id in seated_passengers:
            continue
        if not await claim_request(db, candidate.id, ride.id, from_statuses):
            if candidate.id == primary_id:
                raise RequestUnavailable(f"Request {candidate.id} was taken by another driver")
            logger.debug("Request %s claimed elsewhere, skipping", candidate.id)
            continue
        ride_passenger = new_ride_passenger(ride, candidate)
        db.add(ride_passenger)
        seated_passengers.add(candidate.passenger_id)
        seated.append((candidate, ride_passenger))

    return seated


# ---------------------------------------------------------------------------
# Grouped acceptance
# ---------------------------------------------------------------------------

async def accept_grouped(
    db: AsyncSession,
    driver_id: str,
    request_ids: Sequence[str],
    *,
    clock: Clock = system_clock,
    sink: NotificationSink | None = None,
) -> AcceptanceResult:
    now = clock.now()
    wanted = list(dict.fromkeys(request_ids))

    async with atomic(db):
        result = await db.execute(
            select(RideRequest)
            .where(RideRequest.id.in_(wanted), RideRequest.status.in_(("PENDING", "MATCHING")))
            .order_by(RideRequest.created_at, RideRequest.id)
            .with_for_update()
        )
        requests = list(result.scalars().all())
        if not requests:
            raise NoValidRequests()

        pairs = {(r.start_junction_id, r.end_junction_id) for r in requests}
        kinds = {(r.vehicle_type, r.ride_type) for r in requests}
        start_junction_id, end_junction_id = next(iter(pairs))
        if len(pairs) != 1 or kinds != {("KEKE", "SHARED")} or not (start_junction_id and end_junction_id):
            raise HeterogeneousGroup()
        if len(requests) > 1 and any(r.is_chartered for r in requests):
            raise HeterogeneousGroup("A chartered request cannot share a group")

        route = JunctionRoute(start_junction_id, end_junction_id)
        policy = charter_policy(any(r.is_chartered for r in requests))
        departure = min(target_time(r, now) for r in requests)

        schedule = None
        if policy.creates_schedule:
            schedule = new_schedule(
                driver_id=driver_id,
                vehicle_type="KEKE",
                route=route,
                departure_time=departure,
                capacity=GROUPED_CAPACITY,
            )
            db.add(schedule)
            await db.flush()

        ride = new_ride(
            driver_id=driver_id,
            vehicle_type="KEKE",
            ride_type="SHARED",
            route=route,
            pickup_time=departure,
            capacity=GROUPED_CAPACITY,
            schedule_id=schedule.id if schedule else None,
        )
        db.add(ride)
        await db.flush()

        seated = await _seat_candidates(
            db, ride, requests, GROUPED_CAPACITY, from_statuses=("PENDING", "MATCHING")
        )
        if not seated:
            raise NoValidRequests("All grouped requests were taken by other drivers")

        seats_taken = len(seated)
        await set_seats(db, Ride, ride.id, seats_taken)
        if schedule is not None:
            await set_seats(db, DriverSchedule, schedule.id, seats_taken)

        seated_ids = {r.id for r, _ in seated}
        leftovers = [r.id for r in requests if r.id not in seated_ids]
        if leftovers:
            # Didn't fit: hand them back to the matcher instead of leaving them claimed
            await db.execute(
                update(RideRequest)
                .where(RideRequest.id.in_(leftovers), request_guard("PENDING", only=("MATCHING",)))
                .values(status="PENDING", matching_since=None)
                .execution_options(synchronize_session=False)
            )

        ride.total_amount = sum((rp.price_paid for _, rp in seated), Decimal("0"))
        await db.flush()
        await db.refresh(ride)
        if schedule is not None:
            await db.refresh(schedule)

    notices = [
        Notice(
            recipient_id=request.passenger_id,
            title="Driver Accepted Your Request",
            body=f"A driver accepted your ride request. Departure at {ride.pickup_time:%H:%M}.",
            payload={
                "type": "REQUEST_ACCEPTED",
                "rideId": ride.id,
                "requestId": request.id,
                "ticketCode": ride_passenger.ticket_code,
            },
        )
        for request, ride_passenger in seated
    ]
    if sink is not None:
        await dispatch(sink, notices)

    logger.info(
        "Driver %s accepted grouped requests: ride=%s seated=%s leftover=%s",
        driver_id, ride.id, seats_taken, len(leftovers),
    )
    return AcceptanceResult(
        ride=ride,
        schedule=schedule,
        accepted_request_ids=[r.id for r, _ in seated],
        ride_passengers=[rp for _, rp in seated],
        notices=notices,
    )
