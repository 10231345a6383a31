"""
Periodic ride matcher.

Each cycle:
  0. Release broadcast claims (MATCHING) that no driver picked up in time;
     requests broadcast too often are cancelled instead
  1. Load PENDING shared KEKE requests; chartered bookings are left for
     direct acceptance
  2. For each one, slot it into an active driver schedule on the same
     junction pair within the departure window
  3. No schedule and older than the grace period -> group similar pending
     requests, claim them as MATCHING and notify every eligible driver

Every request is handled in its own transaction; one failing request is
logged and the cycle moves on. Notifications go out after commit.

MatchingCycleRunner guarantees single flight: an in-process lock plus a Redis
lease that is renewed while the cycle runs, so two workers never overlap.
A cycle that loses its lease is cancelled.
"""
import asyncio
import contextlib
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ridematch.clock import Clock, system_clock
from ridematch.config import Settings, get_settings
from ridematch.database import atomic
from ridematch.exceptions import MatchingError
from ridematch.models.driver import Driver
from ridematch.models.ride_request import RideRequest
from ridematch.redis_client import acquire_lease, release_lease, renew_lease
from ridematch.services.notifications import Notice, NotificationSink, dispatch
from ridematch.services.routing import target_time
from ridematch.services.schedules import find_matching_schedule, matched_notice, seat_on_schedule
from ridematch.services.transitions import request_guard

logger = logging.getLogger(__name__)

LEASE_KEY = "ridematch:matcher:lease"


@dataclass
class CycleReport:
    released: int = 0
    cancelled: int = 0
    scanned: int = 0
    matched: int = 0
    groups: int = 0
    grouped_requests: int = 0
    drivers_notified: int = 0
    failures: int = 0


class RideMatcher:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        sink: NotificationSink,
        *,
        clock: Clock = system_clock,
        settings: Settings | None = None,
    ):
        self.session_factory = session_factory
        self.sink = sink
        self.clock = clock
        self.settings = settings or get_settings()

    async def run_cycle(self) -> CycleReport:
        now = self.clock.now()
        report = CycleReport()
        logger.debug("Starting automatic ride matching at %s", now)

        await self._release_stale_claims(now, report)

        async with self.session_factory() as db:
            result = await db.execute(
                select(RideRequest.id)
                .where(
                    RideRequest.status == "PENDING",
                    RideRequest.vehicle_type == "KEKE",
                    RideRequest.ride_type == "SHARED",
                    RideRequest.is_chartered.is_(False),
                    RideRequest.accepted_ride_id.is_(None),
                )
                .order_by(RideRequest.created_at, RideRequest.id)
            )
            pending_ids = list(result.scalars().all())

        report.scanned = len(pending_ids)
        claimed: set[str] = set()
        for request_id in pending_ids:
            if request_id in claimed:
                continue
            try:
                claimed.update(await self._process_request(request_id, now, report))
            except MatchingError as exc:
                report.failures += 1
                logger.warning("Could not match request %s: %s", request_id, exc.detail)
            except Exception as exc:
                report.failures += 1
                logger.error("Matching failed for request %s: %s", request_id, exc, exc_info=True)

        logger.info(
            "Matching cycle done: scanned=%s matched=%s groups=%s released=%s cancelled=%s failures=%s",
            report.scanned, report.matched, report.groups, report.released, report.cancelled, report.failures,
        )
        return report

    async def _process_request(self, request_id: str, now: datetime, report: CycleReport) -> set[str]:
        """Match or group one request. Returns ids claimed for broadcast."""
        notices: list[Notice] = []
        claimed: set[str] = set()

        async with self.session_factory() as db:
            async with atomic(db):
                request = await db.get(RideRequest, request_id, with_for_update=True)
                if request is None or request.status != "PENDING" or request.accepted_ride_id:
                    return claimed
                if request.is_chartered:
                    return claimed

                schedule = await find_matching_schedule(db, request, now)
                if schedule is not None:
                    ride, ride_passenger = await seat_on_schedule(db, request, schedule, bind_duplicates=True)
                    notices.append(matched_notice(request, ride, schedule))
                    report.matched += 1
                    logger.info(
                        "Request %s matched to schedule %s (seated=%s)",
                        request.id, schedule.id, ride_passenger is not None,
                    )
                elif now - request.created_at >= timedelta(minutes=self.settings.grouping_grace_minutes):
                    group = await self._claim_group(db, request, now)
                    if group:
                        claimed = {r.id for r in group}
                        drivers = await self._eligible_drivers(db)
                        notices.extend(self._group_notices(request, group, drivers, now))
                        report.groups += 1
                        report.grouped_requests += len(group)
                        report.drivers_notified += len(drivers)
                        logger.info(
                            "Grouped %s requests %s->%s and notifying %s drivers",
                            len(group), request.start_junction_id, request.end_junction_id, len(drivers),
                        )

        await dispatch(self.sink, notices)
        return claimed

    async def _claim_group(self, db: AsyncSession, seed: RideRequest, now: datetime) -> list[RideRequest]:
        """Similar pending requests within ±window of the seed's target time, moved to MATCHING."""
        seed_time = target_time(seed, now)
        window = timedelta(minutes=self.settings.grouping_window_minutes)
        low, high = seed_time - window, seed_time + window

        time_filter = RideRequest.scheduled_for.between(low, high)
        if low <= now <= high:
            time_filter = or_(time_filter, RideRequest.scheduled_for.is_(None))

        result = await db.execute(
            select(RideRequest)
            .where(
                RideRequest.status == "PENDING",
                RideRequest.vehicle_type == "KEKE",
                RideRequest.ride_type == "SHARED",
                RideRequest.is_chartered.is_(False),
                RideRequest.start_junction_id == seed.start_junction_id,
                RideRequest.end_junction_id == seed.end_junction_id,
                RideRequest.accepted_ride_id.is_(None),
                time_filter,
            )
            .order_by(RideRequest.created_at, RideRequest.id)
            .with_for_update(skip_locked=True)
        )
        group = list(result.scalars().all())
        if not group:
            return []

        await db.execute(
            update(RideRequest)
            .where(RideRequest.id.in_([r.id for r in group]), request_guard("MATCHING"))
            .values(
                status="MATCHING",
                matching_since=now,
                broadcast_count=RideRequest.broadcast_count + 1,
            )
            .execution_options(synchronize_session=False)
        )
        return group

    async def _eligible_drivers(self, db: AsyncSession) -> list[Driver]:
        result = await db.execute(
            select(Driver)
            .where(
                Driver.vehicle_type == "KEKE",
                Driver.is_online.is_(True),
                Driver.is_available.is_(True),
                Driver.is_blocked.is_(False),
            )
            .order_by(Driver.rating.desc(), Driver.id)
        )
        return list(result.scalars().all())

    @staticmethod
    def _group_notices(seed: RideRequest, group: list[RideRequest], drivers: list[Driver], now: datetime) -> list[Notice]:
        count = len(group)
        seed_time = target_time(seed, now)
        payload = {
            "type": "GROUPED_REQUESTS",
            "requestIds": [r.id for r in group],
            "startJunctionId": seed.start_junction_id,
            "endJunctionId": seed.end_junction_id,
            "scheduledFor": seed_time.isoformat(),
            "count": count,
        }
        return [
            Notice(
                recipient_id=driver.id,
                title=f"{count} Passengers Waiting",
                body=(
                    f"{count} passengers are waiting for a ride from {seed.start_junction_id} "
                    f"to {seed.end_junction_id}. Tap to accept."
                ),
                payload=payload,
            )
            for driver in drivers
        ]

    async def _release_stale_claims(self, now: datetime, report: CycleReport) -> None:
        """
        MATCHING requests nobody accepted within the claim timeout go back to
        PENDING; after `max_broadcast_attempts` broadcasts they are cancelled.
        """
        cutoff = now - timedelta(minutes=self.settings.matching_claim_timeout_minutes)
        max_attempts = self.settings.max_broadcast_attempts
        stale = or_(RideRequest.matching_since.is_(None), RideRequest.matching_since <= cutoff)

        try:
            async with self.session_factory() as db:
                async with atomic(db):
                    result = await db.execute(
                        select(RideRequest)
                        .where(
                            RideRequest.status == "MATCHING",
                            stale,
                            RideRequest.broadcast_count >= max_attempts,
                        )
                        .with_for_update(skip_locked=True)
                    )
                    exhausted = list(result.scalars().all())
                    if exhausted:
                        await db.execute(
                            update(RideRequest)
                            .where(
                                RideRequest.id.in_([r.id for r in exhausted]),
                                request_guard("CANCELLED", only=("MATCHING",)),
                            )
                            .values(status="CANCELLED", matching_since=None)
                            .execution_options(synchronize_session=False)
                        )
                    released = await db.execute(
                        update(RideRequest)
                        .where(
                            request_guard("PENDING", only=("MATCHING",)),
                            stale,
                            RideRequest.broadcast_count < max_attempts,
                        )
                        .values(status="PENDING", matching_since=None)
                        .execution_options(synchronize_session=False)
                    )
                    report.released = released.rowcount or 0
                    report.cancelled = len(exhausted)
        except MatchingError as exc:
            report.failures += 1
            logger.error("Could not release stale broadcast claims: %s", exc.detail)
            return

        notices = [
            Notice(
                recipient_id=request.passenger_id,
                title="No Driver Found",
                body="We could not find a driver for your ride request. Please try again.",
                payload={"type": "REQUEST_EXPIRED", "requestId": request.id},
            )
            for request in exhausted
        ]
        await dispatch(self.sink, notices)


class MatchingCycleRunner:
    """Runs RideMatcher cycles on a fixed interval, never two at once."""

    def __init__(
        self,
        matcher: RideMatcher,
        redis: aioredis.Redis | None = None,
        *,
        interval_seconds: float | None = None,
        lease_ttl_seconds: float | None = None,
    ):
        settings = matcher.settings
        self.matcher = matcher
        self.redis = redis
        self.interval_seconds = interval_seconds or settings.matcher_interval_seconds
        self.lease_ttl_seconds = lease_ttl_seconds or settings.matcher_lock_ttl_seconds
        # renewed at a third of the TTL
        self.lease_renew_seconds = self.lease_ttl_seconds / 3
        self._lock = asyncio.Lock()
        self._task: asyncio.Task | None = None

    async def run_once(self) -> CycleReport | None:
        """One matching cycle. Returns None when skipped or failed."""
        if self._lock.locked():
            logger.warning("Previous matching cycle still running; skipping this tick")
            return None
        async with self._lock:
            try:
                return await self._run_leased()
            except Exception as exc:
                logger.error("Matching cycle failed, will retry next tick: %s", exc, exc_info=True)
                return None

    async def _run_leased(self) -> CycleReport | None:
        if self.redis is None:
            return await self.matcher.run_cycle()

        token = uuid.uuid4().hex
        if not await acquire_lease(self.redis, LEASE_KEY, token, self.lease_ttl_seconds):
            logger.info("Matching lease held by another worker; skipping this tick")
            return None

        lost = asyncio.Event()
        cycle = asyncio.create_task(self.matcher.run_cycle())
        keeper = asyncio.create_task(self._keep_lease(token, cycle, lost))
        try:
            return await cycle
        except asyncio.CancelledError:
            if not lost.is_set():
                raise
            logger.error("Matching lease lost mid-cycle; cycle aborted, will retry next tick")
            return None
        finally:
            keeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await keeper
            await release_lease(self.redis, LEASE_KEY, token)

    async def _keep_lease(self, token: str, cycle: asyncio.Task, lost: asyncio.Event) -> None:
        """Extend the lease while `cycle` runs; cancel the cycle if it slips away."""
        while not cycle.done():
            await asyncio.sleep(self.lease_renew_seconds)
            if cycle.done():
                return
            try:
                renewed = await renew_lease(self.redis, LEASE_KEY, token, self.lease_ttl_seconds)
            except RedisError as exc:
                logger.error("Could not renew matching lease: %s", exc)
                renewed = False
            if not renewed:
                lost.set()
                cycle.cancel()
                return

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop(), name="ride-matcher")
            logger.info("Ride matcher started (every %ss)", self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Ride matcher stopped")

    async def _loop(self) -> None:
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval_seconds)
