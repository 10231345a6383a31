"""
Integration tests for direct and grouped driver acceptance against a real
(SQLite) database.
"""
import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from ridematch.exceptions import HeterogeneousGroup, MatchingError, NoValidRequests, RequestUnavailable
from ridematch.models import DriverSchedule, Ride, RidePassenger, RideRequest
from ridematch.services.acceptance import accept_grouped, accept_request


async def _statuses(session_factory, ids):
    async with session_factory() as session:
        result = await session.execute(select(RideRequest).where(RideRequest.id.in_(ids)))
        return {r.id: r for r in result.scalars().all()}


@pytest.mark.asyncio
class TestDirectAcceptance:
    async def test_shared_keke_fills_to_four_seats(self, db, factory, route, clock, session_factory):
        start, end = route
        driver = await factory.driver()
        requests = [await factory.keke_request(start, end, created_ago=timedelta(minutes=10 - i)) for i in range(5)]

        result = await accept_request(db, driver.id, requests[0].id, clock=clock)

        assert result.ride.seats_filled == 4
        assert result.ride.capacity == 4
        assert result.ride.ride_type == "SHARED"
        assert result.schedule is not None and result.schedule.seats_filled == 4
        assert result.ride.schedule_id == result.schedule.id
        assert result.ride.total_amount == Decimal("2000")
        assert len(result.ride_passengers) == 4
        assert requests[0].id in result.accepted_request_ids

        stored = await _statuses(session_factory, [r.id for r in requests])
        accepted = [r for r in stored.values() if r.status == "ACCEPTED"]
        assert len(accepted) == 4
        assert {r.accepted_ride_id for r in accepted} == {result.ride.id}
        assert [r.status for r in stored.values()].count("PENDING") == 1

    async def test_neighbours_nearest_in_time_win(self, db, factory, route, clock):
        start, end = route
        ten = clock.now().replace(hour=10, minute=0)
        driver = await factory.driver()
        primary = await factory.keke_request(start, end, scheduled_for=ten)
        by_offset = {
            offset: await factory.keke_request(start, end, scheduled_for=ten + timedelta(minutes=offset))
            for offset in (30, 5, -2, 60, 1)
        }

        result = await accept_request(db, driver.id, primary.id, clock=clock)

        assert set(result.accepted_request_ids) == {primary.id, by_offset[1].id, by_offset[-2].id, by_offset[5].id}
        assert result.ride.pickup_time == ten

    async def test_same_passenger_is_seated_once(self, db, factory, route, clock):
        start, end = route
        driver = await factory.driver()
        primary = await factory.keke_request(start, end, passenger_id="ada")
        duplicate = await factory.keke_request(start, end, passenger_id="ada")
        other = await factory.keke_request(start, end, passenger_id="bola")

        result = await accept_request(db, driver.id, primary.id, clock=clock)

        assert set(result.accepted_request_ids) == {primary.id, other.id}
        assert duplicate.id not in result.accepted_request_ids
        assert result.ride.seats_filled == 2

    async def test_chartered_request_rides_alone_without_schedule(self, db, factory, route, clock, session_factory):
        start, end = route
        driver = await factory.driver()
        chartered = await factory.keke_request(start, end, chartered=True)
        neighbour = await factory.keke_request(start, end)

        result = await accept_request(db, driver.id, chartered.id, clock=clock)

        assert result.schedule is None
        assert result.ride.schedule_id is None
        assert result.ride.seats_filled == 1
        assert result.accepted_request_ids == [chartered.id]
        stored = await _statuses(session_factory, [neighbour.id])
        assert stored[neighbour.id].status == "PENDING"
        async with session_factory() as session:
            assert (await session.execute(select(DriverSchedule))).scalars().all() == []

    async def test_chartered_neighbours_are_not_pooled(self, db, factory, route, clock):
        start, end = route
        driver = await factory.driver()
        primary = await factory.keke_request(start, end)
        chartered = await factory.keke_request(start, end, chartered=True)

        result = await accept_request(db, driver.id, primary.id, clock=clock)

        assert chartered.id not in result.accepted_request_ids
        assert result.ride.seats_filled == 1

    async def test_private_car_request(self, db, factory, clock):
        driver = await factory.driver("CAR")
        request = await factory.geo_request(6.5244, 3.3792)

        result = await accept_request(db, driver.id, request.id, clock=clock)

        assert result.ride.capacity == 1
        assert result.ride.seats_filled == 1
        assert result.ride.ride_type == "PRIVATE"
        assert result.ride.requested_start_lat == 6.5244
        assert result.ride.start_junction_id is None
        assert result.ride.pickup_time == clock.now()
        assert result.ride.total_amount == Decimal("1500")

    async def test_unknown_request(self, db, factory, clock):
        driver = await factory.driver()
        with pytest.raises(RequestUnavailable):
            await accept_request(db, driver.id, "does-not-exist", clock=clock)

    async def test_request_no_longer_pending(self, db, factory, route, clock, session_factory):
        start, end = route
        driver = await factory.driver()
        request = await factory.keke_request(start, end, status="CANCELLED")

        with pytest.raises(RequestUnavailable):
            await accept_request(db, driver.id, request.id, clock=clock)

        async with session_factory() as session:
            assert (await session.execute(select(Ride))).scalars().all() == []

    async def test_concurrent_acceptance_has_one_winner(self, factory, route, clock, session_factory):
        start, end = route
        first, second = await factory.driver(), await factory.driver()
        request = await factory.keke_request(start, end)

        async def attempt(driver_id):
            async with session_factory() as session:
                return await accept_request(session, driver_id, request.id, clock=clock)

        outcomes = await asyncio.gather(attempt(first.id), attempt(second.id), return_exceptions=True)

        winners = [o for o in outcomes if not isinstance(o, BaseException)]
        losers = [o for o in outcomes if isinstance(o, BaseException)]
        assert len(winners) == 1
        assert len(losers) == 1 and isinstance(losers[0], MatchingError)

        async with session_factory() as session:
            seats = (await session.execute(select(RidePassenger))).scalars().all()
            rides = (await session.execute(select(Ride))).scalars().all()
        assert len(seats) == 1
        assert len(rides) == 1
        assert rides[0].seats_filled == 1


@pytest.mark.asyncio
class TestGroupedAcceptance:
    async def test_accepts_whole_group(self, db, factory, route, clock, sink, session_factory):
        start, end = route
        driver = await factory.driver()
        at = clock.now() + timedelta(minutes=20)
        group = [
            await factory.keke_request(start, end, status="MATCHING", scheduled_for=at + timedelta(minutes=i))
            for i in range(3)
        ]

        result = await accept_grouped(db, driver.id, [r.id for r in group], clock=clock, sink=sink)

        assert result.ride.seats_filled == 3
        assert result.ride.capacity == 4
        assert result.schedule.seats_filled == 3
        assert result.ride.pickup_time == at
        assert result.ride.total_amount == Decimal("1500")

        stored = await _statuses(session_factory, [r.id for r in group])
        assert all(r.status == "ACCEPTED" and r.accepted_ride_id == result.ride.id for r in stored.values())
        assert all(r.matching_since is None for r in stored.values())

        assert len(sink.sent) == 3
        assert {n.recipient_id for n in sink.sent} == {r.passenger_id for r in group}
        assert all(n.payload["type"] == "REQUEST_ACCEPTED" for n in sink.sent)

    async def test_overflow_goes_back_to_pending(self, db, factory, route, clock, sink, session_factory):
        start, end = route
        driver = await factory.driver()
        group = [
            await factory.keke_request(start, end, status="MATCHING", created_ago=timedelta(minutes=30 - i))
            for i in range(6)
        ]

        result = await accept_grouped(db, driver.id, [r.id for r in group], clock=clock, sink=sink)

        assert result.ride.seats_filled == 4
        assert result.accepted_request_ids == [r.id for r in group[:4]]
        stored = await _statuses(session_factory, [r.id for r in group])
        assert [stored[r.id].status for r in group[4:]] == ["PENDING", "PENDING"]

    async def test_mixed_routes_are_rejected(self, db, factory, route, clock, session_factory):
        start, end = route
        elsewhere = await factory.junction("Obalende")
        driver = await factory.driver()
        one = await factory.keke_request(start, end, status="MATCHING")
        other = await factory.keke_request(start, elsewhere, status="MATCHING")

        with pytest.raises(HeterogeneousGroup):
            await accept_grouped(db, driver.id, [one.id, other.id], clock=clock)

        stored = await _statuses(session_factory, [one.id, other.id])
        assert {r.status for r in stored.values()} == {"MATCHING"}

    async def test_chartered_request_cannot_join_a_group(self, db, factory, route, clock, session_factory):
        start, end = route
        driver = await factory.driver()
        shared = await factory.keke_request(start, end, status="MATCHING")
        chartered = await factory.keke_request(start, end, chartered=True)

        with pytest.raises(HeterogeneousGroup):
            await accept_grouped(db, driver.id, [shared.id, chartered.id], clock=clock)

        stored = await _statuses(session_factory, [shared.id, chartered.id])
        assert stored[shared.id].status == "MATCHING"
        assert stored[chartered.id].status == "PENDING"

    async def test_nothing_left_to_accept(self, db, factory, route, clock):
        start, end = route
        driver = await factory.driver()
        taken = await factory.keke_request(start, end, status="ACCEPTED")

        with pytest.raises(NoValidRequests):
            await accept_grouped(db, driver.id, [taken.id, "missing"], clock=clock)

    async def test_notification_failure_does_not_undo_acceptance(self, db, factory, route, clock, sink, session_factory):
        start, end = route
        driver = await factory.driver()
        request = await factory.keke_request(start, end, status="MATCHING", passenger_id="unreachable")
        sink.fail_for.add("unreachable")

        result = await accept_grouped(db, driver.id, [request.id], clock=clock, sink=sink)

        stored = await _statuses(session_factory, [request.id])
        assert stored[request.id].status == "ACCEPTED"
        assert result.ride.seats_filled == 1
