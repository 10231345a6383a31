"""
Unit tests for route resolution and the chartered effect table.
"""
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from ridematch.services.routing import (
    CHARTER_POLICIES, GeoRoute, JunctionRoute, expires_at, route_columns, route_of,
    seat_capacity, target_time,
)

NOW = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)


def _request(**overrides):
    fields = dict(
        id="r1", start_junction_id=None, end_junction_id=None,
        start_lat=None, start_lng=None, end_lat=None, end_lng=None, scheduled_for=None,
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


class TestRouteOf:
    def test_junction_pair(self):
        route = route_of(_request(start_junction_id="j1", end_junction_id="j2"))
        assert route == JunctionRoute("j1", "j2")
        assert route.pair == ("j1", "j2")

    def test_coordinates(self):
        route = route_of(_request(start_lat=6.5, start_lng=3.3, end_lat=6.6, end_lng=3.4))
        assert route == GeoRoute(6.5, 3.3, 6.6, 3.4)

    def test_junctions_win_over_coordinates(self):
        route = route_of(_request(start_junction_id="j1", end_junction_id="j2", start_lat=6.5, start_lng=3.3,
                                  end_lat=6.6, end_lng=3.4))
        assert isinstance(route, JunctionRoute)

    def test_zero_coordinates_are_valid(self):
        assert route_of(_request(start_lat=0.0, start_lng=0.0, end_lat=0.0, end_lng=1.0)) == GeoRoute(0.0, 0.0, 0.0, 1.0)

    def test_half_a_junction_pair_is_rejected(self):
        with pytest.raises(ValueError):
            route_of(_request(start_junction_id="j1"))


class TestRouteColumns:
    def test_junction_columns(self):
        assert route_columns(JunctionRoute("j1", "j2")) == {"start_junction_id": "j1", "end_junction_id": "j2"}

    def test_geo_columns_use_requested_prefix(self):
        columns = route_columns(GeoRoute(1.0, 2.0, 3.0, 4.0))
        assert columns["requested_start_lat"] == 1.0
        assert columns["requested_end_lng"] == 4.0

    def test_unknown_route(self):
        with pytest.raises(TypeError):
            route_columns(("j1", "j2"))


class TestCapacity:
    @pytest.mark.parametrize("vehicle_type,seats", [("KEKE", 4), ("BUS", 14), ("CAR", 1), ("VAN", 1)])
    def test_seat_capacity(self, vehicle_type, seats):
        assert seat_capacity(vehicle_type) == seats


class TestCharterPolicy:
    def test_regular_requests_pool_and_create_schedules(self):
        policy = CHARTER_POLICIES[False]
        assert policy.creates_schedule and policy.aggregates_neighbours

    def test_chartered_requests_ride_alone(self):
        policy = CHARTER_POLICIES[True]
        assert not policy.creates_schedule and not policy.aggregates_neighbours

    def test_regular_expiry_counts_from_now(self):
        later = NOW + timedelta(hours=3)
        assert expires_at(False, later, NOW) == NOW + timedelta(minutes=10)

    def test_chartered_expiry_counts_from_scheduled_time(self):
        later = NOW + timedelta(hours=3)
        assert expires_at(True, later, NOW) == later + timedelta(minutes=60)

    def test_chartered_asap_expiry_counts_from_now(self):
        assert expires_at(True, None, NOW) == NOW + timedelta(minutes=60)


class TestTargetTime:
    def test_asap_request_leaves_now(self):
        assert target_time(_request(), NOW) == NOW

    def test_scheduled_request(self):
        at = NOW + timedelta(minutes=45)
        assert target_time(_request(scheduled_for=at), NOW) == at
