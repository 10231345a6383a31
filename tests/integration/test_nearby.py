import pytest

from ridematch.services.nearby import find_nearby

DRIVER_AT = (6.5244, 3.3792)
# ~1.1 km of latitude per 0.01 degree
KM_PER_DEG = 111.19


def _north(km: float) -> tuple[float, float]:
    return DRIVER_AT[0] + km / KM_PER_DEG, DRIVER_AT[1]


@pytest.mark.asyncio
class TestFindNearby:
    async def test_filters_by_radius_and_sorts_by_distance(self, db, factory):
        two_and_half = await factory.geo_request(*_north(2.5))
        one = await factory.geo_request(*_north(1.0))
        await factory.geo_request(*_north(5.0))

        nearby = await find_nearby(db, "CAR", *DRIVER_AT, radius_meters=3000)

        assert [n.request.id for n in nearby] == [one.id, two_and_half.id]
        assert nearby[0].distance_km == pytest.approx(1.0, abs=0.01)
        assert all(n.distance_km <= 3.0 for n in nearby)

    async def test_only_pending_requests_of_the_vehicle_type(self, db, factory):
        await factory.geo_request(*_north(0.5), status="ACCEPTED")
        await factory.geo_request(*_north(0.5), vehicle_type="BUS")
        car = await factory.geo_request(*_north(0.8))

        nearby = await find_nearby(db, "CAR", *DRIVER_AT, radius_meters=3000)

        assert [n.request.id for n in nearby] == [car.id]

    async def test_junction_requests_are_never_returned(self, db, factory, route):
        start, end = route
        await factory.keke_request(start, end)
        assert await find_nearby(db, "KEKE", *DRIVER_AT, radius_meters=3000) == []

    async def test_box_corner_outside_circle_is_dropped(self, db, factory):
        # ~2.9 km north and ~2.9 km east: inside the 3 km bounding box, ~4.1 km away
        lat, _ = _north(2.9)
        lng = DRIVER_AT[1] + 2.9 / (KM_PER_DEG * 0.9959)
        await factory.geo_request(lat, lng)

        assert await find_nearby(db, "CAR", *DRIVER_AT, radius_meters=3000) == []

    async def test_nothing_nearby(self, db):
        assert await find_nearby(db, "BUS", *DRIVER_AT, radius_meters=3000) == []
