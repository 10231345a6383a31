import pytest

from ridematch.services.geo import bounding_box, haversine_km

IKEJA = (6.6018, 3.3515)
YABA = (6.5095, 3.3711)


class TestHaversine:
    def test_same_point(self):
        assert haversine_km(*IKEJA, *IKEJA) == 0

    def test_known_distance(self):
        # Ikeja to Yaba is a little over 10 km as the crow flies
        assert haversine_km(*IKEJA, *YABA) == pytest.approx(10.5, abs=0.3)

    def test_symmetric(self):
        assert haversine_km(*IKEJA, *YABA) == pytest.approx(haversine_km(*YABA, *IKEJA))

    def test_one_degree_latitude(self):
        assert haversine_km(0, 0, 1, 0) == pytest.approx(111.19, abs=0.01)


class TestBoundingBox:
    def test_contains_points_on_the_circle(self):
        lat, lng = IKEJA
        min_lat, max_lat, min_lng, max_lng = bounding_box(lat, lng, 3.0)
        # due north / east points ~3 km away
        assert min_lat < lat + 0.0269 < max_lat
        assert min_lng < lng + 0.0271 < max_lng
        assert haversine_km(lat, lng, lat + 0.0269, lng) < 3.0

    def test_box_is_centred(self):
        min_lat, max_lat, min_lng, max_lng = bounding_box(10.0, 20.0, 5.0)
        assert (min_lat + max_lat) / 2 == pytest.approx(10.0)
        assert (min_lng + max_lng) / 2 == pytest.approx(20.0)

    def test_near_pole_spans_all_longitudes(self):
        _, max_lat, min_lng, max_lng = bounding_box(89.99, 0.0, 5.0)
        assert max_lat == 90.0
        assert (min_lng, max_lng) == (-180.0, 180.0)

    def test_antimeridian_spans_all_longitudes(self):
        _, _, min_lng, max_lng = bounding_box(0.0, 179.99, 5.0)
        assert (min_lng, max_lng) == (-180.0, 180.0)
