"""
Great-circle helpers used by free-form (non-junction) proximity search.
"""
from math import radians, degrees, sin, cos, sqrt, atan2, asin

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE_LAT = 111.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points, in kilometres."""
    phi1, phi2 = radians(lat1), radians(lat2)
    dphi = radians(lat2 - lat1)
    dlambda = radians(lng2 - lng1)
    a = sin(dphi / 2) ** 2 + cos(phi1) * cos(phi2) * sin(dlambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * atan2(sqrt(a), sqrt(1 - a))


def bounding_box(lat: float, lng: float, radius_km: float) -> tuple[float, float, float, float]:
    """
    Coarse (min_lat, max_lat, min_lng, max_lng) box enclosing a radius.

    Always a superset of the haversine circle, so it is only used as a cheap
    SQL prefilter before the exact distance check. Boxes touching a pole or
    the antimeridian fall back to the full longitude range.
    """
    lat_delta = radius_km / KM_PER_DEGREE_LAT
    min_lat, max_lat = lat - lat_delta, lat + lat_delta
    if min_lat <= -90 or max_lat >= 90:
        return max(min_lat, -90.0), min(max_lat, 90.0), -180.0, 180.0

    ratio = sin(radius_km / EARTH_RADIUS_KM) / cos(radians(lat))
    if ratio >= 1:
        return min_lat, max_lat, -180.0, 180.0
    lng_delta = degrees(asin(ratio))
    min_lng, max_lng = lng - lng_delta, lng + lng_delta
    if min_lng < -180 or max_lng > 180:
        return min_lat, max_lat, -180.0, 180.0
    return min_lat, max_lat, min_lng, max_lng
