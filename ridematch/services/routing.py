"""
Route shapes and per-request policy.

A request travels either between two fixed junctions (KEKE shared trips) or
between two free-form coordinates (CAR / BUS private trips). `route_of`
turns the nullable columns of a RideRequest into exactly one of the two.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Union

from ridematch.config import get_settings

settings = get_settings()

# Seats per vehicle class; anything not listed is a single-seat private car.
SEAT_CAPACITY: dict[str, int] = {"KEKE": 4, "BUS": 14}
DEFAULT_CAPACITY = 1
GROUPED_CAPACITY = SEAT_CAPACITY["KEKE"]


@dataclass(frozen=True)
class JunctionRoute:
    start_junction_id: str
    end_junction_id: str

    @property
    def pair(self) -> tuple[str, str]:
        return self.start_junction_id, self.end_junction_id


@dataclass(frozen=True)
class GeoRoute:
    start_lat: float
    start_lng: float
    end_lat: float
    end_lng: float


Route = Union[JunctionRoute, GeoRoute]


def route_of(request) -> Route:
    """Resolve the route of a request (or any object with the same columns)."""
    if request.start_junction_id and request.end_junction_id:
        return JunctionRoute(request.start_junction_id, request.end_junction_id)
    coords = (request.start_lat, request.start_lng, request.end_lat, request.end_lng)
    if all(c is not None for c in coords):
        return GeoRoute(*coords)
    raise ValueError(f"Request {request.id} has neither a junction pair nor coordinates")


def route_columns(route: Route) -> dict:
    """Column values a Ride / DriverSchedule should carry for this route."""
    if isinstance(route, JunctionRoute):
        return {"start_junction_id": route.start_junction_id, "end_junction_id": route.end_junction_id}
    if isinstance(route, GeoRoute):
        return {
            "requested_start_lat": route.start_lat,
            "requested_start_lng": route.start_lng,
            "requested_end_lat": route.end_lat,
            "requested_end_lng": route.end_lng,
        }
    raise TypeError(f"Unsupported route type: {type(route).__name__}")


def seat_capacity(vehicle_type: str) -> int:
    return SEAT_CAPACITY.get(vehicle_type, DEFAULT_CAPACITY)


def is_shared_keke(request) -> bool:
    return request.vehicle_type == "KEKE" and request.ride_type == "SHARED"


def target_time(request, now: datetime) -> datetime:
    """When the passenger wants to leave: `scheduled_for`, or now for ASAP requests."""
    return request.scheduled_for or now


@dataclass(frozen=True)
class CharterPolicy:
    creates_schedule: bool
    aggregates_neighbours: bool
    expiry: timedelta
    expiry_from_scheduled_time: bool


CHARTER_POLICIES: dict[bool, CharterPolicy] = {
    False: CharterPolicy(
        creates_schedule=True,
        aggregates_neighbours=True,
        expiry=timedelta(minutes=settings.request_expiry_minutes),
        expiry_from_scheduled_time=False,
    ),
    True: CharterPolicy(
        creates_schedule=False,
        aggregates_neighbours=False,
        expiry=timedelta(minutes=settings.chartered_expiry_minutes),
        expiry_from_scheduled_time=True,
    ),
}


def charter_policy(is_chartered: bool) -> CharterPolicy:
    return CHARTER_POLICIES[bool(is_chartered)]


def expires_at(is_chartered: bool, scheduled_for: datetime | None, now: datetime) -> datetime:
    policy = charter_policy(is_chartered)
    anchor = scheduled_for if (policy.expiry_from_scheduled_time and scheduled_for) else now
    return anchor + policy.expiry
