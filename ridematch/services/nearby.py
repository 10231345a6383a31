from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ridematch.config import get_settings
from ridematch.models.ride_request import RideRequest
from ridematch.services.geo import bounding_box, haversine_km

settings = get_settings()


@dataclass
class NearbyRequest:
    request: RideRequest
    distance_km: float


async def find_nearby(
    db: AsyncSession,
    vehicle_type: str,
    lat: float,
    lng: float,
    radius_meters: float,
) -> list[NearbyRequest]:
    """
    Closest pending free-form requests to a driver, nearest first.

    Bounding box in SQL, exact haversine in Python. At most
    `nearby_fetch_limit` rows are read and `nearby_result_limit` returned.
    """
    radius_km = radius_meters / 1000
    min_lat, max_lat, min_lng, max_lng = bounding_box(lat, lng, radius_km)

    result = await db.execute(
        select(RideRequest)
        .where(
            RideRequest.vehicle_type == vehicle_type,
            RideRequest.status == "PENDING",
            RideRequest.start_lat.is_not(None),
            RideRequest.start_lng.is_not(None),
            RideRequest.start_lat.between(min_lat, max_lat),
            RideRequest.start_lng.between(min_lng, max_lng),
        )
        .order_by(RideRequest.created_at)
        .limit(settings.nearby_fetch_limit)
    )

    nearby = []
    for request in result.scalars().all():
        distance_km = haversine_km(lat, lng, request.start_lat, request.start_lng)
        if distance_km <= radius_km:
            nearby.append(NearbyRequest(request=request, distance_km=distance_km))

    nearby.sort(key=lambda n: n.distance_km)
    return nearby[: settings.nearby_result_limit]
