"""
Fare quoting: flat fares for fixed junction routes, distance fares otherwise.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Awaitable, Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ridematch.models.junction import RoutePrice
from ridematch.services.geo import haversine_km
from ridematch.services.routing import GeoRoute, JunctionRoute, Route

# ---------------------------------------------------------------------------
# Rates (NGN)
# ---------------------------------------------------------------------------
DEFAULT_FIXED_FARE = Decimal("500")
BASE_FEE: dict[str, float] = {"CAR": 600, "BUS": 1200}
RATE_PER_KM: dict[str, float] = {"CAR": 250, "BUS": 200}
MIN_FARE: dict[str, float] = {"CAR": 1200, "BUS": 2000}

QuoteFunction = Callable[[AsyncSession, str, Route], Awaitable[Decimal]]


def _to_unit(value: float | Decimal) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def calculate_fixed_fare(base_price: Decimal | None) -> Decimal:
    """Flat fare for a junction pair; falls back to the default when no route is priced."""
    if base_price is None:
        return DEFAULT_FIXED_FARE
    return Decimal(base_price).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def calculate_distance_fare(vehicle_type: str, distance_km: float) -> Decimal:
    """
    fare = max(min_fare, base + per_km * distance), rounded to the nearest unit.
    Unknown vehicle types use CAR rates.
    """
    base = BASE_FEE.get(vehicle_type, BASE_FEE["CAR"])
    per_km = RATE_PER_KM.get(vehicle_type, RATE_PER_KM["CAR"])
    min_fare = MIN_FARE.get(vehicle_type, MIN_FARE["CAR"])
    return _to_unit(max(min_fare, base + per_km * distance_km))


async def lookup_route_price(db: AsyncSession, vehicle_type: str, route: JunctionRoute) -> Decimal | None:
    result = await db.execute(
        select(RoutePrice.base_price).where(
            RoutePrice.vehicle_type == vehicle_type,
            RoutePrice.start_junction_id == route.start_junction_id,
            RoutePrice.end_junction_id == route.end_junction_id,
            RoutePrice.is_active.is_(True),
        )
    )
    return result.scalar_one_or_none()


async def quote_route(db: AsyncSession, vehicle_type: str, route: Route) -> Decimal:
    """Default quote function used at request creation."""
    if isinstance(route, JunctionRoute):
        return calculate_fixed_fare(await lookup_route_price(db, vehicle_type, route))
    if isinstance(route, GeoRoute):
        distance_km = haversine_km(route.start_lat, route.start_lng, route.end_lat, route.end_lng)
        return calculate_distance_fare(vehicle_type, distance_km)
    raise TypeError(f"Unsupported route type: {type(route).__name__}")
