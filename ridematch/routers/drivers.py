"""
Drivers router — POST /v1/drivers (create), POST /v1/drivers/{id}/location,
                 GET /v1/drivers/nearby-requests
"""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import update

from ridematch.database import get_db
from ridematch.middleware.auth import get_current_driver
from ridematch.models.driver import Driver
from ridematch.schemas.schemas import (
    DriverCreateRequest, DriverResponse, LocationUpdateRequest, NearbyRequestResponse, RideRequestResponse,
)
from ridematch.services.nearby import find_nearby

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/v1/drivers", tags=["Drivers"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=DriverResponse)
async def create_driver(
    payload: DriverCreateRequest,
    db: AsyncSession = Depends(get_db),
):
    """Register a new driver. No auth required for onboarding."""
    driver = Driver(
        name=payload.name,
        phone=payload.phone,
        vehicle_type=payload.vehicle_type.value,
        is_online=False,
    )
    db.add(driver)
    await db.commit()
    await db.refresh(driver)
    return DriverResponse.model_validate(driver)


@router.get("/nearby-requests", response_model=list[NearbyRequestResponse])
async def nearby_requests(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius_meters: float = Query(default=3000, gt=0, le=50_000),
    db: AsyncSession = Depends(get_db),
    driver_id: str = Depends(get_current_driver),
):
    """Pending CAR / BUS requests around the driver, nearest first."""
    driver = await db.get(Driver, driver_id)
    if not driver:
        raise HTTPException(status_code=404, detail="Driver not found")

    nearby = await find_nearby(db, driver.vehicle_type, lat, lng, radius_meters)
    return [
        NearbyRequestResponse(
            **RideRequestResponse.model_validate(n.request).model_dump(),
            distance_km=round(n.distance_km, 3),
        )
        for n in nearby
    ]


@router.post("/{driver_id}/location", status_code=status.HTTP_204_NO_CONTENT)
async def update_location(
    driver_id: str,
    payload: LocationUpdateRequest,
    db: AsyncSession = Depends(get_db),
    current_driver: str = Depends(get_current_driver),
):
    """Position heartbeat; also toggles whether the matcher may broadcast to this driver."""
    if driver_id != current_driver:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot update another driver")

    values = {
        "current_lat": payload.lat,
        "current_lng": payload.lng,
        "is_online": payload.is_online,
        "location_updated_at": datetime.now(timezone.utc),
    }
    if payload.is_available is not None:
        values["is_available"] = payload.is_available

    result = await db.execute(update(Driver).where(Driver.id == driver_id).values(**values))
    if result.rowcount != 1:
        await db.rollback()
        raise HTTPException(status_code=404, detail="Driver not found")
    await db.commit()
