"""
Schedules router — driver standing offers and passenger joins.
"""
import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ridematch.database import get_db
from ridematch.middleware.auth import get_current_driver, get_current_passenger
from ridematch.schemas.schemas import (
    JoinScheduleRequest, RidePassengerResponse, RideRequestResponse, ScheduleCreateRequest,
    ScheduleResponse, SmartScanResponse,
)
from ridematch.services import schedules as schedule_service
from ridematch.services.notifications import NotificationSink, get_notification_sink
from ridematch.services.routing import JunctionRoute

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/v1/schedules", tags=["Schedules"])


@router.get("", response_model=list[ScheduleResponse])
async def my_schedules(
    limit: int = Query(default=10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    driver_id: str = Depends(get_current_driver),
):
    schedules = await schedule_service.get_driver_schedules(db, driver_id, limit=limit)
    return [ScheduleResponse.model_validate(s) for s in schedules]


@router.post("", status_code=status.HTTP_201_CREATED, response_model=ScheduleResponse)
async def create_schedule(
    payload: ScheduleCreateRequest,
    db: AsyncSession = Depends(get_db),
    driver_id: str = Depends(get_current_driver),
):
    schedule = await schedule_service.create_schedule(
        db,
        driver_id,
        JunctionRoute(payload.start_junction_id, payload.end_junction_id),
        payload.departure_time,
        payload.capacity,
    )
    return ScheduleResponse.model_validate(schedule)


@router.get("/available", response_model=list[ScheduleResponse])
async def available_schedules(
    db: AsyncSession = Depends(get_db),
    passenger_id: str = Depends(get_current_passenger),
):
    schedules = await schedule_service.available_schedules(db)
    return [ScheduleResponse.model_validate(s) for s in schedules]


@router.get("/scan", response_model=SmartScanResponse)
async def smart_scan(
    start_junction_id: str = Query(default="all"),
    end_junction_id: str = Query(default="all"),
    window_minutes: int = Query(default=30, ge=1, le=24 * 60),
    db: AsyncSession = Depends(get_db),
    driver_id: str = Depends(get_current_driver),
):
    """Pending shared demand a driver could pick up in the next few minutes."""
    ride_requests, schedules = await schedule_service.smart_scan(
        db, start_junction_id, end_junction_id, window_minutes
    )
    return SmartScanResponse(
        pending_count=len(ride_requests),
        requests=[RideRequestResponse.model_validate(r) for r in ride_requests],
        schedules=[ScheduleResponse.model_validate(s) for s in schedules],
    )


@router.post("/{schedule_id}/join", status_code=status.HTTP_201_CREATED, response_model=RidePassengerResponse)
async def join_schedule(
    schedule_id: str,
    payload: JoinScheduleRequest,
    db: AsyncSession = Depends(get_db),
    passenger_id: str = Depends(get_current_passenger),
    sink: NotificationSink = Depends(get_notification_sink),
):
    _, ride_passenger = await schedule_service.join_schedule(
        db, passenger_id, payload.request_id, schedule_id, sink=sink
    )
    return RidePassengerResponse.model_validate(ride_passenger)
