"""
Rides router — driver acceptance (direct and grouped) and ride lifecycle.
"""
import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ridematch.database import get_db
from ridematch.middleware.auth import get_current_driver, get_current_passenger
from ridematch.schemas.schemas import (
    AcceptanceResponse, CancelRideRequest, GroupedAcceptRequest, RateRideRequest,
    RidePassengerResponse, RideResponse, ScheduleResponse, StartRideRequest,
)
from ridematch.services import acceptance, lifecycle
from ridematch.services.notifications import NotificationSink, get_notification_sink

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/v1/rides", tags=["Rides"])


def _acceptance_response(result: acceptance.AcceptanceResult) -> AcceptanceResponse:
    return AcceptanceResponse(
        ride=RideResponse.model_validate(result.ride),
        schedule=ScheduleResponse.model_validate(result.schedule) if result.schedule else None,
        accepted_request_ids=result.accepted_request_ids,
        ride_passengers=[RidePassengerResponse.model_validate(rp) for rp in result.ride_passengers],
    )


@router.post("/grouped/accept", status_code=status.HTTP_201_CREATED, response_model=AcceptanceResponse)
async def accept_grouped_requests(
    payload: GroupedAcceptRequest,
    db: AsyncSession = Depends(get_db),
    driver_id: str = Depends(get_current_driver),
    sink: NotificationSink = Depends(get_notification_sink),
):
    """Accept a bundle of requests broadcast by the periodic matcher."""
    result = await acceptance.accept_grouped(db, driver_id, payload.request_ids, sink=sink)
    return _acceptance_response(result)


@router.post("/{request_id}/accept", status_code=status.HTTP_201_CREATED, response_model=AcceptanceResponse)
async def accept_request(
    request_id: str,
    db: AsyncSession = Depends(get_db),
    driver_id: str = Depends(get_current_driver),
):
    """Accept one pending request; shared KEKE rides are topped up with nearby demand."""
    result = await acceptance.accept_request(db, driver_id, request_id)
    return _acceptance_response(result)


@router.post("/{ride_id}/start", response_model=RideResponse)
async def start_ride(
    ride_id: str,
    payload: StartRideRequest,
    db: AsyncSession = Depends(get_db),
    driver_id: str = Depends(get_current_driver),
):
    ride = await lifecycle.start_ride(db, driver_id, ride_id, payload.code)
    return RideResponse.model_validate(ride)


@router.post("/{ride_id}/complete", response_model=RideResponse)
async def complete_ride(
    ride_id: str,
    db: AsyncSession = Depends(get_db),
    driver_id: str = Depends(get_current_driver),
):
    ride = await lifecycle.complete_ride(db, driver_id, ride_id)
    return RideResponse.model_validate(ride)


@router.post("/{ride_id}/cancel", response_model=RideResponse)
async def cancel_ride(
    ride_id: str,
    payload: CancelRideRequest,
    db: AsyncSession = Depends(get_db),
    driver_id: str = Depends(get_current_driver),
    sink: NotificationSink = Depends(get_notification_sink),
):
    ride = await lifecycle.cancel_ride(db, driver_id, ride_id, payload.reason, sink=sink)
    return RideResponse.model_validate(ride)


@router.post("/{ride_id}/leave", response_model=RideResponse)
async def leave_ride(
    ride_id: str,
    db: AsyncSession = Depends(get_db),
    passenger_id: str = Depends(get_current_passenger),
):
    ride = await lifecycle.leave_ride(db, passenger_id, ride_id)
    return RideResponse.model_validate(ride)


@router.post("/{ride_id}/rate", response_model=RidePassengerResponse)
async def rate_ride(
    ride_id: str,
    payload: RateRideRequest,
    db: AsyncSession = Depends(get_db),
    passenger_id: str = Depends(get_current_passenger),
):
    ride_passenger = await lifecycle.rate_ride(db, passenger_id, ride_id, payload.rating)
    return RidePassengerResponse.model_validate(ride_passenger)
