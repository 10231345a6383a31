"""
Requests router — POST /v1/requests, POST /v1/requests/charter,
                  GET /v1/requests, POST /v1/requests/{id}/cancel
"""
import logging

from fastapi import APIRouter, Depends, Header, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from ridematch.database import get_db
from ridematch.middleware.auth import get_current_passenger
from ridematch.middleware.idempotency import check_idempotency, store_idempotency_result
from ridematch.schemas.schemas import (
    RideRequestCreate, RideRequestCreateResponse, RideRequestResponse, ScheduleResponse,
)
from ridematch.services import requests as request_service
from ridematch.services.routing import GeoRoute, JunctionRoute

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/v1/requests", tags=["Requests"])


def _route(payload: RideRequestCreate) -> JunctionRoute | GeoRoute:
    if payload.start_junction_id and payload.end_junction_id:
        return JunctionRoute(payload.start_junction_id, payload.end_junction_id)
    return GeoRoute(payload.start_lat, payload.start_lng, payload.end_lat, payload.end_lng)


async def _create(
    payload: RideRequestCreate,
    request: Request,
    db: AsyncSession,
    passenger_id: str,
    idempotency_key: str | None,
    chartered: bool,
):
    # 1. Idempotency check
    if idempotency_key:
        cached = await check_idempotency(request, passenger_id)
        if cached:
            return cached

    # 2. Quote, persist, collect schedule suggestions
    ride_request, suggestions = await request_service.create_request(
        db,
        passenger_id,
        payload.vehicle_type.value,
        _route(payload),
        scheduled_for=payload.scheduled_for,
        seats_needed=payload.seats_needed,
        chartered=chartered,
    )
    response = RideRequestCreateResponse(
        request=RideRequestResponse.model_validate(ride_request),
        matching_schedules=[ScheduleResponse.model_validate(s) for s in suggestions],
    )

    # 3. Store idempotency result
    if idempotency_key:
        await store_idempotency_result(
            passenger_id, idempotency_key, status.HTTP_201_CREATED, response.model_dump(mode="json")
        )
    return response


@router.post("", status_code=status.HTTP_201_CREATED, response_model=RideRequestCreateResponse)
async def create_request(
    payload: RideRequestCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    passenger_id: str = Depends(get_current_passenger),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
):
    return await _create(payload, request, db, passenger_id, idempotency_key, chartered=False)


@router.post("/charter", status_code=status.HTTP_201_CREATED, response_model=RideRequestCreateResponse)
async def create_charter_request(
    payload: RideRequestCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    passenger_id: str = Depends(get_current_passenger),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
):
    """Chartered requests book the whole vehicle and are never pooled."""
    return await _create(payload, request, db, passenger_id, idempotency_key, chartered=True)


@router.get("", response_model=list[RideRequestResponse])
async def list_requests(
    chartered: bool = Query(default=False),
    limit: int = Query(default=10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    passenger_id: str = Depends(get_current_passenger),
):
    ride_requests = await request_service.list_requests(db, passenger_id, chartered_only=chartered, limit=limit)
    return [RideRequestResponse.model_validate(r) for r in ride_requests]


@router.post("/{request_id}/cancel", status_code=status.HTTP_200_OK)
async def cancel_request(
    request_id: str,
    db: AsyncSession = Depends(get_db),
    passenger_id: str = Depends(get_current_passenger),
):
    await request_service.cancel_request(db, passenger_id, request_id)
    return {"id": request_id, "status": "CANCELLED"}
