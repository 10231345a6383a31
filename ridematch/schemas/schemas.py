from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, model_validator


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class VehicleTypeEnum(str, Enum):
    KEKE = "KEKE"
    CAR = "CAR"
    BUS = "BUS"


class RideTypeEnum(str, Enum):
    SHARED = "SHARED"
    PRIVATE = "PRIVATE"


class RequestStatusEnum(str, Enum):
    PENDING = "PENDING"
    MATCHING = "MATCHING"
    ACCEPTED = "ACCEPTED"
    CANCELLED = "CANCELLED"


class RideStatusEnum(str, Enum):
    SCHEDULED = "SCHEDULED"
    ONGOING = "ONGOING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# ---------------------------------------------------------------------------
# Ride request schemas
# ---------------------------------------------------------------------------

class RideRequestCreate(BaseModel):
    vehicle_type: VehicleTypeEnum
    start_junction_id: Optional[str] = None
    end_junction_id: Optional[str] = None
    start_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    start_lng: Optional[float] = Field(default=None, ge=-180, le=180)
    end_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    end_lng: Optional[float] = Field(default=None, ge=-180, le=180)
    scheduled_for: Optional[datetime] = None
    seats_needed: int = Field(default=1, ge=1, le=14)

    @model_validator(mode="after")
    def check_route(self):
        if self.vehicle_type == VehicleTypeEnum.KEKE:
            if not (self.start_junction_id and self.end_junction_id):
                raise ValueError("KEKE requests need start_junction_id and end_junction_id")
        elif None in (self.start_lat, self.start_lng, self.end_lat, self.end_lng):
            raise ValueError("CAR and BUS requests need start and end coordinates")
        return self


class RideRequestResponse(BaseModel):
    id: str
    passenger_id: str
    vehicle_type: VehicleTypeEnum
    ride_type: RideTypeEnum
    status: RequestStatusEnum
    start_junction_id: Optional[str] = None
    end_junction_id: Optional[str] = None
    start_lat: Optional[float] = None
    start_lng: Optional[float] = None
    end_lat: Optional[float] = None
    end_lng: Optional[float] = None
    scheduled_for: Optional[datetime] = None
    seats_needed: int
    price_quoted: Decimal
    is_chartered: bool
    expires_at: Optional[datetime] = None
    accepted_ride_id: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class NearbyRequestResponse(RideRequestResponse):
    distance_km: float


# ---------------------------------------------------------------------------
# Schedule schemas
# ---------------------------------------------------------------------------

class ScheduleCreateRequest(BaseModel):
    start_junction_id: str
    end_junction_id: str
    departure_time: datetime
    capacity: int = Field(default=4, ge=1, le=4)


class ScheduleResponse(BaseModel):
    id: str
    driver_id: str
    vehicle_type: VehicleTypeEnum
    start_junction_id: Optional[str] = None
    end_junction_id: Optional[str] = None
    departure_time: datetime
    capacity: int
    seats_filled: int
    is_active: bool

    model_config = {"from_attributes": True}


class RideRequestCreateResponse(BaseModel):
    request: RideRequestResponse
    matching_schedules: list[ScheduleResponse] = []


class JoinScheduleRequest(BaseModel):
    request_id: str


class SmartScanResponse(BaseModel):
    pending_count: int
    requests: list[RideRequestResponse]
    schedules: list[ScheduleResponse]


# ---------------------------------------------------------------------------
# Ride schemas
# ---------------------------------------------------------------------------

class RidePassengerResponse(BaseModel):
    id: str
    ride_id: str
    passenger_id: str
    request_id: Optional[str] = None
    payment_method: str
    price_paid: Decimal
    ticket_code: str
    scan_code: str
    rating: Optional[int] = None

    model_config = {"from_attributes": True}


class RideResponse(BaseModel):
    id: str
    driver_id: str
    schedule_id: Optional[str] = None
    vehicle_type: VehicleTypeEnum
    ride_type: RideTypeEnum
    status: RideStatusEnum
    short_code: str
    scan_code: str
    pickup_time: datetime
    capacity: int
    seats_filled: int
    total_amount: Decimal
    start_junction_id: Optional[str] = None
    end_junction_id: Optional[str] = None
    scheduled_by_driver: bool
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AcceptanceResponse(BaseModel):
    ride: RideResponse
    schedule: Optional[ScheduleResponse] = None
    accepted_request_ids: list[str]
    ride_passengers: list[RidePassengerResponse]


class GroupedAcceptRequest(BaseModel):
    request_ids: list[str] = Field(..., min_length=1, max_length=50)


class StartRideRequest(BaseModel):
    code: str = Field(..., min_length=4, max_length=8)


class CancelRideRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=255)


class RateRideRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)


# ---------------------------------------------------------------------------
# Driver / junction schemas
# ---------------------------------------------------------------------------

class DriverCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    phone: str = Field(..., min_length=7, max_length=20)
    vehicle_type: VehicleTypeEnum = VehicleTypeEnum.KEKE


class DriverResponse(BaseModel):
    id: str
    name: str
    phone: str
    vehicle_type: VehicleTypeEnum
    is_online: bool
    is_available: bool
    rating: float
    created_at: datetime

    model_config = {"from_attributes": True}


class LocationUpdateRequest(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    is_online: bool = True
    is_available: Optional[bool] = None


class JunctionResponse(BaseModel):
    id: str
    name: str
    lat: Optional[float] = None
    lng: Optional[float] = None

    model_config = {"from_attributes": True}
