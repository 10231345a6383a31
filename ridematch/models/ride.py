import uuid
from datetime import datetime
from decimal import Decimal
from sqlalchemy import String, Float, Integer, Numeric, Boolean, ForeignKey, CheckConstraint, Index, text, func
from sqlalchemy.orm import Mapped, mapped_column
from ridematch.database import Base, UTCDateTime, utcnow


class Ride(Base):
    __tablename__ = "rides"
    __table_args__ = (
        CheckConstraint("seats_filled >= 0 AND seats_filled <= capacity", name="ck_rides_seats"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    driver_id: Mapped[str] = mapped_column(String, ForeignKey("drivers.id"), nullable=False, index=True)
    schedule_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("driver_schedules.id"), nullable=True, index=True
    )
    vehicle_type: Mapped[str] = mapped_column(String(10), nullable=False)
    ride_type: Mapped[str] = mapped_column(String(10), nullable=False)
    # SCHEDULED | ONGOING | COMPLETED | CANCELLED
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="SCHEDULED", index=True)
    scan_code: Mapped[str] = mapped_column(String(64), nullable=False)
    short_code: Mapped[str] = mapped_column(String(8), nullable=False)
    pickup_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    seats_filled: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    commission: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))

    start_junction_id: Mapped[str | None] = mapped_column(String, ForeignKey("junctions.id"), nullable=True)
    end_junction_id: Mapped[str | None] = mapped_column(String, ForeignKey("junctions.id"), nullable=True)
    requested_start_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    requested_start_lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    requested_end_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    requested_end_lng: Mapped[float | None] = mapped_column(Float, nullable=True)

    scheduled_by_driver: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    ended_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, server_default=func.now(), index=True)


class RidePassenger(Base):
    __tablename__ = "ride_passengers"
    __table_args__ = (
        # One live seat per passenger per ride; cancelled rows don't count
        Index(
            "uq_ride_passengers_active",
            "ride_id",
            "passenger_id",
            unique=True,
            postgresql_where=text("cancelled_at IS NULL"),
            sqlite_where=text("cancelled_at IS NULL"),
        ),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    ride_id: Mapped[str] = mapped_column(String, ForeignKey("rides.id"), nullable=False, index=True)
    passenger_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    request_id: Mapped[str | None] = mapped_column(String, ForeignKey("ride_requests.id"), nullable=True)
    # CASH | CARD | WALLET
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False, default="CASH")
    price_paid: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    ticket_code: Mapped[str] = mapped_column(String(4), nullable=False)
    scan_code: Mapped[str] = mapped_column(String(64), nullable=False)
    rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, server_default=func.now())
