import uuid
from datetime import datetime
from decimal import Decimal
from sqlalchemy import String, Float, Integer, Numeric, Boolean, ForeignKey, Index, func
from sqlalchemy.orm import Mapped, mapped_column
from ridematch.database import Base, UTCDateTime, utcnow


class RideRequest(Base):
    __tablename__ = "ride_requests"
    __table_args__ = (
        Index("idx_ride_requests_pair_status", "start_junction_id", "end_junction_id", "status"),
        Index("idx_ride_requests_pickup", "vehicle_type", "start_lat", "start_lng"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    passenger_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    # KEKE | CAR | BUS
    vehicle_type: Mapped[str] = mapped_column(String(10), nullable=False)
    # SHARED | PRIVATE
    ride_type: Mapped[str] = mapped_column(String(10), nullable=False)

    # Junction route (KEKE) or free-form coordinates (CAR / BUS)
    start_junction_id: Mapped[str | None] = mapped_column(String, ForeignKey("junctions.id"), nullable=True)
    end_junction_id: Mapped[str | None] = mapped_column(String, ForeignKey("junctions.id"), nullable=True)
    start_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    start_lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    end_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    end_lng: Mapped[float | None] = mapped_column(Float, nullable=True)

    scheduled_for: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    seats_needed: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    price_quoted: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    is_chartered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # PENDING | MATCHING | ACCEPTED | CANCELLED
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING", index=True)
    accepted_ride_id: Mapped[str | None] = mapped_column(String, ForeignKey("rides.id"), nullable=True)
    matching_since: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    broadcast_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, server_default=func.now(), index=True)
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, onupdate=utcnow)
