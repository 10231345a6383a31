import uuid
from datetime import datetime
from sqlalchemy import String, Integer, Boolean, ForeignKey, CheckConstraint, Index, func
from sqlalchemy.orm import Mapped, mapped_column
from ridematch.database import Base, UTCDateTime, utcnow


class DriverSchedule(Base):
    __tablename__ = "driver_schedules"
    __table_args__ = (
        CheckConstraint("seats_filled >= 0 AND seats_filled <= capacity", name="ck_driver_schedules_seats"),
        Index("idx_driver_schedules_pair_departure", "start_junction_id", "end_junction_id", "departure_time"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    driver_id: Mapped[str] = mapped_column(String, ForeignKey("drivers.id"), nullable=False, index=True)
    vehicle_type: Mapped[str] = mapped_column(String(10), nullable=False, default="KEKE")
    # Empty for schedules spawned by accepting a free-form request
    start_junction_id: Mapped[str | None] = mapped_column(String, ForeignKey("junctions.id"), nullable=True)
    end_junction_id: Mapped[str | None] = mapped_column(String, ForeignKey("junctions.id"), nullable=True)
    departure_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=4)
    seats_filled: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, server_default=func.now())
