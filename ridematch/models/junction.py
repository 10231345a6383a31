import uuid
from decimal import Decimal
from sqlalchemy import String, Float, Numeric, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from ridematch.database import Base


class Junction(Base):
    __tablename__ = "junctions"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    lng: Mapped[float | None] = mapped_column(Float, nullable=True)


class RoutePrice(Base):
    """Flat fare for a fixed junction pair."""
    __tablename__ = "route_prices"
    __table_args__ = (
        UniqueConstraint("vehicle_type", "start_junction_id", "end_junction_id", name="uq_route_prices_pair"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    vehicle_type: Mapped[str] = mapped_column(String(10), nullable=False, default="KEKE")
    start_junction_id: Mapped[str] = mapped_column(String, ForeignKey("junctions.id"), nullable=False)
    end_junction_id: Mapped[str] = mapped_column(String, ForeignKey("junctions.id"), nullable=False)
    base_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
