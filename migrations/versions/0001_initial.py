"""Initial schema — junctions, drivers, schedules, rides, ride requests, ride passengers"""
from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "junctions",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("name", sa.String(255), unique=True, nullable=False),
        sa.Column("lat", sa.Float, nullable=True),
        sa.Column("lng", sa.Float, nullable=True),
    )

    op.create_table(
        "drivers",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(20), unique=True, nullable=False),
        sa.Column("vehicle_type", sa.String(10), nullable=False, server_default="KEKE"),
        sa.Column("is_online", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_available", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("is_blocked", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("rating", sa.Float, nullable=False, server_default="5.0"),
        sa.Column("current_lat", sa.Float, nullable=True),
        sa.Column("current_lng", sa.Float, nullable=True),
        sa.Column("location_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_drivers_vehicle_type", "drivers", ["vehicle_type"])

    op.create_table(
        "route_prices",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("vehicle_type", sa.String(10), nullable=False, server_default="KEKE"),
        sa.Column("start_junction_id", sa.String, sa.ForeignKey("junctions.id"), nullable=False),
        sa.Column("end_junction_id", sa.String, sa.ForeignKey("junctions.id"), nullable=False),
        sa.Column("base_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.UniqueConstraint("vehicle_type", "start_junction_id", "end_junction_id", name="uq_route_prices_pair"),
    )

    op.create_table(
        "driver_schedules",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("driver_id", sa.String, sa.ForeignKey("drivers.id"), nullable=False),
        sa.Column("vehicle_type", sa.String(10), nullable=False, server_default="KEKE"),
        sa.Column("start_junction_id", sa.String, sa.ForeignKey("junctions.id"), nullable=True),
        sa.Column("end_junction_id", sa.String, sa.ForeignKey("junctions.id"), nullable=True),
        sa.Column("departure_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("capacity", sa.Integer, nullable=False, server_default="4"),
        sa.Column("seats_filled", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("seats_filled >= 0 AND seats_filled <= capacity", name="ck_driver_schedules_seats"),
    )
    op.create_index("ix_driver_schedules_driver_id", "driver_schedules", ["driver_id"])
    op.create_index(
        "idx_driver_schedules_pair_departure",
        "driver_schedules",
        ["start_junction_id", "end_junction_id", "departure_time"],
    )

    op.create_table(
        "rides",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("driver_id", sa.String, sa.ForeignKey("drivers.id"), nullable=False),
        sa.Column("schedule_id", sa.String, sa.ForeignKey("driver_schedules.id"), nullable=True),
        sa.Column("vehicle_type", sa.String(10), nullable=False),
        sa.Column("ride_type", sa.String(10), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="SCHEDULED"),
        sa.Column("scan_code", sa.String(64), nullable=False),
        sa.Column("short_code", sa.String(8), nullable=False),
        sa.Column("pickup_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("capacity", sa.Integer, nullable=False),
        sa.Column("seats_filled", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("commission", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("start_junction_id", sa.String, sa.ForeignKey("junctions.id"), nullable=True),
        sa.Column("end_junction_id", sa.String, sa.ForeignKey("junctions.id"), nullable=True),
        sa.Column("requested_start_lat", sa.Float, nullable=True),
        sa.Column("requested_start_lng", sa.Float, nullable=True),
        sa.Column("requested_end_lat", sa.Float, nullable=True),
        sa.Column("requested_end_lng", sa.Float, nullable=True),
        sa.Column("scheduled_by_driver", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_reason", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("seats_filled >= 0 AND seats_filled <= capacity", name="ck_rides_seats"),
    )
    op.create_index("ix_rides_driver_id", "rides", ["driver_id"])
    op.create_index("ix_rides_schedule_id", "rides", ["schedule_id"])
    op.create_index("ix_rides_status", "rides", ["status"])
    op.create_index("ix_rides_created_at", "rides", ["created_at"])

    op.create_table(
        "ride_requests",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("passenger_id", sa.String, nullable=False),
        sa.Column("vehicle_type", sa.String(10), nullable=False),
        sa.Column("ride_type", sa.String(10), nullable=False),
        sa.Column("start_junction_id", sa.String, sa.ForeignKey("junctions.id"), nullable=True),
        sa.Column("end_junction_id", sa.String, sa.ForeignKey("junctions.id"), nullable=True),
        sa.Column("start_lat", sa.Float, nullable=True),
        sa.Column("start_lng", sa.Float, nullable=True),
        sa.Column("end_lat", sa.Float, nullable=True),
        sa.Column("end_lng", sa.Float, nullable=True),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=True),
        sa.Column("seats_needed", sa.Integer, nullable=False, server_default="1"),
        sa.Column("price_quoted", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("is_chartered", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("accepted_ride_id", sa.String, sa.ForeignKey("rides.id"), nullable=True),
        sa.Column("matching_since", sa.DateTime(timezone=True), nullable=True),
        sa.Column("broadcast_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_ride_requests_passenger_id", "ride_requests", ["passenger_id"])
    op.create_index("ix_ride_requests_status", "ride_requests", ["status"])
    op.create_index("ix_ride_requests_created_at", "ride_requests", ["created_at"])
    op.create_index(
        "idx_ride_requests_pair_status",
        "ride_requests",
        ["start_junction_id", "end_junction_id", "status"],
    )
    # Nearby search filters on the pickup bounding box
    op.create_index("idx_ride_requests_pickup", "ride_requests", ["vehicle_type", "start_lat", "start_lng"])

    op.create_table(
        "ride_passengers",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("ride_id", sa.String, sa.ForeignKey("rides.id"), nullable=False),
        sa.Column("passenger_id", sa.String, nullable=False),
        sa.Column("request_id", sa.String, sa.ForeignKey("ride_requests.id"), nullable=True),
        sa.Column("payment_method", sa.String(20), nullable=False, server_default="CASH"),
        sa.Column("price_paid", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("ticket_code", sa.String(4), nullable=False),
        sa.Column("scan_code", sa.String(64), nullable=False),
        sa.Column("rating", sa.Integer, nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_ride_passengers_ride_id", "ride_passengers", ["ride_id"])
    op.create_index("ix_ride_passengers_passenger_id", "ride_passengers", ["passenger_id"])
    op.create_index(
        "uq_ride_passengers_active",
        "ride_passengers",
        ["ride_id", "passenger_id"],
        unique=True,
        postgresql_where=sa.text("cancelled_at IS NULL"),
    )


def downgrade() -> None:
    op.drop_table("ride_passengers")
    op.drop_table("ride_requests")
    op.drop_table("rides")
    op.drop_table("driver_schedules")
    op.drop_table("route_prices")
    op.drop_table("drivers")
    op.drop_table("junctions")
