"""Appointments table model using SQLAlchemy Core."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    Index,
    MetaData,
    Table,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID, VARCHAR

# Metadata for all tables
metadata = MetaData()

# Name of the unique index guarding a (date, location, time) slot
SLOT_UNIQUE_INDEX = "uq_appointments_active_slot"

# Appointments table
appointments = Table(
    "appointments",
    metadata,
    Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
    # Booking details
    Column("service", Text, nullable=False),
    Column("vehicle", Text, nullable=False),
    Column("vehicle_vin", VARCHAR(17), nullable=True),
    Column("appointment_date", Date, nullable=False),
    Column("appointment_time", VARCHAR(5), nullable=False),
    Column("location", Text, nullable=False),
    # Contact
    Column("name", Text, nullable=False),
    Column("email", Text, nullable=False),
    Column("phone", VARCHAR(20), nullable=True),
    # Status management
    Column(
        "status",
        Text,
        nullable=False,
        server_default="pending",
    ),
    Column("notes", Text, nullable=True),
    # Audit fields
    Column("created_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("updated_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("cancelled_at", TIMESTAMP(timezone=True), nullable=True),
    # Constraints
    CheckConstraint(
        "status IN ('pending', 'confirmed', 'rescheduled', 'cancelled')",
        name="appointments_status_check",
    ),
)

# Cancelled rows release their slot
Index(
    SLOT_UNIQUE_INDEX,
    appointments.c.appointment_date,
    appointments.c.location,
    appointments.c.appointment_time,
    unique=True,
    postgresql_where=text("status <> 'cancelled'"),
)
Index("ix_appointments_date_location", appointments.c.appointment_date, appointments.c.location)
Index("ix_appointments_email", appointments.c.email)
Index("ix_appointments_status", appointments.c.status)

# Labels have no leading zero, so "9:00" sorts after "10:00" as text
TIME_ORDER = (func.length(appointments.c.appointment_time), appointments.c.appointment_time)
