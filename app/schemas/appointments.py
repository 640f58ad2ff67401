"""Appointment schemas for request/response validation."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from app.core.scheduling import normalize_label


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    RESCHEDULED = "rescheduled"
    CANCELLED = "cancelled"


# Allowed status changes; cancelled is terminal
STATUS_TRANSITIONS: dict[AppointmentStatus, set[AppointmentStatus]] = {
    AppointmentStatus.PENDING: {
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.RESCHEDULED,
        AppointmentStatus.CANCELLED,
    },
    AppointmentStatus.CONFIRMED: {
        AppointmentStatus.RESCHEDULED,
        AppointmentStatus.CANCELLED,
    },
    AppointmentStatus.RESCHEDULED: {
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.RESCHEDULED,
        AppointmentStatus.CANCELLED,
    },
    AppointmentStatus.CANCELLED: set(),
}


class Language(str, Enum):
    """Language of outbound customer emails."""

    HU = "hu"
    EN = "en"


def _validate_time_label(v: str) -> str:
    """Normalize a time label to the grid's canonical form."""
    try:
        return normalize_label(v)
    except ValueError as e:
        raise ValueError("Time must be in H:MM format") from e


class AppointmentBase(BaseModel):
    """Base appointment schema with common fields."""

    service: str = Field(..., min_length=1, max_length=100)
    vehicle: str = Field(..., min_length=1, max_length=100)
    vehicle_vin: str | None = Field(None, min_length=17, max_length=17)
    appointment_date: date
    appointment_time: str
    location: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    phone: str | None = Field(None, min_length=7, max_length=20)
    notes: str | None = Field(None, max_length=1000)

    @field_validator("appointment_time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        """Validate and normalize the slot label."""
        return _validate_time_label(v)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str | None) -> str | None:
        """Validate phone number format."""
        if v is None:
            return v
        # Remove common separators
        cleaned = (
            v.replace("-", "").replace(" ", "").replace("(", "").replace(")", "").replace("+", "")
        )
        if not cleaned.isdigit():
            raise ValueError("Phone number must contain only digits and separators")
        if len(cleaned) < 7:
            raise ValueError("Phone number must have at least 7 digits")
        return v


class AppointmentCreate(AppointmentBase):
    """Schema for booking a new appointment."""

    language: Language = Language.HU


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    service: str
    vehicle: str
    vehicle_vin: str | None = None
    appointment_date: date
    appointment_time: str
    location: str
    name: str
    email: str
    phone: str | None = None
    notes: str | None = None
    status: AppointmentStatus
    created_at: datetime
    updated_at: datetime
    cancelled_at: datetime | None = None

    model_config = {"from_attributes": True}


class AppointmentListResponse(BaseModel):
    """Schema for paginated appointment list response."""

    total: int
    page: int
    page_size: int
    items: list[AppointmentResponse]


class AppointmentFilters(BaseModel):
    """Schema for back-office appointment filtering."""

    appointment_date: date | None = None
    location: str | None = None
    status: AppointmentStatus | None = None
    email: str | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class AppointmentStatusUpdate(BaseModel):
    """Schema for updating appointment status."""

    status: AppointmentStatus
    notes: str | None = Field(None, max_length=1000)


class AppointmentReschedule(BaseModel):
    """Schema for moving an appointment to a new slot."""

    appointment_date: date
    appointment_time: str
    send_email: bool = True
    language: Language = Language.HU

    @field_validator("appointment_time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        """Validate and normalize the slot label."""
        return _validate_time_label(v)


class AppointmentCancel(BaseModel):
    """Schema for cancelling an appointment."""

    send_email: bool = True
    language: Language = Language.HU


class ReminderRunResponse(BaseModel):
    """Outcome of a day-before reminder run."""

    date: date
    due: int
    sent: int
