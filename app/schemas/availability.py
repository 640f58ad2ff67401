"""Availability and service catalog schemas."""

from datetime import date

from pydantic import BaseModel


class BookedSlot(BaseModel):
    """Start time and service of a non-cancelled appointment."""

    time: str
    service: str


class SlotState(BaseModel):
    """A single grid slot and whether it can be selected."""

    time: str
    blocked: bool


class AvailabilityResponse(BaseModel):
    """Slot grid for one date, location and candidate service."""

    date: date
    location: str
    service: str
    bay: int
    duration_minutes: int
    slot_count: int
    slots: list[SlotState]
    blocked: list[str]


class ServiceResponse(BaseModel):
    """Catalog entry with its derived scheduling attributes."""

    id: str
    category: str
    title: str
    duration: str
    duration_minutes: int
    slot_count: int
    bay: int
