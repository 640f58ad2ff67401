"""Database models."""

from app.models.appointments import SLOT_UNIQUE_INDEX, TIME_ORDER, appointments, metadata

__all__ = [
    "SLOT_UNIQUE_INDEX",
    "TIME_ORDER",
    "appointments",
    "metadata",
]
