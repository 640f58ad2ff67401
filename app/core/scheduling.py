"""Slot availability calculation for the half-hour booking grid.

Every service occupies a physical bay for a number of contiguous grid slots
derived from its duration label. Only appointments sharing a bay compete
for the same slots.
"""

import math
import re
from collections.abc import Iterable
from datetime import datetime
from zoneinfo import ZoneInfo

import structlog

from app.config import settings
from app.core.catalog import duration_for
from app.schemas.availability import BookedSlot

logger = structlog.get_logger(__name__)

DEFAULT_DURATION_MINUTES = 30
VARIES_DURATION_MINUTES = 60

_VARIES_WORDS = ("változó", "varies")
_NUMBER = r"(\d+(?:[.,]\d+)?)"
_HOUR_RANGE_RE = re.compile(_NUMBER + r"\s*[-–]\s*" + _NUMBER + r"\s*(?:óra|hour)")
_HOUR_RE = re.compile(_NUMBER + r"\s*(?:óra|hour)")
_MINUTE_RE = re.compile(r"(\d+)\s*(?:perc|min)")
_LABEL_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")

# Static service -> bay map; anything not listed lands in the default bay
BAY_ASSIGNMENTS: dict[str, int] = {service: 1 for service in settings.booking_bay_one_services}


def _to_number(value: str) -> float:
    return float(value.replace(",", "."))


def parse_duration_minutes(duration_text: str) -> int:
    """
    Convert a duration label such as "45 perc" or "1-2 óra" to minutes.

    Ranges resolve to their upper bound. Labels that match no known shape
    fall back to 30 minutes; this never raises.

    Args:
        duration_text: Human-readable duration label (Hungarian or English)

    Returns:
        Duration in minutes
    """
    lowered = (duration_text or "").lower()

    if any(word in lowered for word in _VARIES_WORDS):
        return VARIES_DURATION_MINUTES

    range_match = _HOUR_RANGE_RE.search(lowered)
    if range_match:
        return round(_to_number(range_match.group(2)) * 60)

    hour_match = _HOUR_RE.search(lowered)
    if hour_match:
        return round(_to_number(hour_match.group(1)) * 60)

    minute_match = _MINUTE_RE.search(lowered)
    if minute_match:
        return int(minute_match.group(1))

    logger.warning(
        "duration_label_unparsed",
        duration_text=duration_text,
        fallback_minutes=DEFAULT_DURATION_MINUTES,
    )
    return DEFAULT_DURATION_MINUTES


def slot_count(duration_minutes: int, slot_minutes: int | None = None) -> int:
    """Number of contiguous grid slots a duration occupies, at least 1."""
    slot_minutes = slot_minutes or settings.booking_slot_minutes
    return max(1, math.ceil(duration_minutes / slot_minutes))


def bay_of(service_id: str) -> int:
    """Map a service id to the bay it occupies."""
    return BAY_ASSIGNMENTS.get(service_id, settings.booking_default_bay)


def service_duration_minutes(service_id: str) -> int:
    """Duration of a catalog service in minutes (30 for unknown services)."""
    return parse_duration_minutes(duration_for(service_id) or "")


def service_slot_count(service_id: str, slot_minutes: int | None = None) -> int:
    """Slot count of a catalog service."""
    return slot_count(service_duration_minutes(service_id), slot_minutes)


def label_to_minutes(label: str) -> int:
    """
    Convert a grid label ("9:00", "09:30") to minutes since midnight.

    Raises:
        ValueError: If the label is not an H:MM time of day
    """
    match = _LABEL_RE.match(label or "")
    if not match:
        raise ValueError(f"Invalid time label: {label!r}")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise ValueError(f"Invalid time label: {label!r}")
    return hours * 60 + minutes


def minutes_to_label(minutes: int) -> str:
    """Convert minutes since midnight to the canonical grid label."""
    return f"{minutes // 60}:{minutes % 60:02d}"


def normalize_label(label: str) -> str:
    """Canonical form of a time label, e.g. "09:00" -> "9:00"."""
    return minutes_to_label(label_to_minutes(label))


def build_time_grid(
    day_start: str | None = None,
    day_end: str | None = None,
    slot_minutes: int | None = None,
) -> list[str]:
    """
    Build the ordered list of bookable slot labels.

    The closing boundary itself is not a slot: 9:00 to 17:00 yields
    9:00 ... 16:30.
    """
    slot_minutes = slot_minutes or settings.booking_slot_minutes
    start = label_to_minutes(day_start or settings.booking_day_start)
    end = label_to_minutes(day_end or settings.booking_day_end)
    return [minutes_to_label(minute) for minute in range(start, end, slot_minutes)]


def day_end_minute() -> int:
    """Closing boundary of the bookable day in minutes since midnight."""
    return label_to_minutes(settings.booking_day_end)


def business_now() -> datetime:
    """Current wall-clock time at the workshop."""
    return datetime.now(ZoneInfo(settings.booking_timezone))


def blocked_slots(
    booked: Iterable[BookedSlot],
    candidate_bay: int,
    candidate_slot_count: int,
    grid: list[str],
    day_end_minute: int,
    slot_minutes: int | None = None,
) -> set[str]:
    """
    Compute the grid labels a candidate service cannot start at.

    Two passes over same-bay bookings only:

    1. Each booked appointment blocks its own full span, from its start
       through ``start + (slots - 1) * slot_minutes``.
    2. Each grid slot is blocked when the candidate would run past the
       closing boundary from there, or when one of the candidate's
       sub-slots lands on a booked *start* time.

    The second pass deliberately compares against start times only, not
    the booked spans; the union of both passes is returned.

    Args:
        booked: Non-cancelled appointments of the day (time + service)
        candidate_bay: Bay of the service being scheduled
        candidate_slot_count: Slots the candidate service needs
        grid: Ordered bookable slot labels
        day_end_minute: Closing boundary in minutes since midnight
        slot_minutes: Grid granularity

    Returns:
        Set of blocked grid labels
    """
    slot_minutes = slot_minutes or settings.booking_slot_minutes
    grid_labels = set(grid)
    blocked: set[str] = set()
    booked_starts: set[int] = set()

    for appointment in booked:
        if bay_of(appointment.service) != candidate_bay:
            continue

        try:
            start = label_to_minutes(appointment.time)
        except ValueError:
            logger.warning(
                "booked_time_unparsed",
                time=appointment.time,
                service=appointment.service,
            )
            continue

        booked_starts.add(start)
        for index in range(service_slot_count(appointment.service, slot_minutes)):
            label = minutes_to_label(start + index * slot_minutes)
            if label in grid_labels:
                blocked.add(label)

    for label in grid:
        start = label_to_minutes(label)
        if start + candidate_slot_count * slot_minutes > day_end_minute:
            blocked.add(label)
            continue
        for index in range(candidate_slot_count):
            if start + index * slot_minutes in booked_starts:
                blocked.add(label)
                break

    return blocked
