"""Availability service: booked-slot lookup and blocked-slot calculation."""

from datetime import date

import structlog
from sqlalchemy import and_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.catalog import SERVICES
from app.core.redis_client import CacheManager
from app.core.scheduling import (
    bay_of,
    blocked_slots,
    build_time_grid,
    day_end_minute,
    service_duration_minutes,
    slot_count,
)
from app.models.appointments import TIME_ORDER, appointments
from app.schemas.appointments import AppointmentStatus
from app.schemas.availability import (
    AvailabilityResponse,
    BookedSlot,
    ServiceResponse,
    SlotState,
)

logger = structlog.get_logger(__name__)


class AvailabilityService:
    """Service for computing which slots of a day can be booked."""

    def __init__(self, db: AsyncSession, cache_manager: CacheManager | None = None):
        """Initialize service with database session and optional cache."""
        self.db = db
        self.cache = cache_manager

    @staticmethod
    def _get_cache_key(appointment_date: date, location: str) -> str:
        """Generate cache key for the booked list of a day."""
        return f"availability:{appointment_date.isoformat()}:{location}"

    def invalidate(self, appointment_date: date, location: str) -> None:
        """Drop the cached booked list of a day after a write."""
        if self.cache:
            self.cache.delete(self._get_cache_key(appointment_date, location))

    async def fetch_booked(
        self,
        appointment_date: date,
        location: str,
        use_cache: bool = True,
    ) -> list[BookedSlot]:
        """
        Load the non-cancelled appointments of a day at a location.

        A storage failure yields an empty list, so callers cannot tell
        "nothing booked" from "unknown"; slot rendering fails open and the
        unique slot index stays the final guard.

        Args:
            appointment_date: Calendar date
            location: Location identifier
            use_cache: Read through the Redis cache

        Returns:
            Booked start times and services, ordered by time
        """
        cache_key = self._get_cache_key(appointment_date, location)

        if use_cache and self.cache:
            cached = self.cache.get_json(cache_key)
            if cached is not None:
                return [BookedSlot(**item) for item in cached]

        stmt = (
            select(appointments.c.appointment_time, appointments.c.service)
            .where(
                and_(
                    appointments.c.appointment_date == appointment_date,
                    appointments.c.location == location,
                    appointments.c.status != AppointmentStatus.CANCELLED.value,
                )
            )
            .order_by(*TIME_ORDER)
        )

        try:
            result = await self.db.execute(stmt)
            rows = result.mappings().all()
        except SQLAlchemyError as e:
            logger.error(
                "booked_appointments_fetch_failed",
                date=appointment_date.isoformat(),
                location=location,
                error=str(e),
            )
            await self.db.rollback()
            return []

        booked = [BookedSlot(time=row["appointment_time"], service=row["service"]) for row in rows]

        if self.cache:
            self.cache.set_json(
                cache_key,
                [item.model_dump() for item in booked],
                ttl=settings.availability_cache_ttl,
            )

        return booked

    async def get_availability(
        self,
        appointment_date: date,
        location: str,
        service: str,
    ) -> AvailabilityResponse:
        """
        Build the slot grid of a day for a candidate service.

        Args:
            appointment_date: Calendar date
            location: Location identifier
            service: Candidate service id

        Returns:
            Grid with a blocked flag per slot
        """
        booked = await self.fetch_booked(appointment_date, location)

        grid = build_time_grid()
        duration = service_duration_minutes(service)
        slots = slot_count(duration)
        bay = bay_of(service)

        blocked = blocked_slots(
            booked,
            candidate_bay=bay,
            candidate_slot_count=slots,
            grid=grid,
            day_end_minute=day_end_minute(),
        )

        return AvailabilityResponse(
            date=appointment_date,
            location=location,
            service=service,
            bay=bay,
            duration_minutes=duration,
            slot_count=slots,
            slots=[SlotState(time=label, blocked=label in blocked) for label in grid],
            blocked=[label for label in grid if label in blocked],
        )

    @staticmethod
    def list_services() -> list[ServiceResponse]:
        """List the service catalog with derived scheduling attributes."""
        items = []
        for service in SERVICES:
            duration = service_duration_minutes(service.id)
            items.append(
                ServiceResponse(
                    id=service.id,
                    category=service.category,
                    title=service.title,
                    duration=service.duration,
                    duration_minutes=duration,
                    slot_count=slot_count(duration),
                    bay=bay_of(service.id),
                )
            )
        return items
