"""Appointment service for business logic."""

from datetime import UTC, date, datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    BadRequestException,
    BookingFailedException,
    NotFoundException,
    SlotTakenException,
)
from app.core.redis_client import CacheManager
from app.core.scheduling import build_time_grid, business_now, label_to_minutes
from app.models.appointments import SLOT_UNIQUE_INDEX, TIME_ORDER, appointments
from app.schemas.appointments import (
    STATUS_TRANSITIONS,
    AppointmentCancel,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentReschedule,
    AppointmentResponse,
    AppointmentStatus,
    AppointmentStatusUpdate,
    ReminderRunResponse,
)
from app.services.availability_service import AvailabilityService
from app.services.notification_service import NotificationService

logger = structlog.get_logger(__name__)

# Pending bookings are not yet accepted by the workshop
REMINDER_STATUSES = (AppointmentStatus.CONFIRMED, AppointmentStatus.RESCHEDULED)


def _is_slot_conflict(error: IntegrityError) -> bool:
    """Whether an integrity error comes from the unique slot index."""
    return SLOT_UNIQUE_INDEX in str(error)


class AppointmentService:
    """Service for booking and managing appointments."""

    def __init__(self, db: AsyncSession, cache_manager: CacheManager | None = None):
        """Initialize service with database session and optional cache."""
        self.db = db
        self.availability = AvailabilityService(db, cache_manager)

    @staticmethod
    def _validate_slot(appointment_date: date, appointment_time: str) -> None:
        """
        Check that a slot lies on the grid and has not started yet.

        Raises:
            BadRequestException: If the slot cannot be booked at all
        """
        if appointment_time not in build_time_grid():
            raise BadRequestException(f"{appointment_time} is not a bookable time slot")

        now = business_now()
        if appointment_date < now.date():
            raise BadRequestException("Appointments cannot be booked in the past")
        if (
            appointment_date == now.date()
            and label_to_minutes(appointment_time) <= now.hour * 60 + now.minute
        ):
            raise BadRequestException(f"The {appointment_time} slot has already started")

    async def _ensure_slot_free(
        self,
        appointment_date: date,
        location: str,
        appointment_time: str,
    ) -> None:
        """
        Fail early when the requested start time is already booked.

        Only exact start-time collisions are checked here; the unique slot
        index decides when two writers race past this point.

        Raises:
            SlotTakenException: If the start time is taken
        """
        booked = await self.availability.fetch_booked(appointment_date, location, use_cache=False)
        if any(item.time == appointment_time for item in booked):
            logger.info(
                "booking_slot_taken",
                stage="pre_check",
                date=appointment_date.isoformat(),
                location=location,
                time=appointment_time,
            )
            raise SlotTakenException()

    async def _write(self, stmt: Any, context: dict[str, Any]) -> dict[str, Any]:
        """
        Execute a slot-claiming INSERT or UPDATE and commit it.

        Raises:
            SlotTakenException: If the unique slot index rejects the row
            BookingFailedException: On any other storage failure
        """
        try:
            result = await self.db.execute(stmt)
            row = result.mappings().first()
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if _is_slot_conflict(e):
                logger.info("booking_slot_taken", stage="write", **context)
                raise SlotTakenException() from e
            logger.error("booking_write_failed", error=str(e), **context)
            raise BookingFailedException() from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("booking_write_failed", error=str(e), **context)
            raise BookingFailedException() from e

        if row is None:
            raise NotFoundException("Appointment not found")
        return dict(row)

    async def create_appointment(self, data: AppointmentCreate) -> AppointmentResponse:
        """
        Book a new appointment.

        Args:
            data: Appointment creation data

        Returns:
            Created appointment

        Raises:
            BadRequestException: If the slot is off-grid or in the past
            SlotTakenException: If the slot is already booked
            BookingFailedException: If the write fails for another reason
        """
        self._validate_slot(data.appointment_date, data.appointment_time)
        await self._ensure_slot_free(data.appointment_date, data.location, data.appointment_time)

        values = data.model_dump(exclude={"language"})
        values["status"] = AppointmentStatus.PENDING.value

        stmt = insert(appointments).values(**values).returning(appointments)
        row = await self._write(
            stmt,
            {
                "date": data.appointment_date.isoformat(),
                "location": data.location,
                "time": data.appointment_time,
            },
        )

        self.availability.invalidate(data.appointment_date, data.location)
        logger.info(
            "appointment_created",
            appointment_id=str(row["id"]),
            service=data.service,
            date=data.appointment_date.isoformat(),
            time=data.appointment_time,
        )

        # Email delivery never fails the booking
        await NotificationService.send_confirmation_email(row, data.language.value)

        return AppointmentResponse.model_validate(row)

    async def _get_row(self, appointment_id: UUID) -> dict[str, Any]:
        stmt = select(appointments).where(appointments.c.id == appointment_id)
        result = await self.db.execute(stmt)
        row = result.mappings().first()

        if not row:
            raise NotFoundException("Appointment not found")

        return dict(row)

    async def get_appointment(self, appointment_id: UUID) -> AppointmentResponse:
        """
        Get appointment by ID.

        Raises:
            NotFoundException: If appointment not found
        """
        return AppointmentResponse.model_validate(await self._get_row(appointment_id))

    async def list_appointments(self, filters: AppointmentFilters) -> AppointmentListResponse:
        """
        List appointments with filtering and pagination.

        Args:
            filters: Filter and pagination parameters

        Returns:
            Paginated list of appointments, latest first
        """
        conditions = []

        if filters.appointment_date:
            conditions.append(appointments.c.appointment_date == filters.appointment_date)

        if filters.location:
            conditions.append(appointments.c.location == filters.location)

        if filters.status:
            conditions.append(appointments.c.status == filters.status.value)

        if filters.email:
            conditions.append(func.lower(appointments.c.email) == filters.email.lower())

        # Count total
        count_stmt = select(func.count()).select_from(appointments).where(*conditions)
        total_result = await self.db.execute(count_stmt)
        total = total_result.scalar() or 0

        offset = (filters.page - 1) * filters.page_size

        stmt = (
            select(appointments)
            .where(*conditions)
            .order_by(
                appointments.c.appointment_date.desc(),
                *(column.desc() for column in TIME_ORDER),
            )
            .limit(filters.page_size)
            .offset(offset)
        )

        result = await self.db.execute(stmt)
        rows = result.mappings().all()

        return AppointmentListResponse(
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            items=[AppointmentResponse.model_validate(dict(row)) for row in rows],
        )

    async def cancel_appointment(
        self,
        appointment_id: UUID,
        data: AppointmentCancel,
    ) -> AppointmentResponse:
        """
        Cancel an appointment and release its slot.

        Raises:
            NotFoundException: If appointment not found
            BadRequestException: If it is already cancelled
        """
        current = await self._get_row(appointment_id)
        if current["status"] == AppointmentStatus.CANCELLED.value:
            raise BadRequestException("Appointment is already cancelled")

        now = datetime.now(UTC)
        stmt = (
            update(appointments)
            .where(appointments.c.id == appointment_id)
            .values(
                status=AppointmentStatus.CANCELLED.value,
                cancelled_at=now,
                updated_at=now,
            )
            .returning(appointments)
        )
        row = await self._write(stmt, {"appointment_id": str(appointment_id)})

        self.availability.invalidate(row["appointment_date"], row["location"])
        logger.info("appointment_cancelled", appointment_id=str(appointment_id))

        if data.send_email:
            await NotificationService.send_cancellation_email(row, data.language.value)

        return AppointmentResponse.model_validate(row)

    async def reschedule_appointment(
        self,
        appointment_id: UUID,
        data: AppointmentReschedule,
    ) -> AppointmentResponse:
        """
        Move an appointment to a new date and time at the same location.

        Raises:
            NotFoundException: If appointment not found
            BadRequestException: If it is cancelled, or the new slot is invalid
            SlotTakenException: If the new slot is already booked
            BookingFailedException: If the write fails for another reason
        """
        current = await self._get_row(appointment_id)
        if current["status"] == AppointmentStatus.CANCELLED.value:
            raise BadRequestException("Cancelled appointments cannot be rescheduled")

        if (
            current["appointment_date"] == data.appointment_date
            and current["appointment_time"] == data.appointment_time
        ):
            raise BadRequestException("Appointment is already scheduled for this time")

        self._validate_slot(data.appointment_date, data.appointment_time)
        await self._ensure_slot_free(
            data.appointment_date, current["location"], data.appointment_time
        )

        stmt = (
            update(appointments)
            .where(appointments.c.id == appointment_id)
            .values(
                appointment_date=data.appointment_date,
                appointment_time=data.appointment_time,
                status=AppointmentStatus.RESCHEDULED.value,
                updated_at=datetime.now(UTC),
            )
            .returning(appointments)
        )
        row = await self._write(
            stmt,
            {
                "appointment_id": str(appointment_id),
                "date": data.appointment_date.isoformat(),
                "location": current["location"],
                "time": data.appointment_time,
            },
        )

        self.availability.invalidate(current["appointment_date"], current["location"])
        self.availability.invalidate(data.appointment_date, current["location"])
        logger.info(
            "appointment_rescheduled",
            appointment_id=str(appointment_id),
            previous_date=current["appointment_date"].isoformat(),
            previous_time=current["appointment_time"],
            date=data.appointment_date.isoformat(),
            time=data.appointment_time,
        )

        if data.send_email:
            await NotificationService.send_reschedule_email(current, row, data.language.value)

        return AppointmentResponse.model_validate(row)

    async def update_appointment_status(
        self,
        appointment_id: UUID,
        data: AppointmentStatusUpdate,
    ) -> AppointmentResponse:
        """
        Apply a back-office status change.

        Raises:
            NotFoundException: If appointment not found
            BadRequestException: If the transition is not allowed
        """
        current = await self._get_row(appointment_id)
        old_status = AppointmentStatus(current["status"])

        if data.status not in STATUS_TRANSITIONS[old_status]:
            raise BadRequestException(
                f"Cannot change status from {old_status.value} to {data.status.value}"
            )

        now = datetime.now(UTC)
        update_values: dict[str, Any] = {
            "status": data.status.value,
            "updated_at": now,
        }

        if data.notes:
            update_values["notes"] = data.notes

        if data.status == AppointmentStatus.CANCELLED:
            update_values["cancelled_at"] = now

        stmt = (
            update(appointments)
            .where(appointments.c.id == appointment_id)
            .values(**update_values)
            .returning(appointments)
        )
        row = await self._write(stmt, {"appointment_id": str(appointment_id)})

        if data.status == AppointmentStatus.CANCELLED:
            self.availability.invalidate(row["appointment_date"], row["location"])

        logger.info(
            "appointment_status_changed",
            appointment_id=str(appointment_id),
            old_status=old_status.value,
            new_status=data.status.value,
        )

        return AppointmentResponse.model_validate(row)

    async def list_due_reminders(self, day: date) -> list[AppointmentResponse]:
        """
        List the appointments of a day that should get a reminder.

        Only confirmed and rescheduled appointments qualify; pending and
        cancelled ones are skipped.

        Args:
            day: Appointment date, usually tomorrow

        Returns:
            Due appointments in start-time order
        """
        stmt = (
            select(appointments)
            .where(
                appointments.c.appointment_date == day,
                appointments.c.status.in_([status.value for status in REMINDER_STATUSES]),
            )
            .order_by(*TIME_ORDER)
        )
        result = await self.db.execute(stmt)
        return [AppointmentResponse.model_validate(dict(row)) for row in result.mappings().all()]

    async def send_due_reminders(self, day: date) -> ReminderRunResponse:
        """
        Email every due appointment of a day its reminder.

        A failed email is logged by the notification client and only lowers
        the sent count.
        """
        due = await self.list_due_reminders(day)

        sent = 0
        for appointment in due:
            if await NotificationService.send_reminder_email(appointment.model_dump()):
                sent += 1

        logger.info("reminders_sent", date=day.isoformat(), due=len(due), sent=sent)
        return ReminderRunResponse(date=day, due=len(due), sent=sent)
