"""Back-office endpoints for appointment management."""

from datetime import date, timedelta
from uuid import UUID

from fastapi import APIRouter, Query

from app.core.scheduling import business_now
from app.dependencies import AdminAccess, CacheManagerDep, DatabaseSession
from app.schemas.appointments import (
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentReschedule,
    AppointmentResponse,
    AppointmentStatus,
    AppointmentStatusUpdate,
    ReminderRunResponse,
)
from app.services.appointment_service import AppointmentService

router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[AdminAccess])


@router.get(
    "/appointments",
    response_model=AppointmentListResponse,
    summary="List appointments (admin only)",
)
async def list_appointments(
    db: DatabaseSession,
    appointment_date: date | None = Query(None, alias="date", description="Filter by date"),
    location: str | None = Query(None, description="Filter by location"),
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    email: str | None = Query(None, description="Filter by customer email"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
) -> AppointmentListResponse:
    """
    Get paginated list of appointments with filtering.

    Requires the admin secret.
    """
    filters = AppointmentFilters(
        appointment_date=appointment_date,
        location=location,
        status=status_filter,
        email=email,
        page=page,
        page_size=page_size,
    )
    service = AppointmentService(db)
    return await service.list_appointments(filters)


@router.patch(
    "/appointments/{appointment_id}/status",
    response_model=AppointmentResponse,
    summary="Update appointment status (admin only)",
)
async def update_appointment_status(
    appointment_id: UUID,
    data: AppointmentStatusUpdate,
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
) -> AppointmentResponse:
    """
    Confirm, cancel or mark an appointment as rescheduled.

    Args:
        appointment_id: Appointment ID
        data: New status and optional notes
        db: Database session
        cache_manager: Cache manager

    Returns:
        Updated appointment
    """
    service = AppointmentService(db, cache_manager)
    return await service.update_appointment_status(appointment_id, data)


@router.post(
    "/appointments/{appointment_id}/reschedule",
    response_model=AppointmentResponse,
    summary="Reschedule appointment (admin only)",
)
async def reschedule_appointment(
    appointment_id: UUID,
    data: AppointmentReschedule,
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
) -> AppointmentResponse:
    """Move an appointment to a new slot on behalf of the customer."""
    service = AppointmentService(db, cache_manager)
    return await service.reschedule_appointment(appointment_id, data)


@router.post(
    "/reminders",
    response_model=ReminderRunResponse,
    summary="Send day-before reminders (admin only)",
)
async def send_reminders(
    db: DatabaseSession,
    reminder_date: date | None = Query(
        None, alias="date", description="Appointment date (default: tomorrow)"
    ),
) -> ReminderRunResponse:
    """
    Email a reminder to every confirmed or rescheduled appointment of a day.

    Meant to be triggered once a day by scripts/send_reminders.py.
    """
    day = reminder_date or business_now().date() + timedelta(days=1)
    service = AppointmentService(db)
    return await service.send_due_reminders(day)
