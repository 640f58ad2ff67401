"""Appointment endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, status
from pydantic import EmailStr

from app.dependencies import CacheManagerDep, DatabaseSession
from app.schemas.appointments import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentReschedule,
    AppointmentResponse,
)
from app.services.appointment_service import AppointmentService

router = APIRouter()


@router.post(
    "/",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Book new appointment",
    responses={409: {"description": "Time slot already taken"}},
)
async def create_appointment(
    data: AppointmentCreate,
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
) -> AppointmentResponse:
    """
    Book a new appointment.

    Args:
        data: Appointment creation data
        db: Database session
        cache_manager: Cache manager

    Returns:
        Created appointment
    """
    service = AppointmentService(db, cache_manager)
    return await service.create_appointment(data)


@router.get(
    "/",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List a customer's appointments",
)
async def list_appointments(
    db: DatabaseSession,
    email: EmailStr = Query(..., description="Customer email"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> AppointmentListResponse:
    """
    List the appointment history of a customer.

    Args:
        db: Database session
        email: Customer email address
        page: Page number
        page_size: Items per page

    Returns:
        Paginated list of appointments
    """
    filters = AppointmentFilters(email=email, page=page, page_size=page_size)
    service = AppointmentService(db)
    return await service.list_appointments(filters)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    db: DatabaseSession,
) -> AppointmentResponse:
    """Get a specific appointment by ID."""
    service = AppointmentService(db)
    return await service.get_appointment(appointment_id)


@router.post(
    "/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: UUID,
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
    data: AppointmentCancel | None = None,
) -> AppointmentResponse:
    """
    Cancel an appointment and release its slot.

    Args:
        appointment_id: Appointment ID
        db: Database session
        cache_manager: Cache manager
        data: Email options

    Returns:
        Cancelled appointment
    """
    service = AppointmentService(db, cache_manager)
    return await service.cancel_appointment(appointment_id, data or AppointmentCancel())


@router.post(
    "/{appointment_id}/reschedule",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Reschedule appointment",
    responses={409: {"description": "Time slot already taken"}},
)
async def reschedule_appointment(
    appointment_id: UUID,
    data: AppointmentReschedule,
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
) -> AppointmentResponse:
    """
    Move an appointment to a new date and time.

    Args:
        appointment_id: Appointment ID
        data: New date and time
        db: Database session
        cache_manager: Cache manager

    Returns:
        Rescheduled appointment
    """
    service = AppointmentService(db, cache_manager)
    return await service.reschedule_appointment(appointment_id, data)
