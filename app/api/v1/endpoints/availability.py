"""Slot availability and service catalog endpoints."""

from datetime import date

from fastapi import APIRouter, Query, status

from app.dependencies import CacheManagerDep, DatabaseSession
from app.schemas.availability import AvailabilityResponse, ServiceResponse
from app.services.availability_service import AvailabilityService

router = APIRouter()


@router.get(
    "/services",
    response_model=list[ServiceResponse],
    status_code=status.HTTP_200_OK,
    tags=["Availability"],
    summary="List bookable services",
)
async def list_services() -> list[ServiceResponse]:
    """List the service catalog with duration, slot count and bay."""
    return AvailabilityService.list_services()


@router.get(
    "/availability",
    response_model=AvailabilityResponse,
    status_code=status.HTTP_200_OK,
    tags=["Availability"],
    summary="Get bookable slots of a day",
)
async def get_availability(
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
    appointment_date: date = Query(..., alias="date"),
    location: str = Query(..., min_length=1),
    service: str = Query(..., min_length=1),
) -> AvailabilityResponse:
    """
    Get the slot grid of a day for a candidate service.

    Args:
        db: Database session
        cache_manager: Cache manager
        appointment_date: Calendar date
        location: Location identifier
        service: Service id to be scheduled

    Returns:
        Slot grid with blocked flags
    """
    availability = AvailabilityService(db, cache_manager)
    return await availability.get_availability(appointment_date, location, service)
