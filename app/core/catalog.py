"""Static catalog of bookable services.

Durations are the human-readable labels shown to customers; the scheduler
derives minutes from them at calculation time instead of storing minutes on
each appointment.
"""

from typing import NamedTuple


class CatalogService(NamedTuple):
    """A bookable service and its customer-facing duration label."""

    id: str
    category: str
    title: str
    duration: str


SERVICES: tuple[CatalogService, ...] = (
    CatalogService("maintenance", "maintenance", "Általános átvizsgálás", "45 perc"),
    CatalogService("battery", "maintenance", "Éves felülvizsgálat", "45 perc"),
    CatalogService("brake", "maintenance", "Fékszerviz", "1-2 óra"),
    CatalogService("ac", "hvac", "Klíma szerviz", "1-2 óra"),
    CatalogService("heatpump", "hvac", "Supermanifold hiba", "1-2 óra"),
    CatalogService("heating", "hvac", "Pollen szűrő csere", "20 perc"),
    CatalogService("hepa", "hvac", "HEPA szűrő csere", "30 perc"),
    CatalogService("ptcheater", "hvac", "PTC heater csere", "1 óra"),
    CatalogService("software", "extras", "Boombox aktiválás", "10 perc"),
    CatalogService("autopilot", "extras", "Belső világítás aktiválás", "10 perc"),
    CatalogService("multimedia", "extras", "Multimédia frissítés", "30 perc"),
    CatalogService("doorhandle", "other", "Króm kilincs csere", "1-2 óra"),
    CatalogService("body", "other", "Hátsó csomagtérajtó probléma", "2-3 óra"),
    CatalogService("canbus", "other", "CAN bus probléma javítása", "2 óra"),
    CatalogService("warranty", "other", "Hátsó csomagtér motor hiba", "10 perc"),
    CatalogService("lowvoltagebattery", "batteryCategory", "Alacsony feszültségű akkumulátor csere", "10 perc"),
    CatalogService("chargeport_repair", "charging", "Töltőport javítás", "1 óra"),
    CatalogService("home_charger_install", "charging", "Otthoni töltő beszerelés", "2-3 óra"),
    CatalogService("charging_diagnostics", "charging", "Töltési hiba diagnosztika", "30 perc"),
    CatalogService("ppf", "wrapping", "PPF (festékvédő fólia)", "1,5–3 nap"),
    CatalogService("accessories", "accessories", "Kiegészítők beszerelése", "Egyedi"),
    CatalogService("s3xy_products", "accessories", "S3XY termékek", "15-30 perc"),
    CatalogService("rear_display", "accessories", "Hátsó kijelző", "1 óra"),
    CatalogService("softclose", "accessories", "Softclose", "1-2 óra"),
    CatalogService("seat_ventilation", "accessories", "Ülés szellőztetés", "4 óra"),
    CatalogService("performance_seat_upgrade", "accessories", "Performance ülés upgrade", "4 óra"),
)

_SERVICES_BY_ID = {service.id: service for service in SERVICES}


def duration_for(service_id: str) -> str | None:
    """Return the duration label of a service, or None for unknown ids."""
    service = _SERVICES_BY_ID.get(service_id)
    return service.duration if service else None
