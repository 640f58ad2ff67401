"""Customer notifications sent through the hosted serverless email functions."""

from typing import Any

import httpx
import structlog

from app.config import settings

logger = structlog.get_logger(__name__)


class NotificationService:
    """Invoke transactional email functions after a booking changes.

    Calls are side effects: every failure is logged and swallowed so the
    booking outcome never depends on email delivery.
    """

    CONFIRMATION_FUNCTION = "send-confirmation-email"
    UPDATE_FUNCTION = "send-appointment-update-email"
    REMINDER_FUNCTION = "send-reminder-email"

    @staticmethod
    async def invoke_function(name: str, payload: dict[str, Any]) -> bool:
        """
        POST a JSON payload to a serverless function.

        Args:
            name: Function name, appended to the functions base URL
            payload: JSON body

        Returns:
            True if the function answered with a 2xx status
        """
        if not settings.functions_base_url:
            logger.info("functions_not_configured", function=name)
            return False

        url = f"{settings.functions_base_url.rstrip('/')}/{name}"
        headers = {}
        if settings.functions_api_key:
            headers["Authorization"] = f"Bearer {settings.functions_api_key}"

        try:
            async with httpx.AsyncClient(timeout=settings.functions_timeout_seconds) as client:
                response = await client.post(url, json=payload, headers=headers)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("function_invocation_failed", function=name, error=str(e))
            return False

        logger.info("function_invoked", function=name, status_code=response.status_code)
        return True

    @staticmethod
    def _manage_url(appointment_id: Any) -> str:
        return f"{settings.manage_appointment_url}?id={appointment_id}"

    @staticmethod
    async def send_confirmation_email(appointment: dict[str, Any], language: str = "hu") -> bool:
        """Send the booking confirmation email for a freshly saved appointment."""
        payload = {
            "appointmentId": str(appointment["id"]),
            "customerName": appointment["name"],
            "customerEmail": appointment["email"],
            "service": appointment["service"],
            "vehicle": appointment["vehicle"],
            "appointmentDate": str(appointment["appointment_date"]),
            "appointmentTime": appointment["appointment_time"],
            "location": appointment["location"],
            "language": language,
            "manageUrl": NotificationService._manage_url(appointment["id"]),
        }
        return await NotificationService.invoke_function(
            NotificationService.CONFIRMATION_FUNCTION, payload
        )

    @staticmethod
    async def send_cancellation_email(appointment: dict[str, Any], language: str = "hu") -> bool:
        """Notify the customer that an appointment was cancelled."""
        payload = {
            "type": "cancellation",
            "appointmentId": str(appointment["id"]),
            "customerName": appointment["name"],
            "customerEmail": appointment["email"],
            "service": appointment["service"],
            "vehicle": appointment["vehicle"],
            "originalDate": str(appointment["appointment_date"]),
            "originalTime": appointment["appointment_time"],
            "location": appointment["location"],
            "language": language,
        }
        return await NotificationService.invoke_function(
            NotificationService.UPDATE_FUNCTION, payload
        )

    @staticmethod
    async def send_reschedule_email(
        previous: dict[str, Any],
        appointment: dict[str, Any],
        language: str = "hu",
    ) -> bool:
        """Notify the customer about the new date and time of an appointment."""
        payload = {
            "type": "reschedule",
            "appointmentId": str(appointment["id"]),
            "customerName": appointment["name"],
            "customerEmail": appointment["email"],
            "service": appointment["service"],
            "vehicle": appointment["vehicle"],
            "originalDate": str(previous["appointment_date"]),
            "originalTime": previous["appointment_time"],
            "newDate": str(appointment["appointment_date"]),
            "newTime": appointment["appointment_time"],
            "location": appointment["location"],
            "language": language,
        }
        return await NotificationService.invoke_function(
            NotificationService.UPDATE_FUNCTION, payload
        )

    @staticmethod
    async def send_reminder_email(appointment: dict[str, Any], language: str = "hu") -> bool:
        """Remind the customer of an appointment on the following day."""
        payload = {
            "type": "reminder",
            "appointmentId": str(appointment["id"]),
            "customerName": appointment["name"],
            "customerEmail": appointment["email"],
            "service": appointment["service"],
            "vehicle": appointment["vehicle"],
            "appointmentDate": str(appointment["appointment_date"]),
            "appointmentTime": appointment["appointment_time"],
            "location": appointment["location"],
            "language": language,
            "manageUrl": NotificationService._manage_url(appointment["id"]),
        }
        return await NotificationService.invoke_function(
            NotificationService.REMINDER_FUNCTION, payload
        )
