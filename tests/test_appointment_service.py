"""Tests for the appointment service."""

import asyncio
from datetime import datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.dml import Insert

from app.core.exceptions import (
    BadRequestException,
    BookingFailedException,
    NotFoundException,
    SlotTakenException,
)
from app.core.redis_client import CacheManager
from app.schemas.appointments import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentReschedule,
    AppointmentStatus,
    AppointmentStatusUpdate,
)
from app.services import appointment_service
from app.services.appointment_service import AppointmentService
from app.services.notification_service import NotificationService
from factories import make_appointment_row, make_result, slot_conflict


class FakeStorage:
    """In-memory appointments table enforcing the unique active slot rule."""

    def __init__(self) -> None:
        self.rows: list[dict[str, Any]] = []

    async def execute(self, stmt: Any) -> MagicMock:
        if isinstance(stmt, Insert):
            params = stmt.compile(dialect=postgresql.dialect()).params
            key = (params["appointment_date"], params["location"], params["appointment_time"])
            for row in self.rows:
                if (row["appointment_date"], row["location"], row["appointment_time"]) == key:
                    raise slot_conflict()
            row = make_appointment_row(
                service=params["service"],
                appointment_date=params["appointment_date"],
                appointment_time=params["appointment_time"],
                location=params["location"],
                name=params["name"],
                email=params["email"],
            )
            self.rows.append(row)
            return make_result([row])

        snapshot = [
            {"appointment_time": row["appointment_time"], "service": row["service"]}
            for row in self.rows
        ]
        # Let the other writer read the same snapshot
        await asyncio.sleep(0)
        return make_result(snapshot)

    def session(self) -> AsyncMock:
        db = AsyncMock(spec=AsyncSession)
        db.execute.side_effect = self.execute
        return db


@pytest.fixture
def booking(sample_booking_data: dict) -> AppointmentCreate:
    return AppointmentCreate(**sample_booking_data)


@pytest.fixture
def workshop_clock(monkeypatch: pytest.MonkeyPatch) -> datetime:
    """Freeze the workshop's wall clock at 11:15 local time."""
    now = datetime(2026, 10, 21, 11, 15, tzinfo=ZoneInfo("Europe/Budapest"))
    monkeypatch.setattr(appointment_service, "business_now", lambda: now)
    return now


class TestCreateAppointment:
    """Booking a new appointment."""

    async def test_create_appointment(self, mock_db: AsyncMock, booking: AppointmentCreate) -> None:
        row = make_appointment_row(appointment_date=booking.appointment_date)
        mock_db.execute.side_effect = [make_result([]), make_result([row])]

        created = await AppointmentService(mock_db).create_appointment(booking)

        assert created.id == row["id"]
        assert created.status == AppointmentStatus.PENDING
        assert mock_db.execute.await_count == 2
        mock_db.commit.assert_awaited_once()

        insert_stmt = mock_db.execute.await_args_list[1].args[0]
        params = insert_stmt.compile(dialect=postgresql.dialect()).params
        assert params["status"] == "pending"
        assert "language" not in params

    async def test_taken_start_time_rejected_before_write(
        self, mock_db: AsyncMock, booking: AppointmentCreate
    ) -> None:
        mock_db.execute.side_effect = [
            make_result([{"appointment_time": "10:00", "service": "brake"}]),
        ]

        with pytest.raises(SlotTakenException):
            await AppointmentService(mock_db).create_appointment(booking)

        assert mock_db.execute.await_count == 1
        mock_db.commit.assert_not_awaited()

    async def test_unique_index_violation_maps_to_slot_taken(
        self, mock_db: AsyncMock, booking: AppointmentCreate
    ) -> None:
        mock_db.execute.side_effect = [make_result([]), slot_conflict()]

        with pytest.raises(SlotTakenException) as exc_info:
            await AppointmentService(mock_db).create_appointment(booking)

        assert exc_info.value.status_code == 409
        mock_db.rollback.assert_awaited_once()

    async def test_other_integrity_error_is_booking_failure(
        self, mock_db: AsyncMock, booking: AppointmentCreate
    ) -> None:
        mock_db.execute.side_effect = [
            make_result([]),
            IntegrityError("INSERT", {}, Exception('violates check constraint "ck_status"')),
        ]

        with pytest.raises(BookingFailedException) as exc_info:
            await AppointmentService(mock_db).create_appointment(booking)

        assert exc_info.value.status_code == 503

    async def test_storage_failure_is_booking_failure(
        self, mock_db: AsyncMock, booking: AppointmentCreate
    ) -> None:
        mock_db.execute.side_effect = [
            make_result([]),
            OperationalError("INSERT", {}, Exception("connection reset")),
        ]

        with pytest.raises(BookingFailedException):
            await AppointmentService(mock_db).create_appointment(booking)

        mock_db.rollback.assert_awaited_once()

    async def test_off_grid_time_rejected(
        self, mock_db: AsyncMock, sample_booking_data: dict
    ) -> None:
        booking = AppointmentCreate(**{**sample_booking_data, "appointment_time": "17:00"})

        with pytest.raises(BadRequestException):
            await AppointmentService(mock_db).create_appointment(booking)

        mock_db.execute.assert_not_awaited()

    async def test_past_date_rejected(
        self, mock_db: AsyncMock, sample_booking_data: dict, workshop_clock: datetime
    ) -> None:
        yesterday = workshop_clock.date() - timedelta(days=1)
        booking = AppointmentCreate(
            **{**sample_booking_data, "appointment_date": yesterday.isoformat()}
        )

        with pytest.raises(BadRequestException):
            await AppointmentService(mock_db).create_appointment(booking)

    @pytest.mark.parametrize("slot", ["9:00", "11:00"])
    async def test_started_slot_today_rejected(
        self,
        mock_db: AsyncMock,
        sample_booking_data: dict,
        workshop_clock: datetime,
        slot: str,
    ) -> None:
        """At 11:15 the 11:00 slot and everything before it is gone."""
        booking = AppointmentCreate(
            **{
                **sample_booking_data,
                "appointment_date": workshop_clock.date().isoformat(),
                "appointment_time": slot,
            }
        )

        with pytest.raises(BadRequestException) as exc_info:
            await AppointmentService(mock_db).create_appointment(booking)

        assert "already started" in exc_info.value.message
        mock_db.execute.assert_not_awaited()

    async def test_later_slot_today_accepted(
        self, mock_db: AsyncMock, sample_booking_data: dict, workshop_clock: datetime
    ) -> None:
        today = workshop_clock.date()
        booking = AppointmentCreate(
            **{
                **sample_booking_data,
                "appointment_date": today.isoformat(),
                "appointment_time": "11:30",
            }
        )
        row = make_appointment_row(appointment_date=today, appointment_time="11:30")
        mock_db.execute.side_effect = [make_result([]), make_result([row])]

        created = await AppointmentService(mock_db).create_appointment(booking)

        assert created.appointment_time == "11:30"

    async def test_create_invalidates_cached_day(
        self, mock_db: AsyncMock, booking: AppointmentCreate
    ) -> None:
        cache = MagicMock(spec=CacheManager)
        mock_db.execute.side_effect = [make_result([]), make_result([make_appointment_row()])]

        await AppointmentService(mock_db, cache).create_appointment(booking)

        cache.delete.assert_called_once_with(
            f"availability:{booking.appointment_date.isoformat()}:nagytarcsa"
        )

    async def test_confirmation_email_failure_does_not_fail_booking(
        self,
        mock_db: AsyncMock,
        booking: AppointmentCreate,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        send = AsyncMock(return_value=False)
        monkeypatch.setattr(NotificationService, "send_confirmation_email", send)
        mock_db.execute.side_effect = [make_result([]), make_result([make_appointment_row()])]

        created = await AppointmentService(mock_db).create_appointment(booking)

        assert created.status == AppointmentStatus.PENDING
        send.assert_awaited_once()
        assert send.await_args.args[1] == "hu"

    async def test_concurrent_bookings_for_same_slot(self, booking: AppointmentCreate) -> None:
        """Two writers pass the pre-check together; only one row is stored."""
        storage = FakeStorage()

        results = await asyncio.gather(
            AppointmentService(storage.session()).create_appointment(booking),
            AppointmentService(storage.session()).create_appointment(booking),
            return_exceptions=True,
        )

        taken = [result for result in results if isinstance(result, SlotTakenException)]
        created = [result for result in results if not isinstance(result, Exception)]
        assert len(created) == 1
        assert len(taken) == 1
        assert len(storage.rows) == 1


class TestReadAppointments:
    """Lookup and listing."""

    async def test_get_appointment(self, mock_db: AsyncMock) -> None:
        row = make_appointment_row()
        mock_db.execute.return_value = make_result([row])

        appointment = await AppointmentService(mock_db).get_appointment(row["id"])

        assert appointment.email == row["email"]

    async def test_get_missing_appointment(self, mock_db: AsyncMock) -> None:
        mock_db.execute.return_value = make_result([])

        with pytest.raises(NotFoundException):
            await AppointmentService(mock_db).get_appointment(make_appointment_row()["id"])

    async def test_list_appointments(self, mock_db: AsyncMock) -> None:
        rows = [make_appointment_row(), make_appointment_row(appointment_time="11:00")]
        mock_db.execute.side_effect = [make_result(scalar=2), make_result(rows)]

        listing = await AppointmentService(mock_db).list_appointments(
            AppointmentFilters(email="Teszt.Elek@example.com", page_size=10)
        )

        assert listing.total == 2
        assert listing.page_size == 10
        assert [item.appointment_time for item in listing.items] == ["10:00", "11:00"]

        count_stmt = mock_db.execute.await_args_list[0].args[0]
        params = count_stmt.compile(dialect=postgresql.dialect()).params
        assert "teszt.elek@example.com" in params.values()


class TestCancelAppointment:
    """Customer and back-office cancellation."""

    async def test_cancel_appointment(
        self, mock_db: AsyncMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        send = AsyncMock(return_value=True)
        monkeypatch.setattr(NotificationService, "send_cancellation_email", send)
        current = make_appointment_row(status="confirmed")
        cancelled = {**current, "status": "cancelled", "cancelled_at": current["updated_at"]}
        mock_db.execute.side_effect = [make_result([current]), make_result([cancelled])]

        result = await AppointmentService(mock_db).cancel_appointment(
            current["id"], AppointmentCancel(language="en")
        )

        assert result.status == AppointmentStatus.CANCELLED
        assert result.cancelled_at is not None
        mock_db.commit.assert_awaited_once()
        send.assert_awaited_once()
        assert send.await_args.args[1] == "en"

    async def test_cancel_without_email(
        self, mock_db: AsyncMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        send = AsyncMock(return_value=True)
        monkeypatch.setattr(NotificationService, "send_cancellation_email", send)
        current = make_appointment_row()
        mock_db.execute.side_effect = [
            make_result([current]),
            make_result([{**current, "status": "cancelled"}]),
        ]

        await AppointmentService(mock_db).cancel_appointment(
            current["id"], AppointmentCancel(send_email=False)
        )

        send.assert_not_awaited()

    async def test_cancel_twice_rejected(self, mock_db: AsyncMock) -> None:
        current = make_appointment_row(status="cancelled")
        mock_db.execute.return_value = make_result([current])

        with pytest.raises(BadRequestException):
            await AppointmentService(mock_db).cancel_appointment(current["id"], AppointmentCancel())

        mock_db.commit.assert_not_awaited()


class TestRescheduleAppointment:
    """Moving appointments to a new slot."""

    async def test_reschedule_appointment(
        self, mock_db: AsyncMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        send = AsyncMock(return_value=True)
        monkeypatch.setattr(NotificationService, "send_reschedule_email", send)
        current = make_appointment_row()
        moved = {**current, "appointment_time": "13:00", "status": "rescheduled"}
        mock_db.execute.side_effect = [
            make_result([current]),
            make_result([{"appointment_time": "10:00", "service": "hepa"}]),
            make_result([moved]),
        ]

        result = await AppointmentService(mock_db).reschedule_appointment(
            current["id"],
            AppointmentReschedule(
                appointment_date=current["appointment_date"], appointment_time="13:00"
            ),
        )

        assert result.status == AppointmentStatus.RESCHEDULED
        assert result.appointment_time == "13:00"
        previous, updated, language = send.await_args.args
        assert previous["appointment_time"] == "10:00"
        assert updated["appointment_time"] == "13:00"
        assert language == "hu"

    async def test_reschedule_into_taken_slot(self, mock_db: AsyncMock) -> None:
        current = make_appointment_row()
        mock_db.execute.side_effect = [
            make_result([current]),
            make_result([{"appointment_time": "13:00", "service": "brake"}]),
        ]

        with pytest.raises(SlotTakenException):
            await AppointmentService(mock_db).reschedule_appointment(
                current["id"],
                AppointmentReschedule(
                    appointment_date=current["appointment_date"], appointment_time="13:00"
                ),
            )

        mock_db.commit.assert_not_awaited()

    async def test_reschedule_to_same_slot_rejected(self, mock_db: AsyncMock) -> None:
        current = make_appointment_row()
        mock_db.execute.return_value = make_result([current])

        with pytest.raises(BadRequestException):
            await AppointmentService(mock_db).reschedule_appointment(
                current["id"],
                AppointmentReschedule(
                    appointment_date=current["appointment_date"], appointment_time="10:00"
                ),
            )

    async def test_reschedule_cancelled_rejected(self, mock_db: AsyncMock) -> None:
        current = make_appointment_row(status="cancelled")
        mock_db.execute.return_value = make_result([current])

        with pytest.raises(BadRequestException):
            await AppointmentService(mock_db).reschedule_appointment(
                current["id"],
                AppointmentReschedule(
                    appointment_date=current["appointment_date"], appointment_time="13:00"
                ),
            )

    async def test_reschedule_invalidates_both_days(self, mock_db: AsyncMock) -> None:
        cache = MagicMock(spec=CacheManager)
        current = make_appointment_row()
        new_date = current["appointment_date"] + timedelta(days=1)
        mock_db.execute.side_effect = [
            make_result([current]),
            make_result([]),
            make_result([{**current, "appointment_date": new_date, "status": "rescheduled"}]),
        ]

        await AppointmentService(mock_db, cache).reschedule_appointment(
            current["id"],
            AppointmentReschedule(
                appointment_date=new_date, appointment_time="10:00", send_email=False
            ),
        )

        deleted = {call.args[0] for call in cache.delete.call_args_list}
        assert deleted == {
            f"availability:{current['appointment_date'].isoformat()}:nagytarcsa",
            f"availability:{new_date.isoformat()}:nagytarcsa",
        }


class TestUpdateStatus:
    """Back-office status changes."""

    async def test_confirm_pending(self, mock_db: AsyncMock) -> None:
        current = make_appointment_row()
        mock_db.execute.side_effect = [
            make_result([current]),
            make_result([{**current, "status": "confirmed"}]),
        ]

        result = await AppointmentService(mock_db).update_appointment_status(
            current["id"], AppointmentStatusUpdate(status=AppointmentStatus.CONFIRMED)
        )

        assert result.status == AppointmentStatus.CONFIRMED

    @pytest.mark.parametrize(
        ("old_status", "new_status"),
        [
            ("cancelled", AppointmentStatus.CONFIRMED),
            ("cancelled", AppointmentStatus.PENDING),
            ("confirmed", AppointmentStatus.PENDING),
            ("confirmed", AppointmentStatus.CONFIRMED),
        ],
    )
    async def test_disallowed_transitions(
        self, mock_db: AsyncMock, old_status: str, new_status: AppointmentStatus
    ) -> None:
        current = make_appointment_row(status=old_status)
        mock_db.execute.return_value = make_result([current])

        with pytest.raises(BadRequestException):
            await AppointmentService(mock_db).update_appointment_status(
                current["id"], AppointmentStatusUpdate(status=new_status)
            )

        mock_db.commit.assert_not_awaited()


class TestReminders:
    """Day-before reminder selection and sending."""

    async def test_due_reminders_skip_pending_and_cancelled(self, mock_db: AsyncMock) -> None:
        day = make_appointment_row()["appointment_date"]
        rows = [
            make_appointment_row(appointment_time="9:30", status="confirmed"),
            make_appointment_row(appointment_time="13:00", status="rescheduled"),
        ]
        mock_db.execute.return_value = make_result(rows)

        due = await AppointmentService(mock_db).list_due_reminders(day)

        assert [item.appointment_time for item in due] == ["9:30", "13:00"]

        stmt = mock_db.execute.await_args.args[0]
        compiled = stmt.compile(dialect=postgresql.dialect())
        statuses = [value for value in compiled.params.values() if isinstance(value, list)]
        assert statuses == [["confirmed", "rescheduled"]]
        assert day in compiled.params.values()
        assert "ORDER BY length(appointments.appointment_time)" in str(compiled)

    async def test_send_due_reminders_counts_deliveries(
        self, mock_db: AsyncMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        send = AsyncMock(side_effect=[True, False])
        monkeypatch.setattr(NotificationService, "send_reminder_email", send)
        first = make_appointment_row(status="confirmed")
        second = make_appointment_row(appointment_time="14:00", status="rescheduled")
        mock_db.execute.return_value = make_result([first, second])

        run = await AppointmentService(mock_db).send_due_reminders(first["appointment_date"])

        assert run.date == first["appointment_date"]
        assert run.due == 2
        assert run.sent == 1
        assert send.await_args_list[0].args[0]["id"] == first["id"]

    async def test_no_due_reminders(self, mock_db: AsyncMock) -> None:
        mock_db.execute.return_value = make_result([])
        day = make_appointment_row()["appointment_date"]

        run = await AppointmentService(mock_db).send_due_reminders(day)

        assert (run.due, run.sent) == (0, 0)
