import datetime as dt

import pytest

from clinicbook.booking.adapters.memory import InMemoryBookingStore
from clinicbook.domain.exceptions import SlotConflictError
from clinicbook.domain.models import Appointment, AppointmentQuery, AppointmentStatus, Fee

SLOT = dt.datetime(2026, 3, 16, 9, 0)


def _appointment(
    appointment_id: str,
    date_time: dt.datetime = SLOT,
    status: AppointmentStatus = AppointmentStatus.PENDING,
) -> Appointment:
    return Appointment(
        appointment_id=appointment_id,
        patient_id="patient-1",
        doctor_id="doc-1",
        date_time=date_time,
        end_time=date_time + dt.timedelta(minutes=30),
        status=status,
        reason="Checkup",
        fee=Fee(amount=150.0),
    )


class TestActiveSlotUniqueness:
    @pytest.mark.asyncio
    async def test_second_active_insert_conflicts(self, store: InMemoryBookingStore) -> None:
        await store.insert_appointment(_appointment("a1"))

        with pytest.raises(SlotConflictError):
            await store.insert_appointment(_appointment("a2"))

        assert set(store.appointments) == {"a1"}

    @pytest.mark.asyncio
    async def test_cancelled_rows_do_not_count(self, store: InMemoryBookingStore) -> None:
        await store.insert_appointment(_appointment("a1", status=AppointmentStatus.CANCELLED))
        await store.insert_appointment(_appointment("a2", status=AppointmentStatus.CANCELLED))

        await store.insert_appointment(_appointment("a3"))

        assert len(store.appointments) == 3

    @pytest.mark.asyncio
    async def test_reactivating_onto_taken_slot_conflicts(
        self, store: InMemoryBookingStore
    ) -> None:
        cancelled = _appointment("a1", status=AppointmentStatus.CANCELLED)
        await store.insert_appointment(cancelled)
        await store.insert_appointment(_appointment("a2"))

        with pytest.raises(SlotConflictError):
            await store.update_appointment(
                cancelled.model_copy(update={"status": AppointmentStatus.PENDING})
            )

    @pytest.mark.asyncio
    async def test_updating_own_row_is_allowed(self, store: InMemoryBookingStore) -> None:
        appointment = await store.insert_appointment(_appointment("a1"))

        updated = await store.update_appointment(
            appointment.model_copy(update={"status": AppointmentStatus.CONFIRMED})
        )

        assert store.appointments["a1"] == updated


class TestQueries:
    @pytest.mark.asyncio
    async def test_active_start_times_within_range(self, store: InMemoryBookingStore) -> None:
        await store.insert_appointment(_appointment("a1"))
        await store.insert_appointment(_appointment("a2", SLOT + dt.timedelta(days=1)))
        await store.insert_appointment(
            _appointment("a3", SLOT + dt.timedelta(hours=1), AppointmentStatus.CANCELLED)
        )

        times = await store.active_start_times(
            "doc-1", dt.datetime(2026, 3, 16), dt.datetime(2026, 3, 17)
        )

        assert times == {SLOT}

    @pytest.mark.asyncio
    async def test_find_active_appointment_excludes_id(
        self, store: InMemoryBookingStore
    ) -> None:
        await store.insert_appointment(_appointment("a1"))

        assert (await store.find_active_appointment("doc-1", SLOT)).appointment_id == "a1"
        assert await store.find_active_appointment("doc-1", SLOT, exclude_id="a1") is None

    @pytest.mark.asyncio
    async def test_query_defaults_to_newest_first(self, store: InMemoryBookingStore) -> None:
        for offset in range(3):
            await store.insert_appointment(
                _appointment(f"a{offset}", SLOT + dt.timedelta(hours=offset))
            )

        page = await store.query_appointments(AppointmentQuery(), patient_id="patient-1")

        assert [a.appointment_id for a in page.items] == ["a2", "a1", "a0"]
        assert page.total == 3


class TestErrorInjection:
    @pytest.mark.asyncio
    async def test_read_error(self, store: InMemoryBookingStore) -> None:
        store.read_error = ConnectionError("down")

        with pytest.raises(ConnectionError):
            await store.get_doctor("doc-1")

    @pytest.mark.asyncio
    async def test_write_error(self, store: InMemoryBookingStore) -> None:
        store.write_error = RuntimeError("read-only")

        with pytest.raises(RuntimeError):
            await store.insert_appointment(_appointment("a1"))

    @pytest.mark.asyncio
    async def test_health_after_close(self, store: InMemoryBookingStore) -> None:
        assert await store.health_check() is True

        await store.close()

        assert await store.health_check() is False
