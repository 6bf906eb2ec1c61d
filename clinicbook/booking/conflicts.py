import datetime as dt
from collections.abc import Callable, Sequence

from loguru import logger

from clinicbook.booking.adapters.datetime_helpers import time_to_12h
from clinicbook.booking.guard import guarded
from clinicbook.booking.ports import BookingStoreProtocol
from clinicbook.domain.models import Slot


class BookingConflictChecker:
    """Decides which candidate start times a doctor can still be booked at.

    Both operations are reads.  They narrow a listing or short-circuit a
    booking with a clear error, but the store's uniqueness constraint is
    what finally prevents two concurrent bookings of the same slot.
    """

    def __init__(self, store: BookingStoreProtocol, clock: Callable[[], dt.datetime]) -> None:
        self._store = store
        self._clock = clock

    async def is_slot_available(
        self,
        doctor_id: str,
        date_time: dt.datetime,
        exclude_appointment_id: str | None = None,
    ) -> bool:
        """True if no active appointment for the doctor starts at exactly ``date_time``."""
        existing = await guarded(
            "Slot lookup",
            self._store.find_active_appointment(doctor_id, date_time, exclude_appointment_id),
        )
        return existing is None

    async def filter_available(
        self, candidate_slots: Sequence[dt.datetime], doctor_id: str, date: dt.date
    ) -> list[Slot]:
        """Drop candidates that are already booked or not strictly in the future."""
        day_start = dt.datetime.combine(date, dt.time.min)
        booked = await guarded(
            "Booked slot lookup",
            self._store.active_start_times(doctor_id, day_start, day_start + dt.timedelta(days=1)),
        )
        now = self._clock()

        available = [
            Slot(date_time=slot, formatted=time_to_12h(slot.time()))
            for slot in candidate_slots
            if slot not in booked and slot > now
        ]
        logger.debug(
            "Doctor {} on {}: {} of {} candidate slots open",
            doctor_id,
            date,
            len(available),
            len(candidate_slots),
        )
        return available
