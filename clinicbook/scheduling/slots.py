import datetime as dt

from clinicbook.domain.models import Doctor
from clinicbook.scheduling.availability import day_of_week, enabled_window


def generate_slots(date: dt.date, doctor: Doctor) -> list[dt.datetime]:
    """Expand the doctor's weekly template into candidate start times for ``date``.

    Slots are ``doctor.slot_duration`` minutes apart, starting at the window's
    opening time.  A slot is only emitted if it ends at or before the window's
    closing time, so a trailing remainder shorter than one slot is unused.
    Returns an empty list when the weekday has no enabled window or the
    window is empty or inverted.
    """
    window = enabled_window(doctor.availability, day_of_week(date))
    if window is None:
        return []

    start, end = window
    step = dt.timedelta(minutes=doctor.slot_duration)
    closing = dt.datetime.combine(date, end)

    slots: list[dt.datetime] = []
    current = dt.datetime.combine(date, start)
    while current + step <= closing:
        slots.append(current)
        current += step
    return slots
