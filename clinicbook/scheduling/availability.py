import datetime as dt
from collections.abc import Iterable

from clinicbook.domain.models import AvailabilityWindow


def day_of_week(date: dt.date) -> int:
    """Weekday index counting from Sunday (0) to Saturday (6)."""
    return (date.weekday() + 1) % 7


def parse_wall_clock(value: str) -> dt.time:
    """Parse an ``HH:MM`` template time."""
    hour, minute = value.split(":")
    return dt.time(int(hour), int(minute))


def enabled_window(
    template: Iterable[AvailabilityWindow], weekday: int
) -> tuple[dt.time, dt.time] | None:
    """Return the first enabled ``(start, end)`` window for ``weekday``, or None."""
    for window in template:
        if window.day_of_week == weekday and window.is_available:
            return parse_wall_clock(window.start_time), parse_wall_clock(window.end_time)
    return None
