import datetime as dt
from zoneinfo import ZoneInfo

from loguru import logger


def time_to_12h(time: dt.time) -> str:
    """Convert ``time(14, 30)`` → ``2:30 PM`` for slot labels.

    No leading zero on the hour (``3:30 PM`` not ``03:30 PM``).
    """
    hour = time.hour % 12 or 12
    period = "AM" if time.hour < 12 else "PM"
    return f"{hour}:{time.strftime('%M')} {period}"


def resolve_timezone(name: str) -> dt.tzinfo:
    """Resolve a timezone name, falling back to UTC if invalid."""
    try:
        return ZoneInfo(name)
    except Exception:
        logger.warning("Invalid clinic timezone '{}'; defaulting to UTC", name)
        return dt.timezone.utc


def to_wall_clock(value: dt.datetime, tz: dt.tzinfo) -> dt.datetime:
    """Express ``value`` as a naive wall-clock datetime in ``tz``.

    Naive values are assumed to already be in the clinic's frame.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(tz).replace(tzinfo=None)


def wall_clock_now(tz: dt.tzinfo) -> dt.datetime:
    return dt.datetime.now(tz).replace(tzinfo=None)
