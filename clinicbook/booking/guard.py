from collections.abc import Awaitable
from typing import TypeVar

from loguru import logger

from clinicbook.domain.exceptions import BookingError, StorageUnavailableError

T = TypeVar("T")


async def guarded(action: str, call: Awaitable[T]) -> T:
    """Await a store call, passing booking errors through and wrapping anything else."""
    try:
        return await call
    except BookingError:
        raise
    except Exception as exc:
        logger.exception("Booking store failure during {}", action)
        raise StorageUnavailableError(f"{action} failed") from exc
