from dataclasses import dataclass
from functools import partial
from typing import Callable

from loguru import logger

from clinicbook.booking.adapters.datetime_helpers import resolve_timezone, wall_clock_now
from clinicbook.booking.adapters.memory import InMemoryBookingStore
from clinicbook.booking.adapters.sql import SQLBookingStore
from clinicbook.booking.conflicts import BookingConflictChecker
from clinicbook.booking.doctors import DoctorService
from clinicbook.booking.ports import BookingStoreProtocol
from clinicbook.booking.service import AppointmentService
from clinicbook.config import AppConfig, StorageBackend


@dataclass(frozen=True)
class BookingServices:
    store: BookingStoreProtocol
    appointments: AppointmentService
    doctors: DoctorService

    async def close(self) -> None:
        await self.store.close()


def _build_memory(config: AppConfig) -> BookingStoreProtocol:
    return InMemoryBookingStore()


def _build_sql(config: AppConfig) -> BookingStoreProtocol:
    return SQLBookingStore.from_url(config.storage.url, echo=config.storage.echo)


_BUILDERS: dict[StorageBackend, Callable[[AppConfig], BookingStoreProtocol]] = {
    StorageBackend.MEMORY: _build_memory,
    StorageBackend.SQL: _build_sql,
}


def wire_services(store: BookingStoreProtocol, clinic_timezone: str) -> BookingServices:
    """Wire the services around an existing store, sharing one clock."""
    clinic_tz = resolve_timezone(clinic_timezone)
    clock = partial(wall_clock_now, clinic_tz)
    conflicts = BookingConflictChecker(store, clock)
    return BookingServices(
        store=store,
        appointments=AppointmentService(store, conflicts, clock=clock, clinic_tz=clinic_tz),
        doctors=DoctorService(store, conflicts),
    )


async def build_booking_services(config: AppConfig) -> BookingServices:
    """Build the store selected by config and the services around it."""
    backend = config.storage.backend
    logger.info("Building booking services with storage backend: {}", backend.value)
    store = _BUILDERS[backend](config)
    if isinstance(store, SQLBookingStore) and config.storage.create_schema:
        await store.create_schema()
    return wire_services(store, config.clinic_timezone)
