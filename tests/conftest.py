import datetime as dt
from collections.abc import Callable
from zoneinfo import ZoneInfo

import pytest

from clinicbook.booking.adapters.memory import InMemoryBookingStore
from clinicbook.booking.conflicts import BookingConflictChecker
from clinicbook.booking.doctors import DoctorService
from clinicbook.booking.service import AppointmentService
from clinicbook.domain.models import (
    Actor,
    ActorRole,
    AvailabilityWindow,
    ClinicAddress,
    Doctor,
    Qualification,
    Rating,
)

# Friday 2026-03-13, noon clinic time.  The following Monday is 2026-03-16.
FIXED_NOW = dt.datetime(2026, 3, 13, 12, 0)


@pytest.fixture
def now() -> dt.datetime:
    return FIXED_NOW


@pytest.fixture
def next_monday() -> dt.date:
    return dt.date(2026, 3, 16)


@pytest.fixture
def clock() -> Callable[[], dt.datetime]:
    return lambda: FIXED_NOW


@pytest.fixture
def doctor() -> Doctor:
    """Verified doctor bookable Mon 09:00-10:00 and Wed 09:00-17:00 in 30-minute slots."""
    return Doctor(
        doctor_id="doc-1",
        user_id="user-doc-1",
        name="Ana Ruiz",
        consultation_fee=150.0,
        slot_duration=30,
        qualifications=[Qualification(degree="MD", institution="Tufts", year=2010)],
        clinic_address=ClinicAddress(
            name="Back Bay Clinic",
            street="10 Boylston St",
            city="Boston",
            state="MA",
            zip_code="02116",
        ),
        is_verified=True,
        rating=Rating(average=4.5, count=12),
        availability=[
            AvailabilityWindow(day_of_week=1, start_time="09:00", end_time="10:00"),
            AvailabilityWindow(day_of_week=3, start_time="09:00", end_time="17:00"),
            AvailabilityWindow(
                day_of_week=5, start_time="09:00", end_time="12:00", is_available=False
            ),
        ],
    )


@pytest.fixture
def store(doctor: Doctor) -> InMemoryBookingStore:
    """In-memory store pre-loaded with ``doctor``."""
    s = InMemoryBookingStore()
    s.doctors[doctor.doctor_id] = doctor
    return s


@pytest.fixture
def conflicts(
    store: InMemoryBookingStore, clock: Callable[[], dt.datetime]
) -> BookingConflictChecker:
    return BookingConflictChecker(store, clock)


@pytest.fixture
def appointment_service(
    store: InMemoryBookingStore,
    conflicts: BookingConflictChecker,
    clock: Callable[[], dt.datetime],
) -> AppointmentService:
    return AppointmentService(
        store, conflicts, clock=clock, clinic_tz=ZoneInfo("America/New_York")
    )


@pytest.fixture
def doctor_service(store: InMemoryBookingStore, conflicts: BookingConflictChecker) -> DoctorService:
    return DoctorService(store, conflicts)


@pytest.fixture
def patient() -> Actor:
    return Actor(actor_id="patient-1", role=ActorRole.PATIENT)


@pytest.fixture
def other_patient() -> Actor:
    return Actor(actor_id="patient-2", role=ActorRole.PATIENT)


@pytest.fixture
def doctor_actor(doctor: Doctor) -> Actor:
    return Actor(actor_id=doctor.user_id, role=ActorRole.DOCTOR)


@pytest.fixture
def admin() -> Actor:
    return Actor(actor_id="admin-1", role=ActorRole.ADMIN)
