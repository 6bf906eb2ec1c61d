import asyncio
import datetime as dt
from typing import TypeVar

from clinicbook.domain.exceptions import SlotConflictError
from clinicbook.domain.models import (
    Appointment,
    AppointmentQuery,
    Doctor,
    DoctorQuery,
    Page,
)

T = TypeVar("T")


def _paginate(items: list[T], page: int, limit: int) -> Page[T]:
    start = (page - 1) * limit
    return Page(items=items[start : start + limit], total=len(items), page=page, limit=limit)


class InMemoryBookingStore:
    """In-memory implementation of ``BookingStoreProtocol``.

    Used for local development and as the test double.  Writes are
    serialised under a lock so the active-slot uniqueness check and the
    write happen atomically, mirroring a storage-level unique index.

    Set ``read_error`` or ``write_error`` to make the corresponding
    methods raise on the next call.
    """

    def __init__(self) -> None:
        self.doctors: dict[str, Doctor] = {}
        self.appointments: dict[str, Appointment] = {}
        self.closed: bool = False

        self.read_error: Exception | None = None
        self.write_error: Exception | None = None

        self._lock = asyncio.Lock()

    def _check_read(self) -> None:
        if self.read_error:
            raise self.read_error

    def _check_write(self) -> None:
        if self.write_error:
            raise self.write_error

    async def get_doctor(self, doctor_id: str) -> Doctor | None:
        self._check_read()
        return self.doctors.get(doctor_id)

    async def find_doctor_by_user(self, user_id: str) -> Doctor | None:
        self._check_read()
        return next((d for d in self.doctors.values() if d.user_id == user_id), None)

    async def search_doctors(self, query: DoctorQuery) -> Page[Doctor]:
        self._check_read()
        matches = [d for d in self.doctors.values() if d.is_verified]
        if query.specialization:
            matches = [d for d in matches if d.specialization == query.specialization]
        if query.city:
            needle = query.city.lower()
            matches = [d for d in matches if needle in d.clinic_address.city.lower()]
        if query.accepting_new_patients is not None:
            matches = [
                d for d in matches if d.accepting_new_patients == query.accepting_new_patients
            ]
        matches.sort(key=lambda d: d.rating.average, reverse=True)
        return _paginate(matches, query.page, query.limit)

    async def save_doctor(self, doctor: Doctor) -> Doctor:
        self._check_write()
        self.doctors[doctor.doctor_id] = doctor
        return doctor

    async def get_appointment(self, appointment_id: str) -> Appointment | None:
        self._check_read()
        return self.appointments.get(appointment_id)

    async def find_active_appointment(
        self, doctor_id: str, date_time: dt.datetime, exclude_id: str | None = None
    ) -> Appointment | None:
        self._check_read()
        return self._active_at(doctor_id, date_time, exclude_id)

    async def active_start_times(
        self, doctor_id: str, start: dt.datetime, end: dt.datetime
    ) -> set[dt.datetime]:
        self._check_read()
        return {
            a.date_time
            for a in self.appointments.values()
            if a.doctor_id == doctor_id and a.is_active and start <= a.date_time < end
        }

    async def insert_appointment(self, appointment: Appointment) -> Appointment:
        async with self._lock:
            self._check_write()
            self._enforce_unique_slot(appointment)
            self.appointments[appointment.appointment_id] = appointment
        return appointment

    async def update_appointment(self, appointment: Appointment) -> Appointment:
        async with self._lock:
            self._check_write()
            self._enforce_unique_slot(appointment)
            self.appointments[appointment.appointment_id] = appointment
        return appointment

    async def query_appointments(
        self,
        query: AppointmentQuery,
        *,
        patient_id: str | None = None,
        doctor_id: str | None = None,
    ) -> Page[Appointment]:
        self._check_read()
        matches = list(self.appointments.values())
        if patient_id is not None:
            matches = [a for a in matches if a.patient_id == patient_id]
        if doctor_id is not None:
            matches = [a for a in matches if a.doctor_id == doctor_id]
        if query.status:
            matches = [a for a in matches if a.status == query.status]
        if query.date_from:
            matches = [a for a in matches if a.date_time >= query.date_from]
        if query.date_to:
            matches = [a for a in matches if a.date_time <= query.date_to]
        matches.sort(key=lambda a: a.date_time, reverse=True)
        return _paginate(matches, query.page, query.limit)

    async def health_check(self) -> bool:
        return not self.closed

    async def close(self) -> None:
        self.closed = True

    def _active_at(
        self, doctor_id: str, date_time: dt.datetime, exclude_id: str | None
    ) -> Appointment | None:
        for appointment in self.appointments.values():
            if (
                appointment.doctor_id == doctor_id
                and appointment.date_time == date_time
                and appointment.is_active
                and appointment.appointment_id != exclude_id
            ):
                return appointment
        return None

    def _enforce_unique_slot(self, appointment: Appointment) -> None:
        if not appointment.is_active:
            return
        clash = self._active_at(
            appointment.doctor_id, appointment.date_time, appointment.appointment_id
        )
        if clash:
            raise SlotConflictError(appointment.doctor_id, appointment.date_time)
