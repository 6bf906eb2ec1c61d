import datetime as dt
from abc import ABC, abstractmethod
from typing import Protocol

from clinicbook.domain.models import (
    Actor,
    Appointment,
    AppointmentQuery,
    AppointmentRequest,
    AppointmentUpdate,
    Doctor,
    DoctorQuery,
    Page,
)


class AbstractAppointmentService(ABC):
    """Abstract base class for the appointment lifecycle."""

    @abstractmethod
    async def create_appointment(self, actor: Actor, request: AppointmentRequest) -> Appointment:
        """Book an appointment for the calling patient.

        Args:
            actor: The patient making the booking.
            request: The appointment details.

        Returns:
            The persisted appointment, status ``pending``.

        Raises:
            NotFoundError: If the doctor does not exist.
            InvalidStateError: If the doctor is not accepting new patients,
                or the requested time is not in the future.
            SlotConflictError: If the doctor already has an active
                appointment at that instant.
            BookingValidationError: If the reason is missing or too long.
            StorageUnavailableError: If the store is unreachable.
        """

    @abstractmethod
    async def update_appointment(
        self, appointment_id: str, actor: Actor, fields: AppointmentUpdate
    ) -> Appointment:
        """Apply a role-gated update to an appointment.

        Raises:
            NotFoundError: If the appointment does not exist.
            ForbiddenError: If the actor is unrelated to the appointment or
                asks to write a field their role does not own.
            InvalidStateError: If the requested status transition is not allowed.
            StorageUnavailableError: If the store is unreachable.
        """

    @abstractmethod
    async def cancel_appointment(
        self, appointment_id: str, actor: Actor, reason: str | None = None
    ) -> None:
        """Soft-cancel an appointment on behalf of its patient or an admin.

        Raises:
            NotFoundError: If the appointment does not exist.
            ForbiddenError: If the actor is neither the patient nor an admin.
            InvalidStateError: If the appointment can no longer be cancelled.
            StorageUnavailableError: If the store is unreachable.
        """

    @abstractmethod
    async def get_appointment(
        self, appointment_id: str, actor: Actor, *, include_private: bool = False
    ) -> Appointment:
        """Fetch one appointment visible to ``actor``."""

    @abstractmethod
    async def list_appointments(self, actor: Actor, query: AppointmentQuery) -> Page[Appointment]:
        """List the appointments visible to ``actor``, newest first."""


class BookingStoreProtocol(Protocol):
    """Low-level persistence interface for doctors and appointments.

    Implementations must reject an insert or update that would leave two
    non-cancelled appointments for the same doctor at the same instant,
    raising ``SlotConflictError``.
    """

    async def get_doctor(self, doctor_id: str) -> Doctor | None:
        """Fetch a doctor by id."""
        ...

    async def find_doctor_by_user(self, user_id: str) -> Doctor | None:
        """Fetch the doctor profile owned by a user account."""
        ...

    async def search_doctors(self, query: DoctorQuery) -> Page[Doctor]:
        """Search verified doctors, best rated first."""
        ...

    async def save_doctor(self, doctor: Doctor) -> Doctor:
        """Insert or replace a doctor."""
        ...

    async def get_appointment(self, appointment_id: str) -> Appointment | None:
        """Fetch an appointment by id."""
        ...

    async def find_active_appointment(
        self, doctor_id: str, date_time: dt.datetime, exclude_id: str | None = None
    ) -> Appointment | None:
        """Find a non-cancelled appointment for the doctor at exactly ``date_time``."""
        ...

    async def active_start_times(
        self, doctor_id: str, start: dt.datetime, end: dt.datetime
    ) -> set[dt.datetime]:
        """Start times of non-cancelled appointments in ``[start, end)``."""
        ...

    async def insert_appointment(self, appointment: Appointment) -> Appointment:
        """Persist a new appointment."""
        ...

    async def update_appointment(self, appointment: Appointment) -> Appointment:
        """Replace a stored appointment."""
        ...

    async def query_appointments(
        self,
        query: AppointmentQuery,
        *,
        patient_id: str | None = None,
        doctor_id: str | None = None,
    ) -> Page[Appointment]:
        """List appointments, newest first, optionally scoped to a patient or doctor."""
        ...

    async def health_check(self) -> bool:
        """Check if the store is reachable."""
        ...

    async def close(self) -> None:
        """Release resources."""
        ...
