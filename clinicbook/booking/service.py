import datetime as dt
import uuid
from collections.abc import Callable, Iterable

from loguru import logger

from clinicbook.booking.adapters.datetime_helpers import to_wall_clock
from clinicbook.booking.conflicts import BookingConflictChecker
from clinicbook.booking.guard import guarded
from clinicbook.booking.ports import AbstractAppointmentService, BookingStoreProtocol
from clinicbook.domain.exceptions import (
    BookingValidationError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    SlotConflictError,
)
from clinicbook.domain.models import (
    MAX_REASON_LENGTH,
    Actor,
    ActorRole,
    Appointment,
    AppointmentQuery,
    AppointmentRequest,
    AppointmentStatus,
    AppointmentUpdate,
    CancelledBy,
    Doctor,
    Fee,
    Notes,
    Page,
)

DEFAULT_CANCELLATION_REASON = "Cancelled by user"

# Statuses not listed here are terminal.
ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset(
        {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW}
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW}
    ),
}

WRITABLE_FIELDS: dict[ActorRole, frozenset[str]] = {
    ActorRole.PATIENT: frozenset({"notes", "status", "reason"}),
    ActorRole.DOCTOR: frozenset({"notes", "status", "prescription", "reason"}),
    ActorRole.ADMIN: frozenset({"status", "reason"}),
}

_CANCELLED_BY: dict[ActorRole, CancelledBy] = {
    ActorRole.PATIENT: CancelledBy.PATIENT,
    ActorRole.DOCTOR: CancelledBy.DOCTOR,
    ActorRole.ADMIN: CancelledBy.SYSTEM,
}


def check_transition(current: AppointmentStatus, target: AppointmentStatus) -> None:
    """Raise ``InvalidStateError`` unless ``current -> target`` is a lifecycle step."""
    if target not in ALLOWED_TRANSITIONS.get(current, frozenset()):
        raise InvalidStateError(
            f"Cannot change appointment status from '{current.value}' to '{target.value}'"
        )


def _validate_request(request: AppointmentRequest) -> None:
    errors: list[str] = []
    if not request.reason.strip():
        errors.append("Reason for visit is required")
    elif len(request.reason) > MAX_REASON_LENGTH:
        errors.append(f"Reason for visit must be at most {MAX_REASON_LENGTH} characters")
    if not request.doctor_id:
        errors.append("Doctor is required")
    if errors:
        raise BookingValidationError(errors)


class AppointmentService(AbstractAppointmentService):
    """Owns appointment state transitions and the booking invariants.

    The store and the clock are injected; the authenticated caller is
    passed explicitly to every operation.
    """

    def __init__(
        self,
        store: BookingStoreProtocol,
        conflicts: BookingConflictChecker,
        *,
        clock: Callable[[], dt.datetime],
        clinic_tz: dt.tzinfo,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ) -> None:
        self._store = store
        self._conflicts = conflicts
        self._clock = clock
        self._clinic_tz = clinic_tz
        self._new_id = id_factory

    async def create_appointment(self, actor: Actor, request: AppointmentRequest) -> Appointment:
        if actor.role != ActorRole.PATIENT:
            raise ForbiddenError(f"Role '{actor.role.value}' cannot book appointments")
        _validate_request(request)

        date_time = to_wall_clock(request.date_time, self._clinic_tz)
        logger.info(
            "Creating appointment request: doctor={}, date_time={}",
            request.doctor_id,
            date_time,
        )

        doctor = await guarded("Doctor lookup", self._store.get_doctor(request.doctor_id))
        if doctor is None:
            raise NotFoundError("doctor", request.doctor_id)
        if not doctor.accepting_new_patients:
            raise InvalidStateError("Doctor not accepting new patients")

        now = self._clock()
        if date_time <= now:
            raise InvalidStateError("Cannot book an appointment in the past")

        if not await self._conflicts.is_slot_available(doctor.doctor_id, date_time):
            logger.info("Slot already taken: doctor={}, date_time={}", doctor.doctor_id, date_time)
            raise SlotConflictError(doctor.doctor_id, date_time)

        appointment = Appointment(
            appointment_id=self._new_id(),
            patient_id=actor.actor_id,
            doctor_id=doctor.doctor_id,
            date_time=date_time,
            end_time=date_time + dt.timedelta(minutes=doctor.slot_duration),
            type=request.type,
            reason=request.reason.strip(),
            symptoms=list(request.symptoms),
            notes=Notes(patient=request.notes),
            fee=Fee(amount=doctor.consultation_fee),
            created_at=now,
            updated_at=now,
        )

        try:
            saved = await guarded("Appointment insert", self._store.insert_appointment(appointment))
        except SlotConflictError:
            logger.warning(
                "Slot booked concurrently: doctor={}, date_time={}", doctor.doctor_id, date_time
            )
            raise

        logger.info("Appointment created: id={}", saved.appointment_id)
        return saved

    async def update_appointment(
        self, appointment_id: str, actor: Actor, fields: AppointmentUpdate
    ) -> Appointment:
        appointment = await self._load(appointment_id)
        relation = await self._relation(appointment, actor)
        if relation is None:
            raise ForbiddenError("Not authorized to update this appointment")

        requested = fields.provided_fields()
        disallowed = requested - WRITABLE_FIELDS[relation]
        if disallowed:
            raise ForbiddenError(
                f"Role '{relation.value}' may not update: {', '.join(sorted(disallowed))}"
            )
        cancel_only = relation in (ActorRole.PATIENT, ActorRole.ADMIN)
        if cancel_only and fields.status not in (None, AppointmentStatus.CANCELLED):
            raise ForbiddenError(f"Role '{relation.value}' may only cancel an appointment")

        changes: dict[str, object] = {}
        if fields.notes is not None:
            side = "patient" if relation == ActorRole.PATIENT else "doctor"
            changes["notes"] = appointment.notes.model_copy(update={side: fields.notes})
        if fields.prescription is not None:
            changes["prescription"] = fields.prescription
        if fields.status is not None and fields.status != appointment.status:
            check_transition(appointment.status, fields.status)
            changes["status"] = fields.status
            if fields.status == AppointmentStatus.CANCELLED:
                changes["cancelled_by"] = _CANCELLED_BY[relation]
                changes["cancellation_reason"] = fields.reason or ""

        if changes:
            changes["updated_at"] = self._clock()
            appointment = await guarded(
                "Appointment update",
                self._store.update_appointment(appointment.model_copy(update=changes)),
            )
            logger.info(
                "Appointment updated: id={}, by={}, fields={}",
                appointment_id,
                relation.value,
                sorted(changes),
            )

        if relation == ActorRole.PATIENT:
            return appointment.redacted()
        return appointment

    async def cancel_appointment(
        self, appointment_id: str, actor: Actor, reason: str | None = None
    ) -> None:
        appointment = await self._load(appointment_id)

        is_patient = actor.role == ActorRole.PATIENT and appointment.patient_id == actor.actor_id
        if not is_patient and actor.role != ActorRole.ADMIN:
            raise ForbiddenError("Not authorized to cancel this appointment")
        check_transition(appointment.status, AppointmentStatus.CANCELLED)

        logger.info("Cancelling appointment: id={}", appointment_id)
        cancelled = appointment.model_copy(
            update={
                "status": AppointmentStatus.CANCELLED,
                "cancelled_by": CancelledBy.PATIENT if is_patient else CancelledBy.SYSTEM,
                "cancellation_reason": reason or DEFAULT_CANCELLATION_REASON,
                "updated_at": self._clock(),
            }
        )
        await guarded("Appointment cancel", self._store.update_appointment(cancelled))
        logger.info("Appointment cancelled: id={}", appointment_id)

    async def get_appointment(
        self, appointment_id: str, actor: Actor, *, include_private: bool = False
    ) -> Appointment:
        appointment = await self._load(appointment_id)
        relation = await self._relation(appointment, actor)
        if relation is None:
            raise ForbiddenError("Not authorized to view this appointment")
        if not include_private:
            return appointment.redacted()
        if relation == ActorRole.PATIENT:
            raise ForbiddenError("Private notes are only visible to the treating doctor")
        return appointment

    async def list_appointments(self, actor: Actor, query: AppointmentQuery) -> Page[Appointment]:
        patient_id: str | None = None
        doctor_id: str | None = None
        if actor.role == ActorRole.PATIENT:
            patient_id = actor.actor_id
        elif actor.role == ActorRole.DOCTOR:
            doctor = await guarded("Doctor lookup", self._store.find_doctor_by_user(actor.actor_id))
            if doctor is None:
                raise NotFoundError("doctor profile", actor.actor_id)
            doctor_id = doctor.doctor_id

        window = {
            name: to_wall_clock(value, self._clinic_tz)
            for name in ("date_from", "date_to")
            if (value := getattr(query, name)) is not None
        }
        if window:
            query = query.model_copy(update=window)
        page = await guarded(
            "Appointment listing",
            self._store.query_appointments(query, patient_id=patient_id, doctor_id=doctor_id),
        )
        return page.model_copy(update={"items": [a.redacted() for a in page.items]})

    async def doctors_for(self, appointments: Iterable[Appointment]) -> dict[str, Doctor]:
        """Resolve the doctors referenced by ``appointments``, for opt-in expansion."""
        doctors: dict[str, Doctor] = {}
        for doctor_id in {a.doctor_id for a in appointments}:
            doctor = await guarded("Doctor lookup", self._store.get_doctor(doctor_id))
            if doctor is not None:
                doctors[doctor_id] = doctor
        return doctors

    async def _load(self, appointment_id: str) -> Appointment:
        appointment = await guarded(
            "Appointment lookup", self._store.get_appointment(appointment_id)
        )
        if appointment is None:
            raise NotFoundError("appointment", appointment_id)
        return appointment

    async def _relation(self, appointment: Appointment, actor: Actor) -> ActorRole | None:
        """How ``actor`` relates to ``appointment``, or None if unrelated."""
        if actor.role == ActorRole.ADMIN:
            return ActorRole.ADMIN
        if actor.role == ActorRole.PATIENT:
            return ActorRole.PATIENT if appointment.patient_id == actor.actor_id else None
        doctor = await guarded("Doctor lookup", self._store.find_doctor_by_user(actor.actor_id))
        if doctor is not None and doctor.doctor_id == appointment.doctor_id:
            return ActorRole.DOCTOR
        return None
