import datetime as dt
import uuid
from collections.abc import Callable

from loguru import logger

from clinicbook.booking.conflicts import BookingConflictChecker
from clinicbook.booking.guard import guarded
from clinicbook.booking.ports import BookingStoreProtocol
from clinicbook.domain.exceptions import ForbiddenError, InvalidStateError, NotFoundError
from clinicbook.domain.models import (
    Actor,
    ActorRole,
    AvailabilityUpdate,
    Doctor,
    DoctorProfile,
    DoctorProfileUpdate,
    DoctorQuery,
    Page,
    Slot,
)
from clinicbook.scheduling.slots import generate_slots


class DoctorService:
    """Doctor lookup, search, self-service profile edits and open-slot listing."""

    def __init__(
        self,
        store: BookingStoreProtocol,
        conflicts: BookingConflictChecker,
        *,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ) -> None:
        self._store = store
        self._conflicts = conflicts
        self._new_id = id_factory

    async def get_doctor(self, doctor_id: str) -> Doctor:
        doctor = await guarded("Doctor lookup", self._store.get_doctor(doctor_id))
        if doctor is None:
            raise NotFoundError("doctor", doctor_id)
        return doctor

    async def search_doctors(self, query: DoctorQuery) -> Page[Doctor]:
        return await guarded("Doctor search", self._store.search_doctors(query))

    async def available_slots(self, doctor_id: str, date: dt.date) -> list[Slot]:
        """Open, future start times for the doctor on ``date``."""
        doctor = await self.get_doctor(doctor_id)
        candidates = generate_slots(date, doctor)
        if not candidates:
            return []
        return await self._conflicts.filter_available(candidates, doctor.doctor_id, date)

    async def create_profile(self, actor: Actor, profile: DoctorProfile) -> Doctor:
        if actor.role != ActorRole.DOCTOR:
            raise ForbiddenError(f"Role '{actor.role.value}' cannot create a doctor profile")
        existing = await guarded("Doctor lookup", self._store.find_doctor_by_user(actor.actor_id))
        if existing is not None:
            raise InvalidStateError("Doctor profile already exists")

        doctor = Doctor(doctor_id=self._new_id(), user_id=actor.actor_id, **profile.model_dump())
        saved = await guarded("Doctor save", self._store.save_doctor(doctor))
        logger.info("Doctor profile created: id={}", saved.doctor_id)
        return saved

    async def update_profile(self, actor: Actor, fields: DoctorProfileUpdate) -> Doctor:
        doctor = await self._own_profile(actor)
        # Attribute values keep nested models intact; model_copy does not re-validate.
        changes = {
            name: value
            for name in type(fields).model_fields
            if (value := getattr(fields, name)) is not None
        }
        if not changes:
            return doctor
        saved = await guarded(
            "Doctor save", self._store.save_doctor(doctor.model_copy(update=changes))
        )
        logger.info("Doctor profile updated: id={}, fields={}", saved.doctor_id, sorted(changes))
        return saved

    async def update_availability(self, actor: Actor, fields: AvailabilityUpdate) -> Doctor:
        doctor = await self._own_profile(actor)
        changes: dict[str, object] = {}
        if fields.availability is not None:
            changes["availability"] = list(fields.availability)
        if fields.slot_duration is not None:
            changes["slot_duration"] = fields.slot_duration
        if not changes:
            return doctor
        saved = await guarded(
            "Doctor save", self._store.save_doctor(doctor.model_copy(update=changes))
        )
        logger.info("Doctor availability updated: id={}", saved.doctor_id)
        return saved

    async def set_verified(self, actor: Actor, doctor_id: str, verified: bool = True) -> Doctor:
        """Admin-only: mark a doctor as verified so they appear in search."""
        if actor.role != ActorRole.ADMIN:
            raise ForbiddenError("Only admins can verify doctors")
        doctor = await self.get_doctor(doctor_id)
        saved = await guarded(
            "Doctor save",
            self._store.save_doctor(doctor.model_copy(update={"is_verified": verified})),
        )
        logger.info("Doctor verification set: id={}, verified={}", doctor_id, verified)
        return saved

    async def _own_profile(self, actor: Actor) -> Doctor:
        if actor.role != ActorRole.DOCTOR:
            raise ForbiddenError(
                f"Role '{actor.role.value}' is not authorized to access this route"
            )
        doctor = await guarded("Doctor lookup", self._store.find_doctor_by_user(actor.actor_id))
        if doctor is None:
            raise NotFoundError("doctor profile", actor.actor_id)
        return doctor
