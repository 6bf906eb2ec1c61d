import datetime as dt

import pytest

from clinicbook.booking.adapters.memory import InMemoryBookingStore
from clinicbook.booking.conflicts import BookingConflictChecker
from clinicbook.booking.doctors import DoctorService
from clinicbook.domain.exceptions import ForbiddenError, InvalidStateError, NotFoundError
from clinicbook.domain.models import (
    Actor,
    ActorRole,
    Appointment,
    AvailabilityUpdate,
    AvailabilityWindow,
    ClinicAddress,
    Doctor,
    DoctorProfile,
    DoctorProfileUpdate,
    DoctorQuery,
    Fee,
    Qualification,
    Rating,
    Specialization,
)


def _profile(**overrides: object) -> DoctorProfile:
    fields: dict[str, object] = {
        "name": "Lee Park",
        "specialization": Specialization.CARDIOLOGY,
        "license_number": "MA-12345",
        "consultation_fee": 200.0,
    }
    fields.update(overrides)
    return DoctorProfile(**fields)


AUSTIN = DoctorProfileUpdate(clinic_address=ClinicAddress(city="Austin"))


class TestGetDoctor:
    @pytest.mark.asyncio
    async def test_found(self, doctor_service: DoctorService, doctor: Doctor) -> None:
        assert await doctor_service.get_doctor("doc-1") == doctor

    @pytest.mark.asyncio
    async def test_missing(self, doctor_service: DoctorService) -> None:
        with pytest.raises(NotFoundError, match="Doctor not found: nope"):
            await doctor_service.get_doctor("nope")


class TestSearchDoctors:
    @pytest.fixture
    def roster(self, store: InMemoryBookingStore, doctor: Doctor) -> None:
        store.doctors["doc-2"] = doctor.model_copy(
            update={
                "doctor_id": "doc-2",
                "user_id": "user-doc-2",
                "specialization": Specialization.CARDIOLOGY,
                "clinic_address": ClinicAddress(city="New Boston"),
                "rating": Rating(average=4.9, count=30),
            }
        )
        store.doctors["doc-3"] = doctor.model_copy(
            update={"doctor_id": "doc-3", "user_id": "user-doc-3", "is_verified": False}
        )
        store.doctors["doc-4"] = doctor.model_copy(
            update={
                "doctor_id": "doc-4",
                "user_id": "user-doc-4",
                "clinic_address": ClinicAddress(city="Denver"),
                "accepting_new_patients": False,
                "rating": Rating(average=3.0, count=4),
            }
        )

    @pytest.mark.asyncio
    async def test_only_verified_by_rating(
        self, doctor_service: DoctorService, roster: None
    ) -> None:
        page = await doctor_service.search_doctors(DoctorQuery())

        assert [d.doctor_id for d in page.items] == ["doc-2", "doc-1", "doc-4"]

    @pytest.mark.asyncio
    async def test_city_is_case_insensitive_substring(
        self, doctor_service: DoctorService, roster: None
    ) -> None:
        page = await doctor_service.search_doctors(DoctorQuery(city="boston"))

        assert {d.doctor_id for d in page.items} == {"doc-1", "doc-2"}

    @pytest.mark.asyncio
    async def test_filters_by_specialization(
        self, doctor_service: DoctorService, roster: None
    ) -> None:
        page = await doctor_service.search_doctors(
            DoctorQuery(specialization=Specialization.CARDIOLOGY)
        )

        assert [d.doctor_id for d in page.items] == ["doc-2"]

    @pytest.mark.asyncio
    async def test_filters_by_accepting(
        self, doctor_service: DoctorService, roster: None
    ) -> None:
        page = await doctor_service.search_doctors(DoctorQuery(accepting_new_patients=False))

        assert [d.doctor_id for d in page.items] == ["doc-4"]

    @pytest.mark.asyncio
    async def test_paginates(self, doctor_service: DoctorService, roster: None) -> None:
        page = await doctor_service.search_doctors(DoctorQuery(page=2, limit=2))

        assert [d.doctor_id for d in page.items] == ["doc-4"]
        assert page.total == 3
        assert page.pages == 2


class TestAvailableSlots:
    @pytest.mark.asyncio
    async def test_lists_open_slots(
        self, doctor_service: DoctorService, next_monday: dt.date
    ) -> None:
        slots = await doctor_service.available_slots("doc-1", next_monday)

        assert [(s.date_time.time(), s.formatted) for s in slots] == [
            (dt.time(9, 0), "9:00 AM"),
            (dt.time(9, 30), "9:30 AM"),
        ]

    @pytest.mark.asyncio
    async def test_booked_slot_is_hidden(
        self,
        doctor_service: DoctorService,
        store: InMemoryBookingStore,
        next_monday: dt.date,
    ) -> None:
        taken = dt.datetime(2026, 3, 16, 9, 0)
        await store.insert_appointment(
            Appointment(
                appointment_id="a1",
                patient_id="patient-1",
                doctor_id="doc-1",
                date_time=taken,
                end_time=taken + dt.timedelta(minutes=30),
                reason="Checkup",
                fee=Fee(amount=150.0),
            )
        )

        slots = await doctor_service.available_slots("doc-1", next_monday)

        assert [s.formatted for s in slots] == ["9:30 AM"]

    @pytest.mark.asyncio
    async def test_day_without_window(self, doctor_service: DoctorService) -> None:
        assert await doctor_service.available_slots("doc-1", dt.date(2026, 3, 17)) == []

    @pytest.mark.asyncio
    async def test_disabled_window(self, doctor_service: DoctorService) -> None:
        assert await doctor_service.available_slots("doc-1", dt.date(2026, 3, 20)) == []

    @pytest.mark.asyncio
    async def test_past_date(self, doctor_service: DoctorService) -> None:
        assert await doctor_service.available_slots("doc-1", dt.date(2026, 3, 9)) == []

    @pytest.mark.asyncio
    async def test_unknown_doctor(
        self, doctor_service: DoctorService, next_monday: dt.date
    ) -> None:
        with pytest.raises(NotFoundError):
            await doctor_service.available_slots("nope", next_monday)


class TestCreateProfile:
    @pytest.mark.asyncio
    async def test_creates_unverified_profile(
        self, store: InMemoryBookingStore, conflicts: BookingConflictChecker
    ) -> None:
        service = DoctorService(store, conflicts, id_factory=lambda: "doc-new")
        actor = Actor(actor_id="user-new", role=ActorRole.DOCTOR)

        created = await service.create_profile(actor, _profile())

        assert created.doctor_id == "doc-new"
        assert created.user_id == "user-new"
        assert created.is_verified is False
        assert created.slot_duration == 30
        assert created.languages == ["English"]
        assert store.doctors["doc-new"] == created

    @pytest.mark.asyncio
    async def test_existing_profile(
        self, doctor_service: DoctorService, doctor_actor: Actor
    ) -> None:
        with pytest.raises(InvalidStateError, match="already exists"):
            await doctor_service.create_profile(doctor_actor, _profile())

    @pytest.mark.asyncio
    async def test_patient_cannot_create(
        self, doctor_service: DoctorService, patient: Actor
    ) -> None:
        with pytest.raises(ForbiddenError):
            await doctor_service.create_profile(patient, _profile())


    @pytest.mark.asyncio
    async def test_keeps_qualifications_and_address(
        self, store: InMemoryBookingStore, conflicts: BookingConflictChecker
    ) -> None:
        service = DoctorService(store, conflicts, id_factory=lambda: "doc-new")
        actor = Actor(actor_id="user-new", role=ActorRole.DOCTOR)
        profile = _profile(
            qualifications=[Qualification(degree="MD", institution="Yale", year=2012)],
            clinic_address=ClinicAddress(name="Harbor Clinic", city="Portland", state="ME"),
        )

        created = await service.create_profile(actor, profile)

        assert created.qualifications == profile.qualifications
        assert created.clinic_address.city == "Portland"
        assert created.rating == Rating(average=0.0, count=0)


class TestUpdateProfile:
    @pytest.mark.asyncio
    async def test_updates_only_given_fields(
        self, doctor_service: DoctorService, doctor_actor: Actor, doctor: Doctor
    ) -> None:
        updated = await doctor_service.update_profile(
            doctor_actor, DoctorProfileUpdate(bio="Twenty years in practice", experience=20)
        )

        assert updated.bio == "Twenty years in practice"
        assert updated.experience == 20
        assert updated.consultation_fee == doctor.consultation_fee
        assert updated.is_verified is True

    @pytest.mark.asyncio
    async def test_empty_update_returns_profile(
        self, doctor_service: DoctorService, doctor_actor: Actor, doctor: Doctor
    ) -> None:
        assert await doctor_service.update_profile(doctor_actor, DoctorProfileUpdate()) == doctor

    @pytest.mark.asyncio
    async def test_replaces_nested_profile_fields(
        self,
        doctor_service: DoctorService,
        doctor_actor: Actor,
        store: InMemoryBookingStore,
    ) -> None:
        qualifications = [
            Qualification(degree="MD", institution="Tufts", year=2010),
            Qualification(degree="FACC", institution="ACC", year=2016),
        ]

        updated = await doctor_service.update_profile(
            doctor_actor,
            DoctorProfileUpdate(
                qualifications=qualifications, clinic_address=AUSTIN.clinic_address
            ),
        )

        assert updated.qualifications == qualifications
        assert isinstance(updated.clinic_address, ClinicAddress)
        assert updated.clinic_address.city == "Austin"
        assert store.doctors["doc-1"] == updated

    @pytest.mark.asyncio
    async def test_moved_doctor_is_found_in_new_city(
        self, doctor_service: DoctorService, doctor_actor: Actor
    ) -> None:
        await doctor_service.update_profile(doctor_actor, AUSTIN)

        assert (await doctor_service.search_doctors(DoctorQuery(city="boston"))).total == 0
        page = await doctor_service.search_doctors(DoctorQuery(city="austin"))
        assert [d.doctor_id for d in page.items] == ["doc-1"]

    @pytest.mark.asyncio
    async def test_doctor_without_profile(self, doctor_service: DoctorService) -> None:
        newcomer = Actor(actor_id="user-new", role=ActorRole.DOCTOR)

        with pytest.raises(NotFoundError):
            await doctor_service.update_profile(newcomer, AUSTIN)

    @pytest.mark.asyncio
    async def test_admin_cannot_edit(self, doctor_service: DoctorService, admin: Actor) -> None:
        with pytest.raises(ForbiddenError):
            await doctor_service.update_profile(admin, AUSTIN)


class TestUpdateAvailability:
    @pytest.mark.asyncio
    async def test_replaces_template_and_duration(
        self,
        doctor_service: DoctorService,
        doctor_actor: Actor,
        next_monday: dt.date,
    ) -> None:
        window = AvailabilityWindow(day_of_week=1, start_time="14:00", end_time="15:00")

        updated = await doctor_service.update_availability(
            doctor_actor, AvailabilityUpdate(availability=[window], slot_duration=60)
        )
        slots = await doctor_service.available_slots("doc-1", next_monday)

        assert updated.availability == [window]
        assert updated.slot_duration == 60
        assert [s.formatted for s in slots] == ["2:00 PM"]

    @pytest.mark.asyncio
    async def test_duration_only(
        self, doctor_service: DoctorService, doctor_actor: Actor, doctor: Doctor
    ) -> None:
        updated = await doctor_service.update_availability(
            doctor_actor, AvailabilityUpdate(slot_duration=15)
        )

        assert updated.slot_duration == 15
        assert updated.availability == doctor.availability


class TestSetVerified:
    @pytest.mark.asyncio
    async def test_admin_verifies(
        self, doctor_service: DoctorService, store: InMemoryBookingStore, admin: Actor
    ) -> None:
        updated = await doctor_service.set_verified(admin, "doc-1", verified=False)

        assert updated.is_verified is False
        assert store.doctors["doc-1"].is_verified is False

    @pytest.mark.asyncio
    async def test_doctor_cannot_verify(
        self, doctor_service: DoctorService, doctor_actor: Actor
    ) -> None:
        with pytest.raises(ForbiddenError):
            await doctor_service.set_verified(doctor_actor, "doc-1")
