import datetime as dt
import math
from enum import Enum
from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_FROZEN_CAMEL = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

SlotDuration = Literal[15, 30, 45, 60]

MAX_REASON_LENGTH = 500

# Wall-clock "HH:MM", 00:00 through 23:59.
HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"

T = TypeVar("T")


class AppointmentStatus(str, Enum):
    """Possible states of an appointment."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


class AppointmentType(str, Enum):
    IN_PERSON = "in-person"
    VIDEO = "video"
    PHONE = "phone"


class CancelledBy(str, Enum):
    PATIENT = "patient"
    DOCTOR = "doctor"
    SYSTEM = "system"


class ActorRole(str, Enum):
    PATIENT = "patient"
    DOCTOR = "doctor"
    ADMIN = "admin"


class Specialization(str, Enum):
    GENERAL_PRACTICE = "general-practice"
    CARDIOLOGY = "cardiology"
    DERMATOLOGY = "dermatology"
    NEUROLOGY = "neurology"
    ORTHOPEDICS = "orthopedics"
    PEDIATRICS = "pediatrics"
    PSYCHIATRY = "psychiatry"
    GYNECOLOGY = "gynecology"
    OPHTHALMOLOGY = "ophthalmology"
    ENT = "ent"
    DENTISTRY = "dentistry"
    OTHER = "other"


class Actor(BaseModel):
    """The authenticated caller of a lifecycle operation."""

    model_config = _FROZEN_CAMEL

    actor_id: str
    role: ActorRole


class AvailabilityWindow(BaseModel):
    """One weekday entry of a doctor's recurring weekly schedule.

    ``day_of_week`` counts from Sunday (0) to Saturday (6).  Times are
    wall-clock strings in the clinic's reference frame.  A window whose
    start is not before its end is accepted but produces no slots.
    """

    model_config = _FROZEN_CAMEL

    day_of_week: int = Field(ge=0, le=6)
    start_time: str = Field(pattern=HHMM_PATTERN)
    end_time: str = Field(pattern=HHMM_PATTERN)
    is_available: bool = True


class Qualification(BaseModel):
    model_config = _FROZEN_CAMEL

    degree: str
    institution: str = ""
    year: int | None = None


class ClinicAddress(BaseModel):
    """Where the doctor sees patients.  ``city`` is what directory search matches on."""

    model_config = _FROZEN_CAMEL

    name: str = ""
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""


class Rating(BaseModel):
    model_config = _FROZEN_CAMEL

    average: float = Field(default=0.0, ge=0, le=5)
    count: int = Field(default=0, ge=0)


class Doctor(BaseModel):
    """A doctor's bookable profile."""

    model_config = _FROZEN_CAMEL

    doctor_id: str
    user_id: str
    name: str = ""
    specialization: Specialization = Specialization.GENERAL_PRACTICE
    license_number: str = ""
    bio: str = Field(default="", max_length=1000)
    experience: int = Field(default=0, ge=0)
    languages: list[str] = Field(default_factory=lambda: ["English"])
    consultation_fee: float = Field(ge=0)
    slot_duration: SlotDuration = 30
    qualifications: list[Qualification] = Field(default_factory=list)
    clinic_address: ClinicAddress = Field(default_factory=ClinicAddress)
    accepting_new_patients: bool = True
    is_verified: bool = False
    rating: Rating = Field(default_factory=Rating)
    availability: list[AvailabilityWindow] = Field(default_factory=list)


class Fee(BaseModel):
    """Consultation fee snapshot taken when the appointment is booked."""

    model_config = _FROZEN_CAMEL

    amount: float
    paid: bool = False
    paid_at: dt.datetime | None = None


class Notes(BaseModel):
    model_config = _FROZEN_CAMEL

    patient: str = ""
    doctor: str | None = None


class Reminders(BaseModel):
    model_config = _FROZEN_CAMEL

    email: bool = True
    sms: bool = False


class Appointment(BaseModel):
    """A booked appointment.

    ``date_time`` and ``end_time`` are naive wall-clock instants in the
    clinic's reference frame.  ``end_time`` is fixed at booking time.
    """

    model_config = _FROZEN_CAMEL

    appointment_id: str
    patient_id: str
    doctor_id: str
    date_time: dt.datetime
    end_time: dt.datetime
    status: AppointmentStatus = AppointmentStatus.PENDING
    type: AppointmentType = AppointmentType.IN_PERSON
    reason: str
    symptoms: list[str] = Field(default_factory=list)
    notes: Notes = Field(default_factory=Notes)
    prescription: str | None = None
    fee: Fee
    reminders: Reminders = Field(default_factory=Reminders)
    cancelled_by: CancelledBy | None = None
    cancellation_reason: str | None = None
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status != AppointmentStatus.CANCELLED

    def redacted(self) -> "Appointment":
        """Return a copy without the doctor's private notes and prescription."""
        return self.model_copy(
            update={
                "notes": self.notes.model_copy(update={"doctor": None}),
                "prescription": None,
            }
        )


class AppointmentRequest(BaseModel):
    """A patient's request to book an appointment."""

    model_config = _FROZEN_CAMEL

    doctor_id: str
    date_time: dt.datetime
    type: AppointmentType = AppointmentType.IN_PERSON
    reason: str
    symptoms: list[str] = Field(default_factory=list)
    notes: str = ""


class AppointmentUpdate(BaseModel):
    """Fields a caller asks to change on an appointment.

    Which of them an actor may write depends on the actor's relation to
    the appointment; see ``AppointmentService.update_appointment``.
    """

    model_config = _FROZEN_CAMEL

    status: AppointmentStatus | None = None
    notes: str | None = None
    prescription: str | None = None
    reason: str | None = None

    def provided_fields(self) -> set[str]:
        return {name for name in self.model_fields_set if getattr(self, name) is not None}


class AppointmentQuery(BaseModel):
    model_config = _FROZEN_CAMEL

    status: AppointmentStatus | None = None
    date_from: dt.datetime | None = None
    date_to: dt.datetime | None = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)


class DoctorQuery(BaseModel):
    model_config = _FROZEN_CAMEL

    specialization: Specialization | None = None
    city: str | None = None
    accepting_new_patients: bool | None = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)


class Page(BaseModel, Generic[T]):
    model_config = _FROZEN_CAMEL

    items: list[T]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit)


class Slot(BaseModel):
    """An open start time, with its short display label (``2:00 PM``)."""

    model_config = _FROZEN_CAMEL

    date_time: dt.datetime
    formatted: str


class DoctorProfile(BaseModel):
    """Details a doctor supplies when creating their profile."""

    model_config = _FROZEN_CAMEL

    name: str
    specialization: Specialization
    license_number: str = Field(min_length=1)
    consultation_fee: float = Field(ge=0)
    bio: str = Field(default="", max_length=1000)
    experience: int = Field(default=0, ge=0)
    languages: list[str] = Field(default_factory=lambda: ["English"])
    qualifications: list[Qualification] = Field(default_factory=list)
    clinic_address: ClinicAddress = Field(default_factory=ClinicAddress)


class DoctorProfileUpdate(BaseModel):
    model_config = _FROZEN_CAMEL

    specialization: Specialization | None = None
    bio: str | None = Field(default=None, max_length=1000)
    consultation_fee: float | None = Field(default=None, ge=0)
    experience: int | None = Field(default=None, ge=0)
    languages: list[str] | None = None
    qualifications: list[Qualification] | None = None
    clinic_address: ClinicAddress | None = None
    accepting_new_patients: bool | None = None


class AvailabilityUpdate(BaseModel):
    model_config = _FROZEN_CAMEL

    availability: list[AvailabilityWindow] | None = None
    slot_duration: SlotDuration | None = None
