import datetime as dt
from typing import Any

from loguru import logger
from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    select,
    text,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import StaticPool

from clinicbook.domain.exceptions import SlotConflictError
from clinicbook.domain.models import (
    Appointment,
    AppointmentQuery,
    AppointmentStatus,
    AvailabilityWindow,
    ClinicAddress,
    Doctor,
    DoctorQuery,
    Fee,
    Notes,
    Page,
    Qualification,
    Rating,
    Reminders,
)

ACTIVE_SLOT_INDEX = "uq_appointments_doctor_active_slot"

_ACTIVE_ONLY = text("status != 'cancelled'")


class Base(DeclarativeBase):
    pass


class DoctorRow(Base):
    __tablename__ = "doctors"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), default="")
    specialization: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    license_number: Mapped[str] = mapped_column(String(100), default="")
    bio: Mapped[str] = mapped_column(Text, default="")
    experience: Mapped[int] = mapped_column(Integer, default=0)
    languages: Mapped[list[str]] = mapped_column(JSON, default=list)
    consultation_fee: Mapped[float] = mapped_column(Float, nullable=False)
    slot_duration: Mapped[int] = mapped_column(Integer, default=30)
    qualifications: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    clinic_name: Mapped[str] = mapped_column(String(200), default="")
    clinic_street: Mapped[str] = mapped_column(String(200), default="")
    clinic_city: Mapped[str] = mapped_column(String(120), default="", index=True)
    clinic_state: Mapped[str] = mapped_column(String(60), default="")
    clinic_zip_code: Mapped[str] = mapped_column(String(20), default="")
    accepting_new_patients: Mapped[bool] = mapped_column(Boolean, default=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    rating_average: Mapped[float] = mapped_column(Float, default=0.0, index=True)
    rating_count: Mapped[int] = mapped_column(Integer, default=0)
    availability: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)


class AppointmentRow(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        Index(
            ACTIVE_SLOT_INDEX,
            "doctor_id",
            "date_time",
            unique=True,
            postgresql_where=_ACTIVE_ONLY,
            sqlite_where=_ACTIVE_ONLY,
        ),
        Index("ix_appointments_patient_date", "patient_id", "date_time"),
        Index("ix_appointments_date_status", "date_time", "status"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    patient_id: Mapped[str] = mapped_column(String(64), nullable=False)
    doctor_id: Mapped[str] = mapped_column(ForeignKey("doctors.id"), nullable=False)
    date_time: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[str] = mapped_column(String(500), nullable=False)
    symptoms: Mapped[list[str]] = mapped_column(JSON, default=list)
    patient_notes: Mapped[str] = mapped_column(Text, default="")
    doctor_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    prescription: Mapped[str | None] = mapped_column(Text, nullable=True)
    fee_amount: Mapped[float] = mapped_column(Float, nullable=False)
    fee_paid: Mapped[bool] = mapped_column(Boolean, default=False)
    fee_paid_at: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)
    remind_email: Mapped[bool] = mapped_column(Boolean, default=True)
    remind_sms: Mapped[bool] = mapped_column(Boolean, default=False)
    cancelled_by: Mapped[str | None] = mapped_column(String(20), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)


def _doctor_from_row(row: DoctorRow) -> Doctor:
    return Doctor(
        doctor_id=row.id,
        user_id=row.user_id,
        name=row.name,
        specialization=row.specialization,
        license_number=row.license_number,
        bio=row.bio,
        experience=row.experience,
        languages=list(row.languages or []),
        consultation_fee=row.consultation_fee,
        slot_duration=row.slot_duration,
        qualifications=[Qualification.model_validate(q) for q in row.qualifications or []],
        clinic_address=ClinicAddress(
            name=row.clinic_name,
            street=row.clinic_street,
            city=row.clinic_city,
            state=row.clinic_state,
            zip_code=row.clinic_zip_code,
        ),
        accepting_new_patients=row.accepting_new_patients,
        is_verified=row.is_verified,
        rating=Rating(average=row.rating_average, count=row.rating_count),
        availability=[AvailabilityWindow.model_validate(w) for w in row.availability or []],
    )


def _doctor_values(doctor: Doctor) -> dict[str, Any]:
    return {
        "user_id": doctor.user_id,
        "name": doctor.name,
        "specialization": doctor.specialization.value,
        "license_number": doctor.license_number,
        "bio": doctor.bio,
        "experience": doctor.experience,
        "languages": list(doctor.languages),
        "consultation_fee": doctor.consultation_fee,
        "slot_duration": doctor.slot_duration,
        "qualifications": [q.model_dump() for q in doctor.qualifications],
        "clinic_name": doctor.clinic_address.name,
        "clinic_street": doctor.clinic_address.street,
        "clinic_city": doctor.clinic_address.city,
        "clinic_state": doctor.clinic_address.state,
        "clinic_zip_code": doctor.clinic_address.zip_code,
        "accepting_new_patients": doctor.accepting_new_patients,
        "is_verified": doctor.is_verified,
        "rating_average": doctor.rating.average,
        "rating_count": doctor.rating.count,
        "availability": [w.model_dump() for w in doctor.availability],
    }


def _appointment_from_row(row: AppointmentRow) -> Appointment:
    return Appointment(
        appointment_id=row.id,
        patient_id=row.patient_id,
        doctor_id=row.doctor_id,
        date_time=row.date_time,
        end_time=row.end_time,
        status=row.status,
        type=row.type,
        reason=row.reason,
        symptoms=list(row.symptoms or []),
        notes=Notes(patient=row.patient_notes or "", doctor=row.doctor_notes),
        prescription=row.prescription,
        fee=Fee(amount=row.fee_amount, paid=row.fee_paid, paid_at=row.fee_paid_at),
        reminders=Reminders(email=row.remind_email, sms=row.remind_sms),
        cancelled_by=row.cancelled_by,
        cancellation_reason=row.cancellation_reason,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _appointment_values(appointment: Appointment) -> dict[str, Any]:
    return {
        "patient_id": appointment.patient_id,
        "doctor_id": appointment.doctor_id,
        "date_time": appointment.date_time,
        "end_time": appointment.end_time,
        "status": appointment.status.value,
        "type": appointment.type.value,
        "reason": appointment.reason,
        "symptoms": list(appointment.symptoms),
        "patient_notes": appointment.notes.patient,
        "doctor_notes": appointment.notes.doctor,
        "prescription": appointment.prescription,
        "fee_amount": appointment.fee.amount,
        "fee_paid": appointment.fee.paid,
        "fee_paid_at": appointment.fee.paid_at,
        "remind_email": appointment.reminders.email,
        "remind_sms": appointment.reminders.sms,
        "cancelled_by": appointment.cancelled_by.value if appointment.cancelled_by else None,
        "cancellation_reason": appointment.cancellation_reason,
        "created_at": appointment.created_at,
        "updated_at": appointment.updated_at,
    }


def _is_active_slot_violation(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    # PostgreSQL names the index; SQLite lists the indexed columns.
    return ACTIVE_SLOT_INDEX in message or (
        "UNIQUE" in message and "appointments.doctor_id, appointments.date_time" in message
    )


def create_engine_for_url(url: str, *, echo: bool = False) -> AsyncEngine:
    """Create the async engine; in-memory SQLite shares one connection."""
    if url.startswith("sqlite") and (":memory:" in url or url.endswith("://")):
        return create_async_engine(
            url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(url, echo=echo, pool_pre_ping=True)


class SQLBookingStore:
    """``BookingStoreProtocol`` backed by SQLAlchemy's async ORM.

    Double booking is prevented by a partial unique index over
    ``(doctor_id, date_time)`` restricted to non-cancelled rows; a
    violation surfaces as ``SlotConflictError``.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._sessions = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    @classmethod
    def from_url(cls, url: str, *, echo: bool = False) -> "SQLBookingStore":
        return cls(create_engine_for_url(url, echo=echo))

    async def create_schema(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Booking schema ensured")

    async def drop_schema(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def get_doctor(self, doctor_id: str) -> Doctor | None:
        async with self._sessions() as session:
            row = await session.get(DoctorRow, doctor_id)
            return _doctor_from_row(row) if row else None

    async def find_doctor_by_user(self, user_id: str) -> Doctor | None:
        async with self._sessions() as session:
            row = await session.scalar(select(DoctorRow).where(DoctorRow.user_id == user_id))
            return _doctor_from_row(row) if row else None

    async def search_doctors(self, query: DoctorQuery) -> Page[Doctor]:
        conditions = [DoctorRow.is_verified.is_(True)]
        if query.specialization:
            conditions.append(DoctorRow.specialization == query.specialization.value)
        if query.city:
            conditions.append(DoctorRow.clinic_city.ilike(f"%{query.city}%"))
        if query.accepting_new_patients is not None:
            conditions.append(DoctorRow.accepting_new_patients.is_(query.accepting_new_patients))

        async with self._sessions() as session:
            total = await session.scalar(
                select(func.count()).select_from(DoctorRow).where(*conditions)
            )
            rows = await session.scalars(
                select(DoctorRow)
                .where(*conditions)
                .order_by(DoctorRow.rating_average.desc(), DoctorRow.id)
                .offset((query.page - 1) * query.limit)
                .limit(query.limit)
            )
            return Page(
                items=[_doctor_from_row(r) for r in rows],
                total=total or 0,
                page=query.page,
                limit=query.limit,
            )

    async def save_doctor(self, doctor: Doctor) -> Doctor:
        async with self._sessions() as session, session.begin():
            row = await session.get(DoctorRow, doctor.doctor_id)
            if row is None:
                session.add(DoctorRow(id=doctor.doctor_id, **_doctor_values(doctor)))
            else:
                for key, value in _doctor_values(doctor).items():
                    setattr(row, key, value)
        return doctor

    async def get_appointment(self, appointment_id: str) -> Appointment | None:
        async with self._sessions() as session:
            row = await session.get(AppointmentRow, appointment_id)
            return _appointment_from_row(row) if row else None

    async def find_active_appointment(
        self, doctor_id: str, date_time: dt.datetime, exclude_id: str | None = None
    ) -> Appointment | None:
        stmt = select(AppointmentRow).where(
            AppointmentRow.doctor_id == doctor_id,
            AppointmentRow.date_time == date_time,
            AppointmentRow.status != AppointmentStatus.CANCELLED.value,
        )
        if exclude_id is not None:
            stmt = stmt.where(AppointmentRow.id != exclude_id)

        async with self._sessions() as session:
            row = await session.scalar(stmt.limit(1))
            return _appointment_from_row(row) if row else None

    async def active_start_times(
        self, doctor_id: str, start: dt.datetime, end: dt.datetime
    ) -> set[dt.datetime]:
        async with self._sessions() as session:
            result = await session.scalars(
                select(AppointmentRow.date_time).where(
                    AppointmentRow.doctor_id == doctor_id,
                    AppointmentRow.date_time >= start,
                    AppointmentRow.date_time < end,
                    AppointmentRow.status != AppointmentStatus.CANCELLED.value,
                )
            )
            return set(result)

    async def insert_appointment(self, appointment: Appointment) -> Appointment:
        try:
            async with self._sessions() as session, session.begin():
                session.add(
                    AppointmentRow(
                        id=appointment.appointment_id, **_appointment_values(appointment)
                    )
                )
        except IntegrityError as exc:
            if _is_active_slot_violation(exc):
                raise SlotConflictError(appointment.doctor_id, appointment.date_time) from exc
            raise
        return appointment

    async def update_appointment(self, appointment: Appointment) -> Appointment:
        try:
            async with self._sessions() as session, session.begin():
                row = await session.get(AppointmentRow, appointment.appointment_id)
                if row is None:
                    session.add(
                        AppointmentRow(
                            id=appointment.appointment_id, **_appointment_values(appointment)
                        )
                    )
                else:
                    for key, value in _appointment_values(appointment).items():
                        setattr(row, key, value)
        except IntegrityError as exc:
            if _is_active_slot_violation(exc):
                raise SlotConflictError(appointment.doctor_id, appointment.date_time) from exc
            raise
        return appointment

    async def query_appointments(
        self,
        query: AppointmentQuery,
        *,
        patient_id: str | None = None,
        doctor_id: str | None = None,
    ) -> Page[Appointment]:
        conditions = []
        if patient_id is not None:
            conditions.append(AppointmentRow.patient_id == patient_id)
        if doctor_id is not None:
            conditions.append(AppointmentRow.doctor_id == doctor_id)
        if query.status:
            conditions.append(AppointmentRow.status == query.status.value)
        if query.date_from:
            conditions.append(AppointmentRow.date_time >= query.date_from)
        if query.date_to:
            conditions.append(AppointmentRow.date_time <= query.date_to)

        async with self._sessions() as session:
            total = await session.scalar(
                select(func.count()).select_from(AppointmentRow).where(*conditions)
            )
            rows = await session.scalars(
                select(AppointmentRow)
                .where(*conditions)
                .order_by(AppointmentRow.date_time.desc())
                .offset((query.page - 1) * query.limit)
                .limit(query.limit)
            )
            return Page(
                items=[_appointment_from_row(r) for r in rows],
                total=total or 0,
                page=query.page,
                limit=query.limit,
            )

    async def health_check(self) -> bool:
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as exc:
            logger.warning("Booking store health check failed: {}", exc)
            return False

    async def close(self) -> None:
        await self._engine.dispose()
        logger.info("Booking store connection pool closed")
