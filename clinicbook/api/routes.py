import datetime as dt
from typing import Annotated, Any, Literal

from fastapi import APIRouter, Body, Query, status
from pydantic import BaseModel

from clinicbook.api.dependencies import Appointments, CurrentActor, Doctors, Services
from clinicbook.domain.models import (
    AppointmentQuery,
    AppointmentRequest,
    AppointmentStatus,
    AppointmentUpdate,
    AvailabilityUpdate,
    DoctorProfile,
    DoctorProfileUpdate,
    DoctorQuery,
    Specialization,
)

health_router = APIRouter(tags=["health"])
doctors_router = APIRouter(prefix="/doctors", tags=["doctors"])
appointments_router = APIRouter(prefix="/appointments", tags=["appointments"])


class CancellationBody(BaseModel):
    reason: str | None = None


def _dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


def _ok(data: Any, **extra: Any) -> dict[str, Any]:
    return {"success": True, **extra, "data": data}


@health_router.get("/health")
async def health(services: Services) -> dict[str, Any]:
    healthy = await services.store.health_check()
    return {"success": healthy, "status": "ok" if healthy else "degraded"}


@doctors_router.get("")
async def search_doctors(
    doctors: Doctors,
    specialization: Specialization | None = None,
    city: str | None = None,
    accepting_new_patients: Annotated[bool | None, Query(alias="acceptingNewPatients")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> dict[str, Any]:
    result = await doctors.search_doctors(
        DoctorQuery(
            specialization=specialization,
            city=city,
            accepting_new_patients=accepting_new_patients,
            page=page,
            limit=limit,
        )
    )
    return _ok(
        [_dump(d) for d in result.items],
        count=len(result.items),
        total=result.total,
        pages=result.pages,
    )


# Static paths are registered before "/{doctor_id}" so they are not captured by it.
@doctors_router.post("/profile", status_code=status.HTTP_201_CREATED)
async def create_profile(
    doctors: Doctors, actor: CurrentActor, profile: DoctorProfile
) -> dict[str, Any]:
    return _ok(_dump(await doctors.create_profile(actor, profile)))


@doctors_router.put("/profile")
async def update_profile(
    doctors: Doctors, actor: CurrentActor, fields: DoctorProfileUpdate
) -> dict[str, Any]:
    return _ok(_dump(await doctors.update_profile(actor, fields)))


@doctors_router.put("/availability")
async def update_availability(
    doctors: Doctors, actor: CurrentActor, fields: AvailabilityUpdate
) -> dict[str, Any]:
    return _ok(_dump(await doctors.update_availability(actor, fields)))


@doctors_router.get("/{doctor_id}")
async def get_doctor(doctors: Doctors, doctor_id: str) -> dict[str, Any]:
    return _ok(_dump(await doctors.get_doctor(doctor_id)))


@doctors_router.get("/{doctor_id}/slots")
async def get_slots(doctors: Doctors, doctor_id: str, date: dt.date) -> dict[str, Any]:
    slots = await doctors.available_slots(doctor_id, date)
    return _ok([_dump(s) for s in slots])


@doctors_router.put("/{doctor_id}/verify")
async def verify_doctor(doctors: Doctors, actor: CurrentActor, doctor_id: str) -> dict[str, Any]:
    return _ok(_dump(await doctors.set_verified(actor, doctor_id)))


@appointments_router.post("", status_code=status.HTTP_201_CREATED)
async def create_appointment(
    appointments: Appointments, actor: CurrentActor, request: AppointmentRequest
) -> dict[str, Any]:
    appointment = await appointments.create_appointment(actor, request)
    return _ok(_dump(appointment))


@appointments_router.get("")
async def list_appointments(
    appointments: Appointments,
    actor: CurrentActor,
    status_: Annotated[AppointmentStatus | None, Query(alias="status")] = None,
    date_from: Annotated[dt.datetime | None, Query(alias="from")] = None,
    date_to: Annotated[dt.datetime | None, Query(alias="to")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> dict[str, Any]:
    result = await appointments.list_appointments(
        actor,
        AppointmentQuery(
            status=status_, date_from=date_from, date_to=date_to, page=page, limit=limit
        ),
    )
    return _ok(
        [_dump(a) for a in result.items],
        count=len(result.items),
        total=result.total,
        pages=result.pages,
    )


@appointments_router.get("/{appointment_id}")
async def get_appointment(
    appointments: Appointments,
    actor: CurrentActor,
    appointment_id: str,
    include_private: Annotated[bool, Query(alias="includePrivate")] = False,
    expand: Literal["doctor"] | None = None,
) -> dict[str, Any]:
    appointment = await appointments.get_appointment(
        appointment_id, actor, include_private=include_private
    )
    data = _dump(appointment)
    if expand == "doctor":
        doctors = await appointments.doctors_for([appointment])
        doctor = doctors.get(appointment.doctor_id)
        data["doctor"] = _dump(doctor) if doctor else None
    return _ok(data)


@appointments_router.put("/{appointment_id}")
async def update_appointment(
    appointments: Appointments,
    actor: CurrentActor,
    appointment_id: str,
    fields: AppointmentUpdate,
) -> dict[str, Any]:
    appointment = await appointments.update_appointment(appointment_id, actor, fields)
    return _ok(_dump(appointment))


@appointments_router.delete("/{appointment_id}")
async def cancel_appointment(
    appointments: Appointments,
    actor: CurrentActor,
    appointment_id: str,
    body: Annotated[CancellationBody | None, Body()] = None,
) -> dict[str, Any]:
    await appointments.cancel_appointment(appointment_id, actor, body.reason if body else None)
    return _ok({})
