from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from clinicbook.booking.doctors import DoctorService
from clinicbook.booking.factory import BookingServices
from clinicbook.booking.service import AppointmentService
from clinicbook.config import AppConfig
from clinicbook.domain.models import Actor, ActorRole


def get_services(request: Request) -> BookingServices:
    return request.app.state.services


def get_appointment_service(
    services: Annotated[BookingServices, Depends(get_services)],
) -> AppointmentService:
    return services.appointments


def get_doctor_service(
    services: Annotated[BookingServices, Depends(get_services)],
) -> DoctorService:
    return services.doctors


def get_actor(request: Request) -> Actor:
    """Read the authenticated caller from headers set by the upstream auth layer."""
    config: AppConfig = request.app.state.config
    actor_id = request.headers.get(config.api.actor_id_header, "").strip()
    raw_role = request.headers.get(config.api.actor_role_header, "").strip().lower()
    if not actor_id or not raw_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authorized to access this route",
        )
    try:
        role = ActorRole(raw_role)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Unknown role '{raw_role}'",
        ) from exc
    return Actor(actor_id=actor_id, role=role)


CurrentActor = Annotated[Actor, Depends(get_actor)]
Appointments = Annotated[AppointmentService, Depends(get_appointment_service)]
Doctors = Annotated[DoctorService, Depends(get_doctor_service)]
Services = Annotated[BookingServices, Depends(get_services)]
