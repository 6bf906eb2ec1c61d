from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from clinicbook.api.errors import register_exception_handlers
from clinicbook.api.routes import appointments_router, doctors_router, health_router
from clinicbook.booking.factory import BookingServices, build_booking_services
from clinicbook.config import AppConfig


def create_app(config: AppConfig | None = None, services: BookingServices | None = None) -> FastAPI:
    """Build the HTTP application.

    Pass ``services`` to serve an already-wired store (tests, embedding);
    otherwise the store is built from ``config`` at startup and closed at
    shutdown.
    """
    config = config or AppConfig()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if services is not None:
            yield
            return
        app.state.services = await build_booking_services(config)
        logger.info("Booking API ready")
        try:
            yield
        finally:
            await app.state.services.close()

    app = FastAPI(title="clinicbook", lifespan=lifespan)
    app.state.config = config
    if services is not None:
        app.state.services = services

    register_exception_handlers(app)
    app.include_router(health_router)
    app.include_router(doctors_router)
    app.include_router(appointments_router)
    return app
