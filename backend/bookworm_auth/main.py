"""FastAPI application entrypoint."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bookworm_auth.api import api_router
from bookworm_auth.api.errors import register_exception_handlers
from bookworm_auth.core.config import Settings, get_settings
from bookworm_auth.db.session import Database
from bookworm_auth.middleware.secure_transport import SecureTransportMiddleware
from bookworm_auth.services.container import build_services
from bookworm_auth.services.geolocation import GeolocationProvider
from bookworm_auth.services.notifications import EmailProvider
from bookworm_auth.services.scheduler import create_scheduler, schedule_purge_job, start_scheduler, stop_scheduler

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    email_provider: EmailProvider | None = None,
    geolocation_provider: GeolocationProvider | None = None,
    enable_scheduler: bool = True,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.basicConfig(level=settings.log_level.upper())
        database = Database(settings.database_url)
        await database.create_all()
        services = build_services(
            settings,
            email_provider=email_provider,
            geolocation_provider=geolocation_provider,
        )
        app.state.database = database
        app.state.services = services

        scheduler = create_scheduler()
        if enable_scheduler:
            schedule_purge_job(scheduler, database, services.accounts, settings.token_cleanup_interval_minutes)
            start_scheduler(scheduler)
        logger.info("%s identity service ready", settings.app_name)

        try:
            yield
        finally:
            stop_scheduler(scheduler)
            await services.notifier.drain()
            await database.dispose()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)

    # Only active when SSL is enabled
    if settings.ssl_enabled:
        app.add_middleware(SecureTransportMiddleware, https_port=settings.https_port)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(api_router)
    return app


app = create_app()
