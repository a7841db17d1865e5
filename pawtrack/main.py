"""FastAPI application: station ingestion, dashboard queries and live push."""
from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.middleware.sessions import SessionMiddleware

from pawtrack.config import get_settings
from pawtrack.http_utils import install_error_handlers
from pawtrack.observability import configure_observability
from pawtrack.routers import dashboard as dashboard_router
from pawtrack.routers import realtime as realtime_router
from pawtrack.routers import root as root_router
from pawtrack.routers import session as session_router
from pawtrack.routers import stations as stations_router
from pawtrack.routers import status as status_router
from pawtrack.services.broadcaster import RealtimeBroadcaster
from pawtrack.services.ingestion import IngestionService
from pawtrack.services.telemetry_store import TelemetryStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    store = TelemetryStore(
        history_capacity=settings.history_capacity,
        allow_anonymous_beacons=settings.allow_anonymous_beacons,
    )
    hub = RealtimeBroadcaster(send_timeout_seconds=settings.ws_send_timeout_seconds)
    app.state.store = store
    app.state.broadcaster = hub
    ingestion = IngestionService(store, hub, settings)
    app.state.ingestion = ingestion
    app.state.started_at = time.monotonic()
    if settings.uses_default_credentials:
        logger.warning("Dashboard login uses the default password for %s; change it in production", settings.admin_username)
    logger.info("Pawtrack server %s started", settings.service_version)

    try:
        yield
    finally:
        await ingestion.drain()
        await hub.close_all()
        store.clear()
        logger.info("Pawtrack server stopped")


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Pawtrack Server", version=settings.service_version, lifespan=lifespan)
    configure_observability(app, settings)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret.get_secret_value(),
        max_age=settings.session_max_age_seconds,
        https_only=settings.session_https_only,
    )
    install_error_handlers(app)

    app.include_router(root_router.router)
    app.include_router(status_router.router)
    app.include_router(session_router.router)
    app.include_router(stations_router.router)
    app.include_router(dashboard_router.router)
    app.include_router(realtime_router.router)
    return app


app = create_app()


if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    uvicorn.run("pawtrack.main:app", host="0.0.0.0", port=3000)
