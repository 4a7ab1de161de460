"""FlowPulse API - FastAPI Application."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from flowpulse.api.routers import checks_router, ping_router, system_router
from flowpulse.config import Settings, get_settings
from flowpulse.heartbeat.ingest import Clock, PingIngestor
from flowpulse.heartbeat.store import CheckStore, get_store
from flowpulse.heartbeat.sweeper import MissedPingSweeper
from flowpulse.notify.dispatcher import NotificationDispatcher, build_dispatcher

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start and stop the background workers."""
    settings: Settings = app.state.settings
    dispatcher: NotificationDispatcher = app.state.dispatcher

    # Startup
    if settings.notification_worker_enabled:
        await dispatcher.start()
    if settings.sweeper_enabled:
        app.state.sweeper = MissedPingSweeper(
            app.state.store,
            dispatcher,
            interval_seconds=settings.sweeper_interval_seconds,
        )
        await app.state.sweeper.start()

    yield

    # Shutdown
    if app.state.sweeper is not None:
        await app.state.sweeper.stop()
        app.state.sweeper = None
    await dispatcher.stop()


def create_app(
    settings: Settings | None = None,
    store: CheckStore | None = None,
    dispatcher: NotificationDispatcher | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    The store and dispatcher are process-scoped and injected into the
    ingestor here; pass fakes to test against them.
    """
    settings = settings or get_settings()
    store = store or get_store(settings.store_path, settings.run_retention_days)
    dispatcher = dispatcher or build_dispatcher(store.get_owner_email, settings)

    app = FastAPI(
        title=settings.title,
        description=settings.description,
        version=settings.version,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.store = store
    app.state.dispatcher = dispatcher
    app.state.ingestor = PingIngestor(store, dispatcher, settings=settings, clock=clock)
    app.state.sweeper = None

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=settings.cors_headers,
    )

    # Include routers
    app.include_router(ping_router, prefix=settings.api_prefix, tags=["Ping"])
    app.include_router(checks_router, prefix=settings.api_prefix, tags=["Checks"])
    app.include_router(system_router, prefix=settings.api_prefix, tags=["System"])

    return app


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "flowpulse.api.main:create_app",
        factory=True,
        host=_settings.host,
        port=_settings.port,
        reload=_settings.debug,
    )
