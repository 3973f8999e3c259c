"""Main FastAPI application for the email tracking aggregator."""

import time
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

from . import __version__
from .api import sync, tracking
from .api.middleware import ProblemDetailsMiddleware, register_problem_handlers
from .config import TrackerConfig, get_config
from .domain.enrichment import GeoLocator, NullGeoLocator
from .repositories.dependencies import build_session_store
from .repositories.interfaces import SessionStore
from .services.notifications import LoggingNotificationSink, NotificationTrigger
from .services.recorder import EventRecorder
from .utils.logging_config import get_logger

logger = get_logger("main")


def create_app(
    config: Optional[TrackerConfig] = None,
    session_store: Optional[SessionStore] = None,
    geo_locator: Optional[GeoLocator] = None,
    notifier: Optional[NotificationTrigger] = None,
) -> FastAPI:
    """Build the aggregator app with its store and services on ``app.state``."""
    config = config or get_config()

    app = FastAPI(
        title=config.app.app_name,
        description=config.app.description,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(ProblemDetailsMiddleware)
    register_problem_handlers(app)

    # Pixels and links are fetched by arbitrary mail clients
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "Origin"],
    )

    store = session_store or build_session_store(config)
    notifier = notifier or NotificationTrigger(sinks=[LoggingNotificationSink()])

    app.state.config = config
    app.state.session_store = store
    app.state.geo_locator = geo_locator or NullGeoLocator()
    app.state.notifier = notifier
    app.state.event_recorder = EventRecorder(store, notifier=notifier)

    app.include_router(tracking.router)
    app.include_router(sync.router)

    @app.on_event("startup")
    async def startup_event():
        logger.info(
            f"{config.app.app_name} {__version__} started with "
            f"{type(app.state.session_store).__name__}"
        )

    @app.on_event("shutdown")
    async def shutdown_event():
        await app.state.session_store.close()
        logger.info("Session store closed")

    @app.get("/", include_in_schema=False)
    async def root():
        return RedirectResponse(url="/docs")

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "email-tracker", "version": __version__}

    @app.get("/ready")
    async def readiness_check():
        """Readiness check endpoint that validates store connectivity."""
        start_time = time.time()
        checks = {"store": await app.state.session_store.ping()}
        errors = []
        if not checks["store"]:
            errors.append("Store check failed")

        all_ready = all(checks.values())
        response = {
            "status": "ready" if all_ready else "not_ready",
            "service": "email-tracker",
            "version": __version__,
            "checks": checks,
            "response_time_ms": round((time.time() - start_time) * 1000, 2),
        }
        if errors:
            response["errors"] = errors

        return JSONResponse(content=response, status_code=200 if all_ready else 503)

    return app


def run() -> None:
    """Run the aggregator with uvicorn."""
    import uvicorn

    from .utils.logging_config import initialize_logging

    config = get_config()
    initialize_logging(log_dir=config.app.log_dir, debug=config.server.debug)

    uvicorn.run(
        "email_tracker.main:create_app",
        factory=True,
        host=config.server.host,
        port=config.server.port,
        reload=config.server.auto_reload,
        workers=config.server.workers,
        log_level=config.app.log_level.lower(),
    )


if __name__ == "__main__":
    run()
