"""FastAPI application shell: lifespan wiring, error translation and health."""

from contextlib import asynccontextmanager
from typing import Optional

import sentry_sdk
import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from placement.config import Settings, settings as default_settings
from placement.core.container import build_services
from placement.core.errors import (
    AdmissionDenied,
    ConflictError,
    GuardViolation,
    LifecycleError,
    NotFoundError,
    ValidationFailed,
)
from placement.core.logging import setup_logging
from placement.core.scheduler import build_scheduler, start_scheduler, stop_scheduler
from placement.db.session import Database

logger = structlog.get_logger(__name__)

# Most specific first; the first match wins
ERROR_STATUS_CODES = (
    (ValidationFailed, 422),
    (AdmissionDenied, 403),
    (GuardViolation, 403),
    (ConflictError, 409),
    (NotFoundError, 404),
)


def status_code_for(exc: LifecycleError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 400


def init_sentry(settings: Settings) -> None:
    """Initialize Sentry only when a DSN is properly configured."""
    if not (settings.SENTRY_DSN and settings.SENTRY_DSN.startswith("https://")):
        logger.info("sentry_disabled")
        return
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        integrations=[
            FastApiIntegration(),
            LoggingIntegration(level=None, event_level="ERROR"),
        ],
        release=settings.APP_VERSION,
        attach_stacktrace=True,
        send_default_pii=False,
    )


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(LifecycleError)
    async def lifecycle_error_handler(request: Request, exc: LifecycleError):
        status_code = status_code_for(exc)
        logger.info("lifecycle_error", path=request.url.path, code=exc.code, status_code=status_code)
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error("unhandled_exception", path=request.url.path, error=str(exc), exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error",
                "message": str(exc) if settings.DEBUG else "An error occurred",
            },
        )


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db = database or Database(settings=settings)
        await db.create_all()
        services = build_services(db, settings)
        await services.start()
        app.state.services = services

        scheduler = None
        if settings.SUBSCRIPTION_SWEEP_ENABLED:
            scheduler = build_scheduler(settings, services.subscriptions)
            start_scheduler(scheduler)

        logger.info("application_started", environment=settings.ENVIRONMENT)
        yield

        if scheduler is not None:
            stop_scheduler(scheduler)
        await services.dispose()
        logger.info("application_stopped")

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Job posting, application and entitlement lifecycle engine",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure properly in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app, settings)

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        services = getattr(request.app.state, "services", None)
        return {
            "status": "healthy",
            "environment": settings.ENVIRONMENT,
            "cache": services.cache.get_stats() if services else {"enabled": False},
            "effects": {
                "running": services.dispatcher.running if services else False,
                "dropped": services.dispatcher.dropped if services else 0,
            },
        }

    return app


def get_application() -> FastAPI:
    """Entry point for ``uvicorn placement.main:get_application --factory``."""
    setup_logging()
    init_sentry(default_settings)
    return create_app()
