# fellowship/main.py
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from fellowship.api.routes import health, internal, study_groups
from fellowship.core.config import get_settings
from fellowship.core.exceptions import (
    CalendarIntegrationError,
    FellowshipError,
    ValidationError,
)
from fellowship.core.logging import setup_logging
from fellowship.db.session import dispose_engine, init_db_for_startup
from fellowship.services.token_cache import AccessTokenCache

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup: logging, schema bootstrap. Shutdown: release DB connections.
    """
    setup_logging()
    settings = get_settings()
    logger.info("%s starting (env=%s)", settings.APP_NAME, settings.APP_ENV)
    await init_db_for_startup()
    yield
    await dispose_engine()
    logger.info("%s stopped", settings.APP_NAME)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map the application exception hierarchy to JSON error responses.

    Body shape: ``{"error": <code>, "message": <text>, "details": <list|str|null>}``.
    """

    @app.exception_handler(FellowshipError)
    async def handle_fellowship_error(request: Request, exc: FellowshipError) -> JSONResponse:
        details = None
        if isinstance(exc, ValidationError):
            details = exc.details or None
        elif isinstance(exc, CalendarIntegrationError):
            details = exc.provider_message

        if exc.status_code >= 500:
            logger.error(
                "%s %s failed: %s (context=%s)",
                request.method,
                request.url.path,
                exc.message,
                exc.context,
            )
        else:
            logger.warning(
                "%s %s rejected (%s): %s",
                request.method,
                request.url.path,
                exc.error_code,
                exc.message,
            )

        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.error_code,
                "message": exc.message,
                "details": details,
            },
        )


def create_app() -> FastAPI:
    """
    Application factory for the Fellowship Scheduler service.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Backend for study/meeting groups: one-off and recurring meetings mirrored\n"
            "to the creator's Google Calendar (with Meet links), materialised meeting\n"
            "instances for local listing, and group membership."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    # One token cache per process, shared by every calendar client.
    app.state.token_cache = AccessTokenCache()

    register_exception_handlers(app)

    # Routers
    app.include_router(health.router)
    app.include_router(study_groups.router)
    app.include_router(internal.router)

    return app


app = create_app()
