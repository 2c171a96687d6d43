"""FastAPI application factory.

Creates the FastAPI app with lifespan management, exception handlers,
and OpenAPI metadata.
"""

import functools
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from ballot_api import __version__
from ballot_api.core.background import PeriodicTask
from ballot_api.core.config import get_settings
from ballot_api.core.database import STORE_UNAVAILABLE_ERRORS, dispose_engine, init_engine
from ballot_api.core.errors import ErrorCategory, ServiceError
from ballot_api.core.logging import setup_logging

ERROR_STATUS_CODES: dict[ErrorCategory, int] = {
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.CONFLICT: 409,
    ErrorCategory.STATE: 403,
    ErrorCategory.RATE_LIMITED: 429,
    ErrorCategory.INFRASTRUCTURE: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifecycle: init engine and code sweep on startup, stop both on shutdown."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_dir)
    init_engine(settings.database_url, echo=False, schema=settings.database_schema)

    sweep_task = None
    if settings.otp_cleanup_enabled:
        from ballot_api.services.otp_service import run_code_sweep

        sweep_task = PeriodicTask(
            "otp-sweep",
            functools.partial(run_code_sweep, settings),
            settings.otp_cleanup_interval,
        )
        sweep_task.start()

    yield

    if sweep_task is not None:
        await sweep_task.stop()

    await dispose_engine()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Ballot API",
        description="Online voting with one-time-code verification and one ballot per voter",
        version=__version__,
        lifespan=lifespan,
    )

    # Register exception handlers
    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
        return JSONResponse(
            status_code=ERROR_STATUS_CODES[exc.category],
            content={"detail": exc.message, "code": exc.code, "category": exc.category.value},
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"detail": str(exc)},
        )

    async def store_unavailable_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Database unavailable on {} {}: {}", request.method, request.url.path, exc.__class__.__name__)
        return JSONResponse(
            status_code=503,
            content={"detail": "Service temporarily unavailable", "code": "store_unavailable"},
        )

    for error_class in STORE_UNAVAILABLE_ERRORS:
        app.add_exception_handler(error_class, store_unavailable_handler)

    # Register middleware and routers
    from ballot_api.api.router import create_router, setup_middleware

    setup_middleware(app, settings)
    app.include_router(create_router(settings))

    return app
