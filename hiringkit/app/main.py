"""FastAPI application."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from hiringkit.app.api.routes.admin import router as admin_router
from hiringkit.app.api.routes.downloads import router as downloads_router
from hiringkit.app.api.routes.health import router as health_router
from hiringkit.app.api.routes.jobs import router as jobs_router
from hiringkit.app.api.routes.kits import router as kits_router
from hiringkit.app.api.routes.metrics import router as metrics_router
from hiringkit.app.api.routes.payments import router as payments_router
from hiringkit.app.config import get_settings
from hiringkit.app.db.engine import dispose_async_engine, get_async_engine
from hiringkit.app.db.models import Base
from hiringkit.app.errors import HiringKitError
from hiringkit.app.export.jobs import background_jobs
from hiringkit.app.utils.logging import StructuredEventLogger, configure_logging

VERSION = "0.1.0"

logger = logging.getLogger(__name__)
events = StructuredEventLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    configure_logging(settings.log_level)

    if settings.auto_create_schema:
        async with get_async_engine().begin() as connection:
            await connection.run_sync(Base.metadata.create_all)
        logger.info("Database schema created")

    yield

    await background_jobs.drain()
    await dispose_async_engine()


app = FastAPI(title="Hiring Kit API", version=VERSION, lifespan=lifespan)


@app.exception_handler(HiringKitError)
async def hiringkit_error_handler(request: Request, exc: HiringKitError) -> JSONResponse:
    """Render domain errors as ``{"detail", "code"}`` with the error's status."""
    if exc.status_code >= 500:
        events.failure(f"{request.method} {request.url.path}", exc, code=exc.code)
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


# Register routes
app.include_router(health_router, tags=["health"])
app.include_router(metrics_router, tags=["metrics"])
app.include_router(kits_router)
app.include_router(jobs_router)
app.include_router(payments_router)
app.include_router(admin_router)
app.include_router(downloads_router)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "Hiring Kit API", "version": VERSION}
