from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cryptodesk.api.routes import router
from cryptodesk.config.settings import settings
from cryptodesk.ingestion.scheduler import IngestionScheduler
from cryptodesk.ingestion.service import build_ingestion_service
from cryptodesk.utils.logger import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    service = build_ingestion_service()
    app.state.ingestion_service = service
    scheduler = IngestionScheduler(
        service,
        interval_seconds=settings.ingestion.schedule_interval_seconds,
        run_on_startup=settings.ingestion.run_on_startup,
    )
    app.state.scheduler = scheduler
    if settings.ingestion.scheduler_enabled:
        scheduler.start()
    try:
        yield
    finally:
        await scheduler.stop()


async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Server error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app() -> FastAPI:
    setup_logging(settings.log_level)
    app = FastAPI(title="cryptodesk", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_methods=["GET", "POST"],
        allow_headers=["x-api-key", "content-type"],
    )
    app.add_exception_handler(Exception, _unhandled_error)
    app.include_router(router)
    return app


app = create_app()
