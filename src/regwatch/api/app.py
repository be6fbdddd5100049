# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""FastAPI application factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from regwatch import __version__
from regwatch.api.middleware import RequestMiddleware
from regwatch.api.routes import health, jobs, scheduler, schedules
from regwatch.core.exceptions import StorageError

logger = logging.getLogger("regwatch.api.app")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    from regwatch.core.config import get_settings
    from regwatch.core.logging import setup_logging
    from regwatch.scheduler.runtime import build_runtime
    from regwatch.storage.database import close_db, init_db

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    db = await init_db(settings.db_path, auto_migrate=settings.auto_migrate)

    runtime = build_runtime(db, settings)
    app.state.runtime = runtime

    # Start the scheduler unless disabled by the caller or by settings
    if getattr(app.state, "enable_scheduler", True) and settings.scheduler_enabled:
        await runtime.engine.start()

    yield

    await runtime.aclose()
    app.state.runtime = None
    await close_db()


async def _storage_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": f"Storage error: {exc}"})


def create_app(*, enable_scheduler: bool = True) -> FastAPI:
    from regwatch.core.config import get_settings

    app = FastAPI(
        title="regwatch",
        description="Scheduling and orchestration for regulatory research jobs",
        version=__version__,
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    app.state.enable_scheduler = enable_scheduler

    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_settings().cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, prefix="/api/v1", tags=["health"])
    app.include_router(schedules.router, prefix="/api/v1", tags=["schedules"])
    app.include_router(jobs.router, prefix="/api/v1", tags=["jobs"])
    app.include_router(scheduler.router, prefix="/api/v1", tags=["scheduler"])
    app.add_exception_handler(StorageError, _storage_error_handler)
    app.add_middleware(RequestMiddleware)

    return app


def _create_app_from_env() -> FastAPI:
    """Factory wrapper that reads REGWATCH_NO_SCHEDULER env var."""
    import os

    enable_scheduler = os.environ.get("REGWATCH_NO_SCHEDULER", "") != "1"
    return create_app(enable_scheduler=enable_scheduler)
