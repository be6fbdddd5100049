# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Liveness and readiness probes."""

from __future__ import annotations

import logging

import aiosqlite
from fastapi import APIRouter, Request
from pydantic import BaseModel

from regwatch import __version__
from regwatch.core.exceptions import StorageError
from regwatch.storage.database import get_db
from regwatch.storage.migrations import get_current_version, get_pending_migrations

logger = logging.getLogger("regwatch.api.routes.health")

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str


class ReadyResponse(BaseModel):
    status: str
    database: str
    schema_version: int | None = None
    scheduler: str


def _scheduler_state(request: Request) -> str:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        return "not_started"
    return "running" if runtime.engine.running else "stopped"


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="ok", service="regwatch", version=__version__)


@router.get("/ready", response_model=ReadyResponse)
async def ready(request: Request) -> ReadyResponse:
    """Ready once the database answers and no schema migrations are pending.

    The scheduler state is reported but does not affect readiness, since
    API-only deployments run with the loop disabled.
    """
    scheduler = _scheduler_state(request)
    try:
        db = await get_db()
        version = await get_current_version(db)
        pending = await get_pending_migrations(db)
    except (StorageError, aiosqlite.Error) as exc:
        logger.warning("Readiness check failed: %s", exc)
        return ReadyResponse(status="not_ready", database=str(exc), scheduler=scheduler)

    if pending:
        return ReadyResponse(
            status="not_ready",
            database="migrations_pending",
            schema_version=version,
            scheduler=scheduler,
        )
    return ReadyResponse(
        status="ready", database="connected", schema_version=version, scheduler=scheduler
    )
