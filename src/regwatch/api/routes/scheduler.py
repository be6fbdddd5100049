# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Scheduler engine status and manual tick."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from regwatch.api.auth import require_api_key
from regwatch.api.deps import get_runtime
from regwatch.scheduler.runtime import SchedulerRuntime

router = APIRouter()


class TickResultResponse(BaseModel):
    schedule_id: str
    name: str
    outcome: str
    job_ids: list[str]
    error: str | None
    next_run_at: str | None


class TickResponse(BaseModel):
    tick_at: str
    due: int
    dispatched: int
    skipped: int
    failed: int
    invalid: int
    results: list[TickResultResponse]


class SchedulerStatusResponse(BaseModel):
    running: bool
    check_interval: float
    active_schedules: int
    active_jobs: int
    last_tick: TickResponse | None


@router.get("/scheduler/status", response_model=SchedulerStatusResponse)
async def scheduler_status(
    runtime: SchedulerRuntime = Depends(get_runtime),
    _api_key: str = Depends(require_api_key),
) -> SchedulerStatusResponse:
    engine = runtime.engine
    last_tick = engine.last_tick
    return SchedulerStatusResponse(
        running=engine.running,
        check_interval=engine.check_interval,
        active_schedules=len(await runtime.schedule_store.list_active()),
        active_jobs=len(await runtime.job_store.list_active_jobs()),
        last_tick=TickResponse(**last_tick.to_dict()) if last_tick else None,
    )


@router.post("/scheduler/tick", response_model=TickResponse)
async def scheduler_tick(
    runtime: SchedulerRuntime = Depends(get_runtime),
    _api_key: str = Depends(require_api_key),
) -> TickResponse:
    """Run one tick now; it waits for any tick already in progress."""
    report = await runtime.engine.tick()
    return TickResponse(**report.to_dict())
