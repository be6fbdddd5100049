# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Research schedule API endpoints."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from regwatch.api.auth import require_api_key
from regwatch.api.deps import get_runtime
from regwatch.core.config import get_settings
from regwatch.core.exceptions import ParseError
from regwatch.models.requests import ScheduleCreate, ScheduleUpdate
from regwatch.scheduler.engine import Outcome
from regwatch.scheduler.jobs import Schedule
from regwatch.scheduler.projector import upcoming
from regwatch.scheduler.runtime import SchedulerRuntime
from regwatch.scheduler.store import utc

router = APIRouter()


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class ScheduleResponse(BaseModel):
    schedule_id: str
    name: str
    description: str
    cron_expression: str
    states: list[str]
    data_types: list[str]
    depth: str
    is_active: bool
    last_run_at: str | None
    next_run_at: str
    created_at: str
    updated_at: str


class UpcomingResponse(BaseModel):
    schedule: ScheduleResponse
    next_fire_time: str
    time_until_seconds: int


class ScheduleRunResponse(BaseModel):
    schedule_id: str
    outcome: str
    job_ids: list[str]
    next_run_at: str | None


def _schedule_to_response(schedule: Schedule) -> ScheduleResponse:
    return ScheduleResponse(**schedule.to_dict())


def _not_found(schedule_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"Schedule {schedule_id} not found")


# ---------------------------------------------------------------------------
# Collection endpoints (declared before /{schedule_id})
# ---------------------------------------------------------------------------


@router.post("/research/schedules", response_model=ScheduleResponse, status_code=201)
async def create_schedule(
    body: ScheduleCreate,
    runtime: SchedulerRuntime = Depends(get_runtime),
    _api_key: str = Depends(require_api_key),
) -> ScheduleResponse:
    """Create a new research schedule."""
    try:
        schedule = await runtime.schedule_store.create(body)
    except ParseError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid cron expression: {exc}") from exc
    return _schedule_to_response(schedule)


@router.get("/research/schedules", response_model=list[ScheduleResponse])
async def list_schedules(
    runtime: SchedulerRuntime = Depends(get_runtime),
    _api_key: str = Depends(require_api_key),
) -> list[ScheduleResponse]:
    """List all schedules, newest first."""
    schedules = await runtime.schedule_store.list_all()
    return [_schedule_to_response(s) for s in schedules]


@router.get("/research/schedules/active", response_model=list[ScheduleResponse])
async def list_active_schedules(
    runtime: SchedulerRuntime = Depends(get_runtime),
    _api_key: str = Depends(require_api_key),
) -> list[ScheduleResponse]:
    """List active schedules, soonest next run first."""
    schedules = await runtime.schedule_store.list_active()
    return [_schedule_to_response(s) for s in schedules]


@router.get("/research/schedules/due", response_model=list[ScheduleResponse])
async def list_due_schedules(
    at: datetime | None = Query(default=None, description="Instant to evaluate (default: now)"),
    runtime: SchedulerRuntime = Depends(get_runtime),
    _api_key: str = Depends(require_api_key),
) -> list[ScheduleResponse]:
    """List active schedules whose next run is at or before *at*."""
    schedules = await runtime.schedule_store.list_due(utc(at))
    return [_schedule_to_response(s) for s in schedules]


@router.get("/research/schedules/upcoming", response_model=list[UpcomingResponse])
async def list_upcoming(
    hours: float | None = Query(default=None, gt=0, description="Look-ahead window in hours"),
    runtime: SchedulerRuntime = Depends(get_runtime),
    _api_key: str = Depends(require_api_key),
) -> list[UpcomingResponse]:
    """Active schedules firing within the next *hours* hours."""
    horizon = hours if hours is not None else get_settings().upcoming_default_hours
    executions = await upcoming(runtime.schedule_store, horizon)
    return [UpcomingResponse(**e.to_dict()) for e in executions]


# ---------------------------------------------------------------------------
# Item endpoints
# ---------------------------------------------------------------------------


@router.get("/research/schedules/{schedule_id}", response_model=ScheduleResponse)
async def get_schedule(
    schedule_id: str,
    runtime: SchedulerRuntime = Depends(get_runtime),
    _api_key: str = Depends(require_api_key),
) -> ScheduleResponse:
    """Get a single schedule."""
    schedule = await runtime.schedule_store.get(schedule_id)
    if schedule is None:
        raise _not_found(schedule_id)
    return _schedule_to_response(schedule)


@router.put("/research/schedules/{schedule_id}", response_model=ScheduleResponse)
async def update_schedule(
    schedule_id: str,
    body: ScheduleUpdate,
    runtime: SchedulerRuntime = Depends(get_runtime),
    _api_key: str = Depends(require_api_key),
) -> ScheduleResponse:
    """Partially update a schedule; a new cron expression recomputes the next run."""
    try:
        schedule = await runtime.schedule_store.update(schedule_id, body)
    except ParseError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid cron expression: {exc}") from exc
    if schedule is None:
        raise _not_found(schedule_id)
    return _schedule_to_response(schedule)


@router.delete("/research/schedules/{schedule_id}", status_code=204)
async def delete_schedule(
    schedule_id: str,
    runtime: SchedulerRuntime = Depends(get_runtime),
    _api_key: str = Depends(require_api_key),
) -> None:
    """Delete a schedule. Jobs it already started are not affected."""
    deleted = await runtime.schedule_store.delete(schedule_id)
    if not deleted:
        raise _not_found(schedule_id)


@router.post("/research/schedules/{schedule_id}/run", response_model=ScheduleRunResponse)
async def run_schedule(
    schedule_id: str,
    runtime: SchedulerRuntime = Depends(get_runtime),
    _api_key: str = Depends(require_api_key),
) -> ScheduleRunResponse:
    """Dispatch a schedule immediately, subject to the duplicate check."""
    schedule = await runtime.schedule_store.get(schedule_id)
    if schedule is None:
        raise _not_found(schedule_id)

    result = await runtime.engine.run_now(schedule)
    if result.outcome == Outcome.SKIPPED:
        raise HTTPException(status_code=409, detail="Equivalent research is already active")
    if result.outcome == Outcome.INVALID:
        raise HTTPException(status_code=400, detail=f"Invalid cron expression: {result.error}")
    if result.outcome == Outcome.FAILED:
        raise HTTPException(status_code=502, detail=f"Dispatch failed: {result.error}")

    return ScheduleRunResponse(
        schedule_id=result.schedule_id,
        outcome=str(result.outcome),
        job_ids=result.job_ids,
        next_run_at=result.next_run_at.isoformat() if result.next_run_at else None,
    )
