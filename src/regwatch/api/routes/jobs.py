# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Manual research dispatch and job history endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from regwatch.api.auth import require_api_key
from regwatch.api.deps import get_runtime
from regwatch.core.constants import JobStatus
from regwatch.core.exceptions import DispatchError, DuplicateJobError, ValidationError
from regwatch.models.requests import ResearchRequest
from regwatch.scheduler.dispatcher import start_research
from regwatch.scheduler.jobs import ResearchJob
from regwatch.scheduler.runtime import SchedulerRuntime

router = APIRouter()


class StartResearchResponse(BaseModel):
    job_ids: list[str]
    message: str


class JobStatsResponse(BaseModel):
    artifacts: int
    programs: int


class JobResponse(BaseModel):
    job_id: str
    status: str
    states: list[str]
    data_types: list[str]
    depth: str
    started_at: str
    finished_at: str | None
    stats: JobStatsResponse | None
    error_text: str | None
    logs: list[str]


def _job_to_response(job: ResearchJob) -> JobResponse:
    return JobResponse(**job.to_dict())


@router.post("/research/jobs", response_model=StartResearchResponse, status_code=201)
async def start_research_jobs(
    body: ResearchRequest,
    runtime: SchedulerRuntime = Depends(get_runtime),
    _api_key: str = Depends(require_api_key),
) -> StartResearchResponse:
    """Start research now, unless equivalent work is already queued or running."""
    try:
        job_ids = await start_research(runtime.dispatcher, runtime.guard, body)
    except DuplicateJobError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except DispatchError as exc:
        raise HTTPException(status_code=502, detail=f"Dispatch failed: {exc}") from exc

    return StartResearchResponse(
        job_ids=job_ids,
        message=f"Started {len(job_ids)} research job(s)",
    )


@router.get("/research/jobs", response_model=list[JobResponse])
async def list_jobs(
    status: JobStatus | None = Query(default=None),
    state: str | None = Query(default=None, min_length=2, max_length=2),
    limit: int = Query(default=100, ge=1, le=1000),
    runtime: SchedulerRuntime = Depends(get_runtime),
    _api_key: str = Depends(require_api_key),
) -> list[JobResponse]:
    """List recent research jobs, newest first."""
    jobs = await runtime.job_store.list_jobs(status=status, state=state, limit=limit)
    return [_job_to_response(j) for j in jobs]


@router.get("/research/jobs/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: str,
    runtime: SchedulerRuntime = Depends(get_runtime),
    _api_key: str = Depends(require_api_key),
) -> JobResponse:
    """Get one job with its log lines."""
    job = await runtime.job_store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    return _job_to_response(job)
