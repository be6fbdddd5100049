# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Work executors: where dispatched research actually runs.

``LocalWorkExecutor`` records jobs in the local job store and runs the
research callable in background asyncio tasks.  ``HttpWorkExecutor``
hands work to a remote research worker over HTTP and mirrors the
returned jobs locally so duplicate checks cover them.  Either way the
dispatcher only gets job ids back; it never waits for the work itself.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from functools import partial
from typing import TYPE_CHECKING, Protocol

import httpx

from regwatch.core.constants import Depth, JobStatus
from regwatch.core.exceptions import (
    ConfigurationError,
    DispatchError,
    InvalidTransitionError,
    StorageError,
)
from regwatch.scheduler.jobs import ResearchJob, ResearchStats
from regwatch.scheduler.store import JobStore

if TYPE_CHECKING:
    from regwatch.core.config import Settings

logger = logging.getLogger("regwatch.scheduler.executors")

LogFunc = Callable[[str], Awaitable[None]]

_HTTP_JOBS_PATH = "/api/research/jobs"


def _remote_job(resp: httpx.Response) -> dict | None:
    """The job object from a worker status response (``{"job": {...}}``)."""
    try:
        body = resp.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    job = body.get("job", body)
    return job if isinstance(job, dict) else None


def _remote_status(remote: dict | None) -> JobStatus | None:
    if remote is None:
        return None
    try:
        return JobStatus(remote.get("status"))
    except ValueError:
        return None


class ResearchWork(Protocol):
    """The research itself: collect data for a job and report counters."""

    async def __call__(
        self, job: ResearchJob, log: LogFunc, since: datetime | None = None
    ) -> ResearchStats: ...


class LoggingResearchWork:
    """Research callable that only records what it would collect.

    Used when no collector is plugged in; every job succeeds with zero
    counters and one log line per (state, data type).
    """

    async def __call__(
        self, job: ResearchJob, log: LogFunc, since: datetime | None = None
    ) -> ResearchStats:
        for state in job.states:
            for data_type in job.data_types:
                suffix = f" since {since.isoformat()}" if since else ""
                await log(f"{state}: {data_type} ({job.depth}){suffix}")
        return ResearchStats()


class LocalWorkExecutor:
    """Runs research in-process, one background task per job."""

    def __init__(self, job_store: JobStore, work: ResearchWork | None = None) -> None:
        self._job_store = job_store
        self._work: ResearchWork = work or LoggingResearchWork()
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def start_work(
        self,
        states: list[str],
        data_types: list[str],
        depth: Depth,
        since: datetime | None = None,
    ) -> list[str]:
        """Persist a queued job for the whole signature and start it in the background."""
        job = await self._job_store.create_job(states, data_types, depth)
        task = asyncio.create_task(self._run(job, since), name=f"research-{job.job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return [job.job_id]

    async def _run(self, job: ResearchJob, since: datetime | None) -> None:
        log = partial(self._job_store.append_log, job.job_id)
        try:
            await self._job_store.mark_running(job.job_id)
            await log(
                f"Started {job.depth} research for {','.join(job.states)} "
                f"({','.join(job.data_types)})"
            )
            stats = await self._work(job, log, since)
            await log(f"Finished: {stats.programs} programs, {stats.artifacts} artifacts")
            await self._job_store.mark_success(job.job_id, stats)
        except asyncio.CancelledError:
            await self._fail(job.job_id, "Cancelled during shutdown")
            raise
        except Exception as exc:
            logger.exception("Research job %s failed", job.job_id, extra={"job_id": job.job_id})
            await self._fail(job.job_id, str(exc) or exc.__class__.__name__)
            return

        logger.info("Research job %s succeeded", job.job_id, extra={"job_id": job.job_id})

    async def _fail(self, job_id: str, error_text: str) -> None:
        try:
            await self._job_store.append_log(job_id, f"Error: {error_text}")
            await self._job_store.mark_error(job_id, error_text)
        except Exception:
            logger.exception(
                "Could not record failure for job %s", job_id, extra={"job_id": job_id}
            )

    async def aclose(self, timeout: float | None = None) -> None:
        """Wait up to *timeout* seconds for running jobs, then cancel the rest."""
        if not self._tasks:
            return
        tasks = set(self._tasks)
        _done, still_running = await asyncio.wait(tasks, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            logger.warning("Cancelled %d unfinished research job(s)", len(still_running))


class HttpWorkExecutor:
    """Forwards work to a remote research worker's job endpoint.

    With a *job_store*, every job id the worker returns is mirrored as a
    local ``queued`` record carrying the dispatched signature, so the
    duplicate guard sees remote work too.  :meth:`sync_active_jobs` pulls
    the worker's status for mirrored jobs that are still active.
    """

    def __init__(
        self,
        base_url: str,
        *,
        job_store: JobStore | None = None,
        api_key: str = "",
        timeout: float = 30.0,
    ) -> None:
        if not base_url:
            raise ConfigurationError("HTTP work executor requires a base URL")
        self._url = base_url.rstrip("/") + _HTTP_JOBS_PATH
        self._job_store = job_store
        self._api_key = api_key
        self._timeout = timeout

    @property
    def url(self) -> str:
        return self._url

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def start_work(
        self,
        states: list[str],
        data_types: list[str],
        depth: Depth,
        since: datetime | None = None,
    ) -> list[str]:
        payload = {
            "states": list(states),
            "dataTypes": list(data_types),
            "depth": str(depth),
            "since": since.isoformat() if since else None,
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self._url, json=payload, headers=self._headers())
        except httpx.HTTPError as exc:
            raise DispatchError(f"Work executor unreachable at {self._url}: {exc}") from exc

        if resp.status_code >= 400:
            raise DispatchError(
                f"Work executor returned HTTP {resp.status_code}: {resp.text[:200]}"
            )

        try:
            body = resp.json()
        except ValueError as exc:
            raise DispatchError("Work executor returned a non-JSON response") from exc

        job_ids = body.get("jobIds") if isinstance(body, dict) else None
        if not isinstance(job_ids, list):
            raise DispatchError("Work executor response is missing 'jobIds'")
        job_ids = [str(job_id) for job_id in job_ids]

        if self._job_store is not None:
            await self._mirror(job_ids, states, data_types, depth)
        return job_ids

    async def _mirror(
        self, job_ids: list[str], states: list[str], data_types: list[str], depth: Depth
    ) -> None:
        # Remote work is already accepted at this point; a failed mirror is only logged
        for job_id in job_ids:
            try:
                await self._job_store.create_job(states, data_types, depth, job_id=job_id)
                await self._job_store.append_log(job_id, f"Dispatched to {self._url}")
            except StorageError:
                logger.exception(
                    "Could not record remote job %s locally", job_id, extra={"job_id": job_id}
                )

    async def sync_active_jobs(self) -> None:
        """Refresh mirrored jobs that are still queued or running from the worker."""
        if self._job_store is None:
            return
        active = await self._job_store.list_active_jobs()
        if not active:
            return
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            for job in active:
                await self._sync_job(client, job)

    async def _sync_job(self, client: httpx.AsyncClient, job: ResearchJob) -> None:
        ctx = {"job_id": job.job_id}
        try:
            resp = await client.get(f"{self._url}/{job.job_id}", headers=self._headers())
        except httpx.HTTPError as exc:
            logger.warning(
                "Could not fetch status of remote job %s: %s", job.job_id, exc, extra=ctx
            )
            return

        if resp.status_code == 404:
            remote: dict | None = {
                "status": str(JobStatus.ERROR),
                "error": "Job not found on the research worker",
            }
        elif resp.status_code >= 400:
            logger.warning(
                "Work executor returned HTTP %d for job %s", resp.status_code, job.job_id,
                extra=ctx,
            )
            return
        else:
            remote = _remote_job(resp)

        status = _remote_status(remote)
        if remote is None or status is None:
            logger.warning("Unrecognised status for remote job %s", job.job_id, extra=ctx)
            return

        try:
            await self._apply_remote_status(job, status, remote)
        except InvalidTransitionError as exc:
            logger.warning("Ignoring remote status for job %s: %s", job.job_id, exc, extra=ctx)

    async def _apply_remote_status(
        self, job: ResearchJob, status: JobStatus, remote: dict
    ) -> None:
        if status is job.status or status is JobStatus.QUEUED:
            return
        if status is JobStatus.ERROR:
            error_text = str(remote.get("error") or "Failed on the research worker")
            await self._job_store.mark_error(job.job_id, error_text)
            return
        if job.status is JobStatus.QUEUED:
            await self._job_store.mark_running(job.job_id)
        if status is JobStatus.SUCCESS:
            raw = remote.get("stats") if isinstance(remote.get("stats"), dict) else {}
            stats = ResearchStats(
                artifacts=int(raw.get("artifacts") or 0),
                programs=int(raw.get("programs") or 0),
            )
            await self._job_store.mark_success(job.job_id, stats)


def build_executor(settings: Settings, job_store: JobStore) -> LocalWorkExecutor | HttpWorkExecutor:
    """Create the work executor selected by ``executor_backend``."""
    backend = settings.executor_backend.lower()
    if backend == "local":
        return LocalWorkExecutor(job_store)
    if backend == "http":
        return HttpWorkExecutor(
            settings.executor_url,
            job_store=job_store,
            api_key=settings.executor_api_key,
            timeout=settings.dispatch_timeout,
        )
    msg = f"Unknown executor backend: {settings.executor_backend!r}. Expected 'local' or 'http'."
    raise ConfigurationError(msg)
