# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Tests for the local and HTTP work executors."""

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime

import httpx
import pytest
import respx

from regwatch.core.config import Settings
from regwatch.core.constants import Depth, JobStatus
from regwatch.core.exceptions import ConfigurationError, DispatchError
from regwatch.scheduler.executors import (
    HttpWorkExecutor,
    LocalWorkExecutor,
    build_executor,
)
from regwatch.scheduler.jobs import ResearchStats
from regwatch.scheduler.store import JobStore

WORKER_URL = "http://research-worker:5000"
JOBS_URL = f"{WORKER_URL}/api/research/jobs"


# ---------------------------------------------------------------------------
# Local executor
# ---------------------------------------------------------------------------


class _CountingWork:
    async def __call__(self, job, log, since=None):
        await log(f"collecting {','.join(job.states)}")
        return ResearchStats(artifacts=12, programs=3)


class _FailingWork:
    async def __call__(self, job, log, since=None):
        await log("about to fail")
        raise RuntimeError("portal timed out")


class _BlockingWork:
    def __init__(self) -> None:
        self.started = asyncio.Event()

    async def __call__(self, job, log, since=None):
        self.started.set()
        await asyncio.sleep(3600)
        return ResearchStats()


class TestLocalWorkExecutor:
    async def test_creates_one_queued_job_for_the_signature(self, job_store: JobStore):
        executor = LocalWorkExecutor(job_store, _BlockingWork())

        job_ids = await executor.start_work(["CA", "TX"], ["rules"], Depth.SUMMARY)

        assert len(job_ids) == 1
        job = await job_store.get_job(job_ids[0])
        assert job is not None
        assert job.states == ["CA", "TX"]
        assert job.status in (JobStatus.QUEUED, JobStatus.RUNNING)
        await executor.aclose(timeout=0)

    async def test_successful_job(self, job_store: JobStore):
        executor = LocalWorkExecutor(job_store, _CountingWork())

        [job_id] = await executor.start_work(["CA"], ["rules"], Depth.FULL)
        await executor.aclose(timeout=5)

        job = await job_store.get_job(job_id)
        assert job is not None
        assert job.status == JobStatus.SUCCESS
        assert job.stats == ResearchStats(artifacts=12, programs=3)
        assert job.finished_at is not None
        assert job.logs[0].startswith("Started full research for CA")
        assert "collecting CA" in job.logs
        assert job.logs[-1] == "Finished: 3 programs, 12 artifacts"
        assert executor.pending == 0

    async def test_default_work_logs_each_pair(self, job_store: JobStore):
        executor = LocalWorkExecutor(job_store)
        since = datetime(2024, 12, 1, tzinfo=UTC)

        [job_id] = await executor.start_work(["CA", "TX"], ["forms", "rules"], Depth.SUMMARY, since)
        await executor.aclose(timeout=5)

        job = await job_store.get_job(job_id)
        assert job is not None
        assert job.status == JobStatus.SUCCESS
        assert f"TX: rules (summary) since {since.isoformat()}" in job.logs
        assert sum(1 for line in job.logs if line.startswith(("CA:", "TX:"))) == 4

    async def test_failed_job(self, job_store: JobStore):
        executor = LocalWorkExecutor(job_store, _FailingWork())

        [job_id] = await executor.start_work(["CA"], ["rules"], Depth.SUMMARY)
        await executor.aclose(timeout=5)

        job = await job_store.get_job(job_id)
        assert job is not None
        assert job.status == JobStatus.ERROR
        assert job.error_text == "portal timed out"
        assert job.logs[-1] == "Error: portal timed out"

    async def test_aclose_cancels_unfinished_jobs(self, job_store: JobStore):
        work = _BlockingWork()
        executor = LocalWorkExecutor(job_store, work)

        [job_id] = await executor.start_work(["CA"], ["rules"], Depth.SUMMARY)
        await asyncio.wait_for(work.started.wait(), timeout=5)
        await executor.aclose(timeout=0.01)

        job = await job_store.get_job(job_id)
        assert job is not None
        assert job.status == JobStatus.ERROR
        assert job.error_text == "Cancelled during shutdown"
        assert executor.pending == 0

    async def test_aclose_without_jobs(self, job_store: JobStore):
        await LocalWorkExecutor(job_store).aclose(timeout=0)


# ---------------------------------------------------------------------------
# HTTP executor
# ---------------------------------------------------------------------------


class TestHttpWorkExecutor:
    def test_requires_base_url(self):
        with pytest.raises(ConfigurationError):
            HttpWorkExecutor("")

    def test_url_joining(self):
        assert HttpWorkExecutor(WORKER_URL + "/").url == JOBS_URL

    @respx.mock
    async def test_posts_camel_case_payload(self):
        route = respx.post(JOBS_URL).mock(
            return_value=httpx.Response(202, json={"jobIds": ["w-1", "w-2"]})
        )
        executor = HttpWorkExecutor(WORKER_URL, api_key="s3cret")
        since = datetime(2024, 12, 1, tzinfo=UTC)

        job_ids = await executor.start_work(["CA", "TX"], ["rules"], Depth.FULL, since)

        assert job_ids == ["w-1", "w-2"]
        request = route.calls[0].request
        assert json.loads(request.content) == {
            "states": ["CA", "TX"],
            "dataTypes": ["rules"],
            "depth": "full",
            "since": since.isoformat(),
        }
        assert request.headers["Authorization"] == "Bearer s3cret"

    @respx.mock
    async def test_no_auth_header_without_key(self):
        route = respx.post(JOBS_URL).mock(return_value=httpx.Response(200, json={"jobIds": []}))
        await HttpWorkExecutor(WORKER_URL).start_work(["CA"], ["rules"], Depth.SUMMARY)
        assert "Authorization" not in route.calls[0].request.headers

    @respx.mock
    async def test_http_error_status(self):
        respx.post(JOBS_URL).mock(return_value=httpx.Response(503, text="overloaded"))
        with pytest.raises(DispatchError, match="HTTP 503"):
            await HttpWorkExecutor(WORKER_URL).start_work(["CA"], ["rules"], Depth.SUMMARY)

    @respx.mock
    async def test_unreachable(self):
        respx.post(JOBS_URL).mock(side_effect=httpx.ConnectError("connection refused"))
        with pytest.raises(DispatchError, match="unreachable"):
            await HttpWorkExecutor(WORKER_URL).start_work(["CA"], ["rules"], Depth.SUMMARY)

    @respx.mock
    async def test_non_json_response(self):
        respx.post(JOBS_URL).mock(return_value=httpx.Response(200, text="<html>ok</html>"))
        with pytest.raises(DispatchError, match="non-JSON"):
            await HttpWorkExecutor(WORKER_URL).start_work(["CA"], ["rules"], Depth.SUMMARY)

    @respx.mock
    async def test_missing_job_ids(self):
        respx.post(JOBS_URL).mock(return_value=httpx.Response(200, json={"ok": True}))
        with pytest.raises(DispatchError, match="jobIds"):
            await HttpWorkExecutor(WORKER_URL).start_work(["CA"], ["rules"], Depth.SUMMARY)


class TestRemoteJobMirror:
    @respx.mock
    async def test_start_work_records_queued_jobs(self, job_store: JobStore):
        respx.post(JOBS_URL).mock(
            return_value=httpx.Response(202, json={"jobIds": ["w-1", "w-2"]})
        )
        executor = HttpWorkExecutor(WORKER_URL, job_store=job_store)

        await executor.start_work(["tx", "CA"], ["rules"], Depth.FULL)

        for job_id in ("w-1", "w-2"):
            job = await job_store.get_job(job_id)
            assert job is not None
            assert job.status == JobStatus.QUEUED
            assert job.states == ["CA", "TX"]
            assert job.depth == Depth.FULL
            assert job.logs == [f"Dispatched to {JOBS_URL}"]

    @respx.mock
    async def test_failed_dispatch_records_nothing(self, job_store: JobStore):
        respx.post(JOBS_URL).mock(return_value=httpx.Response(503, text="busy"))
        executor = HttpWorkExecutor(WORKER_URL, job_store=job_store)

        with pytest.raises(DispatchError):
            await executor.start_work(["CA"], ["rules"], Depth.SUMMARY)
        assert await job_store.list_jobs() == []

    @respx.mock
    async def test_sync_applies_remote_success(self, job_store: JobStore):
        await job_store.create_job(["CA"], ["rules"], job_id="w-1")
        respx.get(f"{JOBS_URL}/w-1").mock(
            return_value=httpx.Response(
                200,
                json={"job": {"status": "success", "stats": {"artifacts": 4, "programs": 2}}},
            )
        )

        await HttpWorkExecutor(WORKER_URL, job_store=job_store).sync_active_jobs()

        job = await job_store.get_job("w-1")
        assert job is not None
        assert job.status == JobStatus.SUCCESS
        assert job.stats == ResearchStats(artifacts=4, programs=2)

    @respx.mock
    async def test_sync_applies_remote_error(self, job_store: JobStore):
        await job_store.create_job(["CA"], ["rules"], job_id="w-1")
        respx.get(f"{JOBS_URL}/w-1").mock(
            return_value=httpx.Response(200, json={"job": {"status": "error", "error": "captcha"}})
        )

        await HttpWorkExecutor(WORKER_URL, job_store=job_store).sync_active_jobs()

        job = await job_store.get_job("w-1")
        assert job is not None
        assert job.status == JobStatus.ERROR
        assert job.error_text == "captcha"

    @respx.mock
    async def test_sync_marks_unknown_remote_job_as_error(self, job_store: JobStore):
        await job_store.create_job(["CA"], ["rules"], job_id="w-gone")
        respx.get(f"{JOBS_URL}/w-gone").mock(return_value=httpx.Response(404))

        await HttpWorkExecutor(WORKER_URL, job_store=job_store).sync_active_jobs()

        job = await job_store.get_job("w-gone")
        assert job is not None
        assert job.status == JobStatus.ERROR
        assert job.error_text == "Job not found on the research worker"

    @respx.mock
    async def test_sync_keeps_status_when_worker_unreachable(self, job_store: JobStore):
        await job_store.create_job(["CA"], ["rules"], job_id="w-1")
        respx.get(f"{JOBS_URL}/w-1").mock(side_effect=httpx.ConnectError("refused"))

        await HttpWorkExecutor(WORKER_URL, job_store=job_store).sync_active_jobs()

        job = await job_store.get_job("w-1")
        assert job is not None
        assert job.status == JobStatus.QUEUED

    @respx.mock
    async def test_sync_ignores_unrecognised_status(self, job_store: JobStore):
        await job_store.create_job(["CA"], ["rules"], job_id="w-1")
        respx.get(f"{JOBS_URL}/w-1").mock(
            return_value=httpx.Response(200, json={"job": {"status": "paused"}})
        )

        await HttpWorkExecutor(WORKER_URL, job_store=job_store).sync_active_jobs()

        job = await job_store.get_job("w-1")
        assert job is not None
        assert job.status == JobStatus.QUEUED

    async def test_sync_without_store_is_a_no_op(self):
        await HttpWorkExecutor(WORKER_URL).sync_active_jobs()


class TestBuildExecutor:
    def test_local(self, job_store: JobStore):
        assert isinstance(build_executor(Settings(), job_store), LocalWorkExecutor)

    def test_http(self, job_store: JobStore):
        settings = Settings(executor_backend="HTTP", executor_url=WORKER_URL)
        executor = build_executor(settings, job_store)
        assert isinstance(executor, HttpWorkExecutor)
        assert executor.url == JOBS_URL

    def test_http_without_url(self, job_store: JobStore):
        with pytest.raises(ConfigurationError):
            build_executor(Settings(executor_backend="http"), job_store)

    def test_unknown_backend(self, job_store: JobStore):
        with pytest.raises(ConfigurationError, match="Unknown executor backend"):
            build_executor(Settings(executor_backend="carrier-pigeon"), job_store)
