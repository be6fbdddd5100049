# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Tests for JobDispatcher and the manual start_research path."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import httpx
import pytest
import respx

from regwatch.core.constants import Depth, JobStatus
from regwatch.core.exceptions import DispatchError, DuplicateJobError, ValidationError
from regwatch.models.requests import ResearchRequest
from regwatch.scheduler.dispatcher import JobDispatcher, start_research
from regwatch.scheduler.guard import DuplicateGuard


class _RecordingExecutor:
    """Executor double that records calls and returns canned ids."""

    def __init__(self, job_ids: list[str] | None = None) -> None:
        self.calls: list[tuple] = []
        self.job_ids = job_ids if job_ids is not None else ["job-1"]

    async def start_work(self, states, data_types, depth, since=None):
        self.calls.append((states, data_types, depth, since))
        return self.job_ids


class _SlowExecutor:
    async def start_work(self, states, data_types, depth, since=None):
        await asyncio.sleep(10)
        return ["never"]


class TestDispatch:
    async def test_passes_normalised_signature(self):
        executor = _RecordingExecutor(["job-a", "job-b"])
        dispatcher = JobDispatcher(executor)

        job_ids = await dispatcher.dispatch(["tx", "CA"], ["RULES", "forms"], "full")

        assert job_ids == ["job-a", "job-b"]
        assert executor.calls == [(["CA", "TX"], ["forms", "rules"], Depth.FULL, None)]

    async def test_passes_since(self):
        executor = _RecordingExecutor()
        since = datetime(2024, 12, 1, tzinfo=UTC)
        await JobDispatcher(executor).dispatch(["CA"], ["rules"], since=since)
        assert executor.calls[0][3] == since

    async def test_default_depth_is_summary(self):
        executor = _RecordingExecutor()
        await JobDispatcher(executor).dispatch(["CA"], ["rules"])
        assert executor.calls[0][2] == Depth.SUMMARY

    @pytest.mark.parametrize(
        ("states", "data_types", "depth", "message"),
        [
            ([], ["rules"], "summary", "state"),
            (["CA"], [], "summary", "data type"),
            (["CA"], ["recipes"], "summary", "Unknown data types"),
            (["CA"], ["rules"], "exhaustive", "Unknown depth"),
        ],
    )
    async def test_validation(self, states, data_types, depth, message):
        executor = _RecordingExecutor()
        with pytest.raises(ValidationError, match=message):
            await JobDispatcher(executor).dispatch(states, data_types, depth)
        assert executor.calls == []

    async def test_executor_dispatch_error_propagates(self):
        executor = AsyncMock()
        executor.start_work.side_effect = DispatchError("worker rejected")
        with pytest.raises(DispatchError, match="worker rejected"):
            await JobDispatcher(executor).dispatch(["CA"], ["rules"])

    async def test_unexpected_executor_error_wrapped(self):
        executor = AsyncMock()
        executor.start_work.side_effect = RuntimeError("kaboom")
        with pytest.raises(DispatchError, match="kaboom"):
            await JobDispatcher(executor).dispatch(["CA"], ["rules"])

    async def test_timeout(self):
        dispatcher = JobDispatcher(_SlowExecutor(), timeout=0.05)
        with pytest.raises(DispatchError, match="did not accept work"):
            await dispatcher.dispatch(["CA"], ["rules"])


class TestStartResearch:
    async def test_dispatches_when_no_duplicate(self):
        executor = _RecordingExecutor(["job-9"])
        guard = AsyncMock(spec=DuplicateGuard)
        guard.has_equivalent_active_job.return_value = False

        request = ResearchRequest(states=["CA"], data_types=["rules"], depth="full")
        job_ids = await start_research(JobDispatcher(executor), guard, request)

        assert job_ids == ["job-9"]
        guard.has_equivalent_active_job.assert_awaited_once_with(["CA"], ["rules"])

    async def test_refuses_duplicate(self):
        executor = _RecordingExecutor()
        guard = AsyncMock(spec=DuplicateGuard)
        guard.has_equivalent_active_job.return_value = True

        request = ResearchRequest(states=["TX", "CA"], data_types=["rules"])
        with pytest.raises(DuplicateJobError) as exc_info:
            await start_research(JobDispatcher(executor), guard, request)

        assert exc_info.value.states == ["CA", "TX"]
        assert "already active" in str(exc_info.value)
        assert executor.calls == []

    async def test_end_to_end_with_local_jobs(self, job_store):
        from regwatch.scheduler.executors import LocalWorkExecutor

        executor = LocalWorkExecutor(job_store)
        dispatcher = JobDispatcher(executor)
        guard = DuplicateGuard(job_store)
        request = ResearchRequest(states=["CA", "TX"], data_types=["rules"])

        # Hold the job in the queue so the second request sees it as active
        await job_store.create_job(["CA", "TX"], ["rules"])
        with pytest.raises(DuplicateJobError):
            await start_research(dispatcher, guard, request)

        other = ResearchRequest(states=["CA"], data_types=["rules"])
        job_ids = await start_research(dispatcher, guard, other)
        assert len(job_ids) == 1
        await executor.aclose(timeout=5)

    @respx.mock
    async def test_remote_work_is_guarded(self, db):
        from regwatch.core.config import Settings
        from regwatch.scheduler.runtime import build_runtime

        respx.post("http://worker/api/research/jobs").mock(
            return_value=httpx.Response(200, json={"jobIds": ["remote-1"]})
        )
        respx.get("http://worker/api/research/jobs/remote-1").mock(
            return_value=httpx.Response(200, json={"job": {"id": "remote-1", "status": "running"}})
        )
        runtime = build_runtime(db, Settings(executor_backend="http", executor_url="http://worker"))
        request = ResearchRequest(states=["CA"], data_types=["rules"])

        assert await start_research(runtime.dispatcher, runtime.guard, request) == ["remote-1"]
        with pytest.raises(DuplicateJobError):
            await start_research(runtime.dispatcher, runtime.guard, request)

        job = await runtime.job_store.get_job("remote-1")
        assert job is not None
        assert job.status == JobStatus.RUNNING
