# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Tests for request validation models and scheduling records."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from regwatch.core.constants import DataType, Depth, JobStatus
from regwatch.models.requests import ResearchRequest, ScheduleCreate, ScheduleUpdate
from regwatch.scheduler.jobs import (
    ResearchJob,
    ResearchStats,
    Schedule,
    WorkSignature,
    normalize_data_types,
    normalize_states,
)


class TestScheduleCreate:
    def test_normalises_input(self):
        data = ScheduleCreate(
            name="weekly",
            cron_expression="  0  9 * *  1 ",
            states=["tx", " ca", "CA"],
            data_types=["rules", "forms", "rules"],
        )
        assert data.cron_expression == "0 9 * * 1"
        assert data.states == ["CA", "TX"]
        assert data.data_types == [DataType.FORMS, DataType.RULES]
        assert data.depth == Depth.SUMMARY
        assert data.is_active is True

    @pytest.mark.parametrize(
        "overrides",
        [
            {"name": ""},
            {"states": []},
            {"states": ["California"]},
            {"states": ["C1"]},
            {"data_types": []},
            {"data_types": ["recipes"]},
            {"depth": "deep"},
        ],
    )
    def test_rejects(self, overrides):
        fields = {
            "name": "ok",
            "cron_expression": "0 9 * * *",
            "states": ["CA"],
            "data_types": ["rules"],
        }
        fields.update(overrides)
        with pytest.raises(ValidationError):
            ScheduleCreate(**fields)

    def test_cron_is_not_evaluated_here(self):
        """Bad cron text passes the model; the store reports it."""
        data = ScheduleCreate(
            name="bad", cron_expression="nonsense", states=["CA"], data_types=["rules"]
        )
        assert data.cron_expression == "nonsense"


class TestScheduleUpdate:
    def test_all_optional(self):
        assert ScheduleUpdate().model_dump(exclude_none=True) == {}

    def test_partial(self):
        update = ScheduleUpdate(is_active=False, states=["ny"])
        assert update.model_dump(exclude_none=True) == {"is_active": False, "states": ["NY"]}


class TestResearchRequest:
    def test_since_parsed(self):
        request = ResearchRequest(
            states=["CA"], data_types=["emissions"], since="2024-12-01T00:00:00Z"
        )
        assert request.since == datetime(2024, 12, 1, tzinfo=UTC)


class TestSignatures:
    def test_normalisers(self):
        assert normalize_states(["tx", "CA", " ca ", ""]) == ["CA", "TX"]
        assert normalize_data_types(["Rules", "forms", "rules"]) == ["forms", "rules"]

    def test_signature_equality(self):
        expected = WorkSignature.of(["CA", "TX"], ["rules"])
        assert WorkSignature.of(["tx", "ca"], ["RULES"]) == expected
        assert WorkSignature.of(["CA"], ["rules"]) != WorkSignature.of(["CA", "TX"], ["rules"])

    def test_schedule_and_job_share_signature(self):
        schedule = Schedule(
            schedule_id="sched-1",
            name="n",
            cron_expression="0 9 * * *",
            states=["CA", "TX"],
            data_types=["rules"],
            next_run_at=datetime(2025, 1, 1, 9, tzinfo=UTC),
        )
        job = ResearchJob(job_id="job-1", states=["TX", "CA"], data_types=["rules"])
        assert schedule.signature == job.signature


class TestSerialisation:
    def test_schedule_to_dict(self):
        schedule = Schedule(
            schedule_id="sched-1",
            name="n",
            cron_expression="0 9 * * *",
            states=["CA"],
            data_types=["rules"],
            next_run_at=datetime(2025, 1, 1, 9, tzinfo=UTC),
            depth=Depth.FULL,
        )
        data = schedule.to_dict()
        assert data["next_run_at"] == "2025-01-01T09:00:00+00:00"
        assert data["last_run_at"] is None
        assert data["depth"] == "full"

    def test_job_to_dict(self):
        job = ResearchJob(
            job_id="job-1",
            states=["CA"],
            data_types=["rules"],
            status=JobStatus.SUCCESS,
            stats=ResearchStats(artifacts=4, programs=1),
        )
        data = job.to_dict()
        assert data["status"] == "success"
        assert data["stats"] == {"artifacts": 4, "programs": 1}
        assert data["logs"] == []
