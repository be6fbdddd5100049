# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Schedule and ResearchJob records for scheduled research."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

from regwatch.core.constants import Depth, JobStatus

StrCollection = list[str] | tuple[str, ...] | set[str] | frozenset[str]


def normalize_states(states: StrCollection) -> list[str]:
    """Upper-case, de-duplicate and sort region codes."""
    return sorted({s.strip().upper() for s in states if s and s.strip()})


def normalize_data_types(data_types: StrCollection) -> list[str]:
    """Lower-case, de-duplicate and sort data types."""
    return sorted({str(d).strip().lower() for d in data_types if d and str(d).strip()})


@dataclass(frozen=True, slots=True)
class WorkSignature:
    """The (states, data_types) pair that identifies equivalent work."""

    states: frozenset[str]
    data_types: frozenset[str]

    @classmethod
    def of(cls, states: StrCollection, data_types: StrCollection) -> WorkSignature:
        return cls(
            states=frozenset(normalize_states(states)),
            data_types=frozenset(normalize_data_types(data_types)),
        )


@dataclass
class Schedule:
    """A recurring research job definition."""

    schedule_id: str
    name: str
    cron_expression: str  # 5-field cron expression
    states: list[str]
    data_types: list[str]
    next_run_at: datetime
    description: str = ""
    depth: Depth = Depth.SUMMARY
    is_active: bool = True
    last_run_at: datetime | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def signature(self) -> WorkSignature:
        return WorkSignature.of(self.states, self.data_types)

    def to_dict(self) -> dict:
        """Serialize to a dictionary suitable for API responses."""
        return {
            "schedule_id": self.schedule_id,
            "name": self.name,
            "description": self.description,
            "cron_expression": self.cron_expression,
            "states": list(self.states),
            "data_types": list(self.data_types),
            "depth": str(self.depth),
            "is_active": self.is_active,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "next_run_at": self.next_run_at.isoformat(),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class ResearchStats:
    """Counters reported by a successful research run."""

    artifacts: int = 0
    programs: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"artifacts": self.artifacts, "programs": self.programs}


@dataclass
class ResearchJob:
    """A single execution of research work, manual or scheduled."""

    job_id: str
    states: list[str]
    data_types: list[str]
    depth: Depth = Depth.SUMMARY
    status: JobStatus = JobStatus.QUEUED
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None
    stats: ResearchStats | None = None
    error_text: str | None = None
    logs: list[str] = field(default_factory=list)

    @property
    def signature(self) -> WorkSignature:
        return WorkSignature.of(self.states, self.data_types)

    def to_dict(self) -> dict:
        """Serialize to a dictionary suitable for API responses."""
        return {
            "job_id": self.job_id,
            "status": str(self.status),
            "states": list(self.states),
            "data_types": list(self.data_types),
            "depth": str(self.depth),
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "stats": self.stats.to_dict() if self.stats else None,
            "error_text": self.error_text,
            "logs": list(self.logs),
        }
