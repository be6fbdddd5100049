# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Boundary models: every schedule or job request is validated here once.

Cron expressions are only whitespace-normalised at this layer; evaluating
them is the schedule store's job so that a bad expression surfaces as a
:class:`~regwatch.scheduler.cron.CronParseError` from the operation that
needed it.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, Field

from regwatch.core.constants import DataType, Depth

_STATE_CODE = re.compile(r"^[A-Z]{2}$")


def _clean_states(v: list[str]) -> list[str]:
    codes = {s.strip().upper() for s in v}
    bad = sorted(c for c in codes if not _STATE_CODE.match(c))
    if bad:
        raise ValueError(f"State codes must be two letters: {', '.join(bad)}")
    if not codes:
        raise ValueError("At least one state is required")
    return sorted(codes)


def _clean_data_types(v: list[DataType]) -> list[DataType]:
    if not v:
        raise ValueError("At least one data type is required")
    return sorted(set(v))


def _clean_cron(v: str) -> str:
    return " ".join(v.split())


StateCodes = Annotated[list[str], AfterValidator(_clean_states)]
DataTypes = Annotated[list[DataType], AfterValidator(_clean_data_types)]
CronText = Annotated[str, AfterValidator(_clean_cron)]


class ScheduleCreate(BaseModel):
    """Input for creating a research schedule."""

    name: str = Field(min_length=1, description="Human-readable schedule name")
    description: str = ""
    cron_expression: CronText = Field(description="Cron expression (5-field)")
    states: StateCodes = Field(description="Two-letter state codes to research")
    data_types: DataTypes = Field(description="Categories of data to collect")
    depth: Depth = Depth.SUMMARY
    is_active: bool = True


class ScheduleUpdate(BaseModel):
    """Partial update; ``None`` fields are left unchanged."""

    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    cron_expression: CronText | None = None
    states: StateCodes | None = None
    data_types: DataTypes | None = None
    depth: Depth | None = None
    is_active: bool | None = None


class ResearchRequest(BaseModel):
    """Input for manually starting research work."""

    states: StateCodes
    data_types: DataTypes
    depth: Depth = Depth.SUMMARY
    since: datetime | None = None
