# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Validated input models for schedules and research jobs."""

from regwatch.models.requests import ResearchRequest, ScheduleCreate, ScheduleUpdate

__all__ = ["ResearchRequest", "ScheduleCreate", "ScheduleUpdate"]
