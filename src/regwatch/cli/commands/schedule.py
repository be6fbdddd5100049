# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""CLI commands for research schedule management."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Annotated

import typer

from regwatch.cli.context import runtime_session, split_csv, validation_message

app = typer.Typer(help="Manage research schedules")


def _print_schedules(schedules: list, title: str) -> None:
    from rich.console import Console
    from rich.table import Table

    console = Console()
    table = Table(title=title)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="bold")
    table.add_column("Cron")
    table.add_column("States")
    table.add_column("Data Types")
    table.add_column("Depth")
    table.add_column("Active")
    table.add_column("Last Run")
    table.add_column("Next Run")

    for s in schedules:
        table.add_row(
            s.schedule_id,
            s.name,
            s.cron_expression,
            ",".join(s.states),
            ",".join(s.data_types),
            str(s.depth),
            "yes" if s.is_active else "no",
            s.last_run_at.isoformat() if s.last_run_at else "-",
            s.next_run_at.isoformat(),
        )

    console.print(table)


def _print_schedule(schedule) -> None:
    typer.echo(f"Schedule {schedule.schedule_id}: {schedule.name}")
    if schedule.description:
        typer.echo(f"  Description: {schedule.description}")
    typer.echo(f"  Cron:        {schedule.cron_expression}")
    typer.echo(f"  States:      {','.join(schedule.states)}")
    typer.echo(f"  Data types:  {','.join(schedule.data_types)}")
    typer.echo(f"  Depth:       {schedule.depth}")
    typer.echo(f"  Active:      {schedule.is_active}")
    last = schedule.last_run_at.isoformat() if schedule.last_run_at else "-"
    typer.echo(f"  Last run:    {last}")
    typer.echo(f"  Next run:    {schedule.next_run_at.isoformat()}")


@app.command()
def create(
    name: Annotated[str, typer.Argument(help="Schedule name")],
    cron: Annotated[str, typer.Option("--cron", help="Cron expression (5-field)")],
    states: Annotated[str, typer.Option("--states", "-s", help="Comma-separated state codes")],
    data_types: Annotated[
        str, typer.Option("--data-types", "-t", help="Comma-separated data types")
    ],
    depth: Annotated[str, typer.Option("--depth", help="summary or full")] = "summary",
    description: Annotated[str, typer.Option("--description", "-d")] = "",
    disabled: Annotated[
        bool, typer.Option("--disabled", help="Create the schedule inactive")
    ] = False,
) -> None:
    """Create a new research schedule."""
    asyncio.run(
        _async_create(name, cron, states, data_types, depth, description, disabled)
    )


async def _async_create(
    name: str,
    cron_expr: str,
    states: str,
    data_types: str,
    depth: str,
    description: str,
    disabled: bool,
) -> None:
    from pydantic import ValidationError

    from regwatch.models.requests import ScheduleCreate
    from regwatch.scheduler.cron import CronParseError

    try:
        data = ScheduleCreate(
            name=name,
            description=description,
            cron_expression=cron_expr,
            states=split_csv(states),
            data_types=split_csv(data_types),
            depth=depth,
            is_active=not disabled,
        )
    except ValidationError as exc:
        typer.echo(f"Invalid schedule: {validation_message(exc)}", err=True)
        raise typer.Exit(1) from exc

    async with runtime_session() as runtime:
        try:
            schedule = await runtime.schedule_store.create(data)
        except CronParseError as exc:
            typer.echo(f"Invalid cron expression: {exc}", err=True)
            raise typer.Exit(1) from exc

        typer.echo(f"Created schedule {schedule.schedule_id}: {schedule.name}")
        typer.echo(f"  Schedule: {schedule.cron_expression}")
        typer.echo(f"  Next run: {schedule.next_run_at.isoformat()}")
        typer.echo(f"  Active:   {schedule.is_active}")


@app.command(name="list")
def list_schedules(
    active: Annotated[
        bool, typer.Option("--active", help="Only active schedules, soonest first")
    ] = False,
) -> None:
    """List research schedules."""
    asyncio.run(_async_list(active))


async def _async_list(active: bool) -> None:
    async with runtime_session() as runtime:
        store = runtime.schedule_store
        if active:
            _print_schedules(await store.list_active(), "Active Research Schedules")
        else:
            _print_schedules(await store.list_all(), "Research Schedules")


@app.command()
def show(
    schedule_id: Annotated[str, typer.Argument(help="Schedule ID")],
) -> None:
    """Show one schedule."""
    asyncio.run(_async_show(schedule_id))


async def _async_show(schedule_id: str) -> None:
    async with runtime_session() as runtime:
        schedule = await runtime.schedule_store.get(schedule_id)
        if schedule is None:
            typer.echo(f"Schedule {schedule_id} not found.", err=True)
            raise typer.Exit(1)
        _print_schedule(schedule)


@app.command()
def update(
    schedule_id: Annotated[str, typer.Argument(help="Schedule ID")],
    name: Annotated[str | None, typer.Option("--name", "-n")] = None,
    cron: Annotated[str | None, typer.Option("--cron", help="New cron expression")] = None,
    states: Annotated[str | None, typer.Option("--states", "-s")] = None,
    data_types: Annotated[str | None, typer.Option("--data-types", "-t")] = None,
    depth: Annotated[str | None, typer.Option("--depth")] = None,
    description: Annotated[str | None, typer.Option("--description", "-d")] = None,
    active: Annotated[
        bool | None, typer.Option("--active/--inactive", help="Enable or disable")
    ] = None,
) -> None:
    """Update fields of a schedule; unspecified fields are left alone."""
    fields = {
        "name": name,
        "cron_expression": cron,
        "states": split_csv(states) if states is not None else None,
        "data_types": split_csv(data_types) if data_types is not None else None,
        "depth": depth,
        "description": description,
        "is_active": active,
    }
    asyncio.run(_async_update(schedule_id, fields))


async def _async_update(schedule_id: str, fields: dict) -> None:
    from pydantic import ValidationError

    from regwatch.models.requests import ScheduleUpdate
    from regwatch.scheduler.cron import CronParseError

    try:
        data = ScheduleUpdate(**{k: v for k, v in fields.items() if v is not None})
    except ValidationError as exc:
        typer.echo(f"Invalid update: {validation_message(exc)}", err=True)
        raise typer.Exit(1) from exc

    async with runtime_session() as runtime:
        try:
            schedule = await runtime.schedule_store.update(schedule_id, data)
        except CronParseError as exc:
            typer.echo(f"Invalid cron expression: {exc}", err=True)
            raise typer.Exit(1) from exc
        if schedule is None:
            typer.echo(f"Schedule {schedule_id} not found.", err=True)
            raise typer.Exit(1)
        typer.echo(f"Updated schedule {schedule.schedule_id}")
        _print_schedule(schedule)


@app.command()
def delete(
    schedule_id: Annotated[str, typer.Argument(help="Schedule ID")],
) -> None:
    """Delete a schedule."""
    asyncio.run(_async_delete(schedule_id))


async def _async_delete(schedule_id: str) -> None:
    async with runtime_session() as runtime:
        if not await runtime.schedule_store.delete(schedule_id):
            typer.echo(f"Schedule {schedule_id} not found.", err=True)
            raise typer.Exit(1)
        typer.echo(f"Deleted schedule {schedule_id}")


@app.command()
def due() -> None:
    """List active schedules that are due now."""
    asyncio.run(_async_due())


async def _async_due() -> None:
    async with runtime_session() as runtime:
        schedules = await runtime.schedule_store.list_due(datetime.now(UTC))
        _print_schedules(schedules, "Due Research Schedules")


@app.command()
def upcoming(
    hours: Annotated[
        float | None, typer.Option("--hours", help="Look-ahead window in hours")
    ] = None,
) -> None:
    """Show active schedules firing within the next few hours."""
    asyncio.run(_async_upcoming(hours))


async def _async_upcoming(hours: float | None) -> None:
    from rich.console import Console
    from rich.table import Table

    from regwatch.core.config import get_settings
    from regwatch.core.exceptions import ValidationError
    from regwatch.scheduler.projector import upcoming as project_upcoming

    horizon = hours if hours is not None else get_settings().upcoming_default_hours
    async with runtime_session() as runtime:
        try:
            executions = await project_upcoming(runtime.schedule_store, horizon)
        except ValidationError as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(1) from exc

        console = Console()
        table = Table(title=f"Upcoming Research (next {horizon:g}h)")
        table.add_column("Fires At", style="cyan", no_wrap=True)
        table.add_column("In")
        table.add_column("Schedule", style="bold")
        table.add_column("States")
        table.add_column("Data Types")

        for e in executions:
            minutes = int(e.time_until.total_seconds() // 60)
            table.add_row(
                e.next_fire_time.isoformat(),
                "overdue" if minutes < 0 else f"{minutes // 60}h{minutes % 60:02d}m",
                f"{e.schedule.name} ({e.schedule.schedule_id})",
                ",".join(e.schedule.states),
                ",".join(e.schedule.data_types),
            )

        console.print(table)


@app.command()
def describe(
    cron: Annotated[str, typer.Argument(help="Cron expression (5-field)")],
    count: Annotated[int, typer.Option("--count", "-c", min=1, max=50)] = 3,
) -> None:
    """Validate a cron expression and preview its next fire times."""
    from regwatch.scheduler.cron import CronParseError, describe_cron

    try:
        typer.echo(describe_cron(cron, datetime.now(UTC), count=count))
    except CronParseError as exc:
        typer.echo(f"Invalid cron expression: {exc}", err=True)
        raise typer.Exit(1) from exc


@app.command()
def run(
    schedule_id: Annotated[str, typer.Argument(help="Schedule ID to run immediately")],
) -> None:
    """Dispatch a schedule now; it only advances if work was actually dispatched."""
    asyncio.run(_async_run(schedule_id))


async def _async_run(schedule_id: str) -> None:
    from regwatch.scheduler.engine import Outcome

    async with runtime_session() as runtime:
        schedule = await runtime.schedule_store.get(schedule_id)
        if schedule is None:
            typer.echo(f"Schedule {schedule_id} not found.", err=True)
            raise typer.Exit(1)

        typer.echo(f"Running schedule {schedule.schedule_id}: {schedule.name} ...")
        result = await runtime.engine.run_now(schedule)

        typer.echo(f"  Outcome:  {result.outcome}")
        typer.echo(f"  Jobs:     {', '.join(result.job_ids) or '-'}")
        next_run = result.next_run_at.isoformat() if result.next_run_at else "-"
        typer.echo(f"  Next run: {next_run}")
        if result.error:
            typer.echo(f"  Error:    {result.error}")
        if result.outcome in (Outcome.FAILED, Outcome.INVALID):
            raise typer.Exit(1)
