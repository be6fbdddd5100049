# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""CLI commands for manual research dispatch and job history."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Annotated

import typer

from regwatch.cli.context import runtime_session, split_csv, validation_message

app = typer.Typer(help="Start research and inspect research jobs")


@app.command()
def start(
    states: Annotated[str, typer.Option("--states", "-s", help="Comma-separated state codes")],
    data_types: Annotated[
        str, typer.Option("--data-types", "-t", help="Comma-separated data types")
    ],
    depth: Annotated[str, typer.Option("--depth", help="summary or full")] = "summary",
    since: Annotated[
        datetime | None, typer.Option("--since", help="Only collect changes after this time")
    ] = None,
) -> None:
    """Start research now unless equivalent work is already active."""
    asyncio.run(_async_start(states, data_types, depth, since))


async def _async_start(
    states: str, data_types: str, depth: str, since: datetime | None
) -> None:
    from pydantic import ValidationError as RequestValidationError

    from regwatch.core.exceptions import DispatchError, DuplicateJobError, ValidationError
    from regwatch.models.requests import ResearchRequest
    from regwatch.scheduler.dispatcher import start_research

    try:
        request = ResearchRequest(
            states=split_csv(states),
            data_types=split_csv(data_types),
            depth=depth,
            since=since,
        )
    except RequestValidationError as exc:
        typer.echo(f"Invalid request: {validation_message(exc)}", err=True)
        raise typer.Exit(1) from exc

    async with runtime_session() as runtime:
        try:
            job_ids = await start_research(runtime.dispatcher, runtime.guard, request)
        except DuplicateJobError as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(1) from exc
        except (ValidationError, DispatchError) as exc:
            typer.echo(f"Could not start research: {exc}", err=True)
            raise typer.Exit(1) from exc

        typer.echo(f"Started {len(job_ids)} research job(s): {', '.join(job_ids)}")


@app.command()
def jobs(
    status: Annotated[
        str | None, typer.Option("--status", help="queued, running, success or error")
    ] = None,
    state: Annotated[
        str | None, typer.Option("--state", help="Only jobs covering this state")
    ] = None,
    limit: Annotated[int, typer.Option("--limit", "-l", min=1)] = 20,
) -> None:
    """List recent research jobs."""
    asyncio.run(_async_jobs(status, state, limit))


async def _async_jobs(status: str | None, state: str | None, limit: int) -> None:
    from rich.console import Console
    from rich.table import Table

    from regwatch.core.constants import JobStatus

    if status is not None and status not in {s.value for s in JobStatus}:
        typer.echo(f"Unknown status: {status}", err=True)
        raise typer.Exit(1)

    async with runtime_session() as runtime:
        found = await runtime.job_store.list_jobs(status=status, state=state, limit=limit)

        console = Console()
        table = Table(title="Research Jobs")
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Status", style="bold")
        table.add_column("States")
        table.add_column("Data Types")
        table.add_column("Depth")
        table.add_column("Started")
        table.add_column("Finished")

        for job in found:
            table.add_row(
                job.job_id,
                str(job.status),
                ",".join(job.states),
                ",".join(job.data_types),
                str(job.depth),
                job.started_at.isoformat(),
                job.finished_at.isoformat() if job.finished_at else "-",
            )

        console.print(table)


@app.command()
def show(
    job_id: Annotated[str, typer.Argument(help="Job ID")],
) -> None:
    """Show one research job with its log."""
    asyncio.run(_async_show(job_id))


async def _async_show(job_id: str) -> None:
    async with runtime_session() as runtime:
        job = await runtime.job_store.get_job(job_id)
        if job is None:
            typer.echo(f"Job {job_id} not found.", err=True)
            raise typer.Exit(1)

        typer.echo(f"Job {job.job_id}")
        typer.echo(f"  Status:     {job.status}")
        typer.echo(f"  States:     {','.join(job.states)}")
        typer.echo(f"  Data types: {','.join(job.data_types)}")
        typer.echo(f"  Depth:      {job.depth}")
        typer.echo(f"  Started:    {job.started_at.isoformat()}")
        typer.echo(f"  Finished:   {job.finished_at.isoformat() if job.finished_at else '-'}")
        if job.stats is not None:
            typer.echo(f"  Programs:   {job.stats.programs}")
            typer.echo(f"  Artifacts:  {job.stats.artifacts}")
        if job.error_text:
            typer.echo(f"  Error:      {job.error_text}")
        if job.logs:
            typer.echo("  Log:")
            for line in job.logs:
                typer.echo(f"    {line}")
