# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Typer CLI application root."""

from __future__ import annotations

from typing import Annotated

import typer

from regwatch import __version__
from regwatch.cli.commands import db, research, schedule, scheduler

app = typer.Typer(
    name="regwatch",
    help="Scheduling and orchestration for regulatory research jobs",
    no_args_is_help=True,
)

app.add_typer(db.app, name="db", help="Database management")
app.add_typer(schedule.app, name="schedule", help="Manage research schedules")
app.add_typer(research.app, name="research", help="Start research and inspect jobs")
app.add_typer(scheduler.app, name="scheduler", help="Run the scheduler engine")


@app.command()
def serve(
    host: Annotated[str | None, typer.Option("--host", help="Bind address")] = None,
    port: Annotated[int | None, typer.Option("--port", "-p", help="Bind port")] = None,
    workers: Annotated[int | None, typer.Option("--workers", "-w", help="Worker count")] = None,
    no_scheduler: Annotated[
        bool, typer.Option("--no-scheduler", help="Serve the API without the scheduler loop")
    ] = False,
) -> None:
    """Start the regwatch API server (and, by default, the scheduler loop)."""
    import os

    import uvicorn

    from regwatch.core.config import get_settings

    settings = get_settings()
    worker_count = workers or settings.api_workers
    scheduler_on = settings.scheduler_enabled and not no_scheduler

    # Only one process may run the scheduler loop
    if scheduler_on and worker_count > 1:
        typer.echo(
            f"Refusing to start {worker_count} workers with the scheduler enabled; "
            "use --workers 1 or --no-scheduler and run 'regwatch scheduler run' separately.",
            err=True,
        )
        raise typer.Exit(1)

    if no_scheduler:
        # Read by the app factory inside each worker process
        os.environ["REGWATCH_NO_SCHEDULER"] = "1"

    uvicorn.run(
        "regwatch.api.app:_create_app_from_env",
        host=host or settings.api_host,
        port=port or settings.api_port,
        workers=worker_count,
        factory=True,
    )


@app.command()
def version() -> None:
    """Show the regwatch version."""
    typer.echo(f"regwatch {__version__}")
