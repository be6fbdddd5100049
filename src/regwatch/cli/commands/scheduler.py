# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""CLI commands that drive the scheduler engine."""

from __future__ import annotations

import asyncio
import contextlib
import signal

import typer

from regwatch.cli.context import runtime_session

app = typer.Typer(help="Run the scheduler engine")


def _echo_report(report) -> None:
    summary = report.to_dict()
    typer.echo(
        f"Tick at {summary['tick_at']}: {summary['due']} due, "
        f"{summary['dispatched']} dispatched, {summary['skipped']} skipped, "
        f"{summary['failed']} failed, {summary['invalid']} invalid"
    )
    for result in report.results:
        line = f"  {result.schedule_id} ({result.name}): {result.outcome}"
        if result.job_ids:
            line += f" -> {', '.join(result.job_ids)}"
        if result.error:
            line += f" [{result.error}]"
        typer.echo(line)


@app.command()
def tick() -> None:
    """Run a single scheduler pass over due schedules."""
    asyncio.run(_async_tick())


async def _async_tick() -> None:
    async with runtime_session() as runtime:
        report = await runtime.engine.tick()
        _echo_report(report)


@app.command()
def run() -> None:
    """Run the scheduler loop in the foreground until interrupted."""
    asyncio.run(_async_run())


async def _async_run() -> None:
    from regwatch.core.config import get_settings
    from regwatch.core.logging import setup_logging

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    async with runtime_session() as runtime:
        await runtime.engine.start()
        typer.echo(
            f"Scheduler running every {runtime.engine.check_interval:g}s "
            f"(db={settings.db_path}). Press Ctrl-C to stop."
        )
        await stop.wait()
        typer.echo("Stopping scheduler...")
