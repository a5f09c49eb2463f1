"""
Schedule commands.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="Run harvests on a schedule",
    no_args_is_help=True,
)


@app.command("start")
def start_scheduler(
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to app.yaml (default: configs/app.yaml)",
    ),
    cron: Optional[str] = typer.Option(
        None,
        "--cron",
        help="Override the configured crontab expression",
    ),
) -> None:
    """Start the scheduler service.

    Runs as a foreground process. Use Ctrl+C to stop.
    """
    from specharvest.cli.main import load_config_or_exit
    from specharvest.core.scheduler import SchedulerService, build_trigger

    config = load_config_or_exit(config_path)
    schedule = config.schedule
    if cron:
        schedule = schedule.model_copy(update={"cron_expression": cron})

    try:
        build_trigger(schedule)
    except ValueError as e:
        err_console.print(f"[red]Invalid cron expression:[/red] {e}")
        raise typer.Exit(2)

    if not schedule.enabled and not cron:
        console.print("[yellow]schedule.enabled is false in the configuration; starting anyway.[/yellow]")

    console.print(f"[bold]Starting scheduler[/bold] ([cyan]{schedule.cron_expression}[/cyan], {schedule.timezone})")
    console.print("[dim]Press Ctrl+C to stop[/dim]")
    console.print()

    try:
        asyncio.run(SchedulerService(schedule, config_path).start())
    except KeyboardInterrupt:
        console.print("[dim]Scheduler stopped[/dim]")
