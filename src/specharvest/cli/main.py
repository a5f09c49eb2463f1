"""
SpecHarvest CLI - Main entry point.

A terminal-first phone specification harvester alternating between a
throttled direct transport and a key-backed proxy API.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.traceback import install as install_rich_traceback

from specharvest import __app_name__, __version__

# Load environment variables from .env (if present)
load_dotenv()

# Install rich traceback for better error display
install_rich_traceback(show_locals=False, width=120)

# Force UTF-8 on Windows to avoid encoding issues
if sys.platform == "win32":
    os.environ.setdefault("PYTHONIOENCODING", "utf-8")
    if hasattr(sys.stdout, "reconfigure"):
        try:
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        except (AttributeError, OSError):
            pass

console = Console()
err_console = Console(stderr=True)

DEFAULT_CONFIG_PATH = Path("configs/app.yaml")

# Create main app
app = typer.Typer(
    name=__app_name__,
    help="Hybrid direct/proxy phone specification harvester",
    rich_markup_mode="rich",
    no_args_is_help=True,
    pretty_exceptions_show_locals=False,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold cyan]{__app_name__}[/bold cyan] version [green]{__version__}[/green]")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Override the configured log level",
    ),
) -> None:
    """SpecHarvest - phone specification harvester."""
    from specharvest.core.config import ConfigurationError, load_app_config
    from specharvest.core.logging import setup_logging

    try:
        config = load_app_config()
    except ConfigurationError:
        # Reported by the command that needs the config
        setup_logging(level=log_level or "INFO", log_file=None)
        return

    setup_logging(
        level=log_level or config.logging.level,
        log_file=config.logging.file,
        json_format=config.logging.json_format,
        rich_console=config.logging.rich_console,
        secrets=config.harvest.api_keys,
    )


def load_config_or_exit(path: Optional[Path] = None):
    """Load app config, exiting with code 2 on invalid configuration."""
    from specharvest.core.config import ConfigurationError, load_app_config

    try:
        return load_app_config(path)
    except ConfigurationError as e:
        err_console.print(f"[red]Configuration error:[/red] {e}")
        if e.details:
            err_console.print(f"[dim]{e.details}[/dim]")
        raise typer.Exit(2)


# =============================================================================
# Import and register subcommand modules
# =============================================================================

from .commands import db, harvest, schedule  # noqa: E402

app.add_typer(harvest.app, name="harvest", help="Run and diagnose harvests")
app.add_typer(schedule.app, name="schedule", help="Run harvests on a schedule")
app.add_typer(db.app, name="db", help="Database operations")


# =============================================================================
# Init Command
# =============================================================================


@app.command()
def init(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing configuration",
    ),
) -> None:
    """Initialize SpecHarvest database and configuration.

    Creates required directories, a default configuration file,
    and the database schema.
    """
    from rich.progress import Progress, SpinnerColumn, TextColumn

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Creating directories...", total=None)

        for dir_path in (Path("configs"), Path("data"), Path("logs")):
            dir_path.mkdir(parents=True, exist_ok=True)

        progress.update(task, description="Creating default configuration...")

        if not DEFAULT_CONFIG_PATH.exists() or force:
            _create_default_app_config(DEFAULT_CONFIG_PATH)

        progress.update(task, description="Initializing database...")

        from specharvest.persistence.db import init_db

        config = load_config_or_exit()
        config.ensure_directories()
        init_db(config.database.url)

        progress.update(task, description="Done!")

    console.print()
    console.print(Panel.fit(
        "[bold green]OK - SpecHarvest initialized successfully![/bold green]\n\n"
        "Created:\n"
        "  - [cyan]configs/app.yaml[/cyan] - Application configuration\n"
        "  - [cyan]data/[/cyan] - Database storage\n"
        "  - [cyan]logs/[/cyan] - Log files\n\n"
        "Next steps:\n"
        "  1. Set proxy keys: [yellow]SCRAPINGBEE_API_KEYS=key1,key2[/yellow] in .env\n"
        "  2. Check the pool: [yellow]specharvest harvest keys[/yellow]\n"
        "  3. Run a harvest: [yellow]specharvest harvest run --max-brands 1[/yellow]",
        title="[bold]Initialization Complete[/bold]",
        border_style="green",
    ))


DEFAULT_APP_CONFIG = """\
# SpecHarvest Configuration
# Environment variables (SCRAPINGBEE_API_KEYS, HYBRID_BATCH_SIZE, ...) override these values

data_dir: data

harvest:
  batch_size: 10
  direct_delay_ms: 500
  api_keys: ${SCRAPINGBEE_API_KEYS:-}
  skip_existing: true
  require_proxy: false
  namespace: gsmarena_phones
  group_delay_ms: 0

direct:
  timeout_seconds: 30
  max_attempts: 3

proxy:
  endpoint: https://app.scrapingbee.com/api/v1/
  render_js: false
  timeout_seconds: 60

catalog:
  base_url: https://www.gsmarena.com
  brands_path: makers.php3
  source: gsmarena

database:
  url: sqlite:///data/specharvest.db
  echo: false

logging:
  level: INFO
  file: logs/specharvest.log
  json_format: true
  rich_console: true

schedule:
  enabled: false
  cron_expression: "0 */6 * * *"
  timezone: UTC
  jitter_minutes: 5
  max_runtime_minutes: 350
"""


def _create_default_app_config(path: Path) -> None:
    """Create default app.yaml configuration."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_APP_CONFIG, encoding="utf-8")


# =============================================================================
# Status Command
# =============================================================================


@app.command()
def status() -> None:
    """Show completion progress, stored documents and recent runs."""
    from rich.table import Table

    from specharvest.persistence.db import get_engine, get_session, init_db
    from specharvest.persistence.repo import CompletionRepository, RunRepository, SpecRepository

    config = load_config_or_exit()
    namespace = config.harvest.namespace

    get_engine(config.database.url)
    init_db(config.database.url)

    console.print()
    console.print(f"[bold]SpecHarvest Status[/bold] [dim]({namespace})[/dim]")
    console.print()

    with get_session() as session:
        counts = CompletionRepository(session, namespace).counts()
        specs = SpecRepository(session, namespace)

        summary = Table(title="Progress", show_header=True, header_style="bold magenta")
        summary.add_column("Metric", style="cyan")
        summary.add_column("Count", justify="right")
        summary.add_row("Complete", f"[green]{counts['complete']}[/green]")
        summary.add_row("Pending", f"[yellow]{counts['pending']}[/yellow]")
        summary.add_row("Stored documents", str(specs.count()))
        console.print(summary)
        console.print()

        brands = specs.count_by_brand(limit=10)
        if brands:
            brand_table = Table(title="Top Brands", show_header=True, header_style="bold magenta")
            brand_table.add_column("Brand", style="cyan")
            brand_table.add_column("Phones", justify="right")
            for brand, count in brands:
                brand_table.add_row(brand, str(count))
            console.print(brand_table)
            console.print()

        runs = RunRepository(session).get_recent(namespace=namespace, limit=5)
        if not runs:
            console.print("[dim]No harvest runs yet.[/dim]")
            return

        run_table = Table(title="Recent Runs", show_header=True, header_style="bold magenta")
        run_table.add_column("ID", justify="right")
        run_table.add_column("Started")
        run_table.add_column("Status")
        run_table.add_column("Saved", justify="right", style="green")
        run_table.add_column("Skipped", justify="right")
        run_table.add_column("Failed", justify="right", style="red")
        run_table.add_column("Final State")
        run_table.add_column("Keys", justify="right")

        for run_db in runs:
            run_table.add_row(
                str(run_db.id),
                run_db.started_at.strftime("%Y-%m-%d %H:%M"),
                run_db.status,
                str(run_db.items_saved),
                str(run_db.items_skipped),
                str(run_db.items_failed),
                run_db.final_state or "-",
                f"{run_db.keys_usable}/{run_db.keys_total}",
            )
        console.print(run_table)


# =============================================================================
# Entry Point
# =============================================================================


def run() -> None:
    """Run the CLI application."""
    app()


if __name__ == "__main__":
    run()
