"""
Harvest commands: run, probe and key inspection.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from specharvest.core.config.models import TransportMode

if TYPE_CHECKING:
    from specharvest.core.config.models import AppConfig
    from specharvest.core.orchestrator.runner import RunReport

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="Run and diagnose harvests",
    no_args_is_help=True,
)


def _load_config(config_path: Optional[Path]) -> "AppConfig":
    from specharvest.cli.main import load_config_or_exit

    return load_config_or_exit(config_path)


def apply_overrides(config: "AppConfig", overrides: dict[str, Any]) -> "AppConfig":
    """Return a copy of the config with validated harvest overrides.

    Raises:
        ValidationError: If an override is out of range
    """
    from specharvest.core.config.models import HarvestConfig

    updates = {key: value for key, value in overrides.items() if value is not None}
    if not updates:
        return config

    harvest = HarvestConfig.model_validate({**config.harvest.model_dump(), **updates})
    return config.model_copy(update={"harvest": harvest})


@app.command("run")
def run_harvest_command(
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to app.yaml (default: configs/app.yaml)",
    ),
    max_brands: Optional[int] = typer.Option(
        None,
        "--max-brands",
        help="Maximum brands to process",
    ),
    phones_per_brand: Optional[int] = typer.Option(
        None,
        "--phones-per-brand",
        help="Maximum phones per brand",
    ),
    batch_size: Optional[int] = typer.Option(
        None,
        "--batch-size",
        "-b",
        help="Items per transport before alternating",
    ),
    delay_ms: Optional[int] = typer.Option(
        None,
        "--delay-ms",
        help="Minimum delay between direct requests",
    ),
    skip_existing: Optional[bool] = typer.Option(
        None,
        "--skip-existing/--no-skip-existing",
        help="Skip phones already marked complete",
    ),
    require_proxy: Optional[bool] = typer.Option(
        None,
        "--require-proxy",
        help="Fail if no proxy API key is configured",
    ),
) -> None:
    """Run one hybrid harvest.

    Examples:
        specharvest harvest run --max-brands 2 --phones-per-brand 20
        specharvest harvest run --batch-size 5 --no-skip-existing
    """
    from specharvest.core.config import ConfigurationError
    from specharvest.core.orchestrator.runner import run_harvest
    from specharvest.core.scheduler.locks import RunLockedError

    config = _load_config(config_path)

    try:
        config = apply_overrides(
            config,
            {
                "max_groups": max_brands,
                "max_items_per_group": phones_per_brand,
                "batch_size": batch_size,
                "direct_delay_ms": delay_ms,
                "skip_existing": skip_existing,
                "require_proxy": require_proxy,
            },
        )
    except ValidationError as e:
        err_console.print(f"[red]Invalid option:[/red] {e}")
        raise typer.Exit(2)

    harvest = config.harvest
    console.print()
    console.print(f"[bold]Starting harvest[/bold] [dim]({harvest.namespace})[/dim]")
    console.print(
        f"[dim]batch={harvest.batch_size}, delay={harvest.direct_delay_ms}ms, "
        f"keys={len(harvest.api_keys)}, skip_existing={harvest.skip_existing}[/dim]"
    )
    console.print()

    try:
        report = asyncio.run(run_harvest(config))
    except ConfigurationError as e:
        err_console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(2)
    except RunLockedError as e:
        err_console.print(f"[yellow]Another harvest is running:[/yellow] {e}")
        raise typer.Exit(1)

    console.print()
    show_report(report)

    if report.exit_code:
        raise typer.Exit(report.exit_code)


def show_report(report: "RunReport") -> None:
    """Print the terminal report."""
    stats = report.stats

    table = Table(title="Harvest Summary", show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Brands processed", str(stats.groups_processed))
    table.add_row("Brands failed", f"[red]{stats.groups_failed}[/red]" if stats.groups_failed else "0")
    table.add_row("Phones found", str(stats.items_found))
    table.add_row("Saved", f"[green]{stats.items_saved}[/green]")
    table.add_row("Skipped", str(stats.items_skipped))
    table.add_row("Failed", f"[red]{stats.items_failed}[/red]" if stats.items_failed else "0")
    table.add_section()
    table.add_row("Direct dispatches", str(report.dispatch_counts.get(TransportMode.DIRECT, 0)))
    table.add_row("Proxied dispatches", str(report.dispatch_counts.get(TransportMode.PROXIED, 0)))
    table.add_row("Final state", report.final_state.value)
    table.add_row(
        "Fallback",
        "[yellow]direct-only[/yellow]" if report.fallback_active else "no",
    )
    table.add_row("Keys usable", f"{report.keys_usable}/{report.keys_total}")
    if stats.duration_seconds is not None:
        table.add_row("Duration", f"{stats.duration_seconds:.1f}s")

    console.print(table)

    if report.aborted:
        console.print()
        err_console.print(f"[red]Run aborted:[/red] {report.error}")

    if stats.errors:
        console.print()
        console.print("[red]Errors:[/red]")
        for error in stats.errors[:5]:
            console.print(f"  • {error}")
        if len(stats.errors) > 5:
            console.print(f"  [dim]... and {len(stats.errors) - 5} more[/dim]")


async def _probe(config: "AppConfig", url: str, mode: TransportMode):
    from specharvest.core.fetch.keys import KeyPool
    from specharvest.core.fetch.throttling import RequestThrottle
    from specharvest.core.transports.direct import DirectTransport
    from specharvest.core.transports.proxied import ProxiedTransport

    if mode is TransportMode.DIRECT:
        transport = DirectTransport(
            RequestThrottle(config.harvest.direct_delay_ms),
            timeout=config.direct.timeout_seconds,
            max_attempts=config.direct.max_attempts,
            user_agent=config.direct.user_agent,
        )
    else:
        pool = KeyPool.initialize(config.harvest.api_keys, required=True)
        transport = ProxiedTransport(pool, config.proxy)

    async with transport:
        return await transport.fetch_url(url)


@app.command("probe")
def probe(
    url: str = typer.Argument(..., help="URL to fetch"),
    transport: TransportMode = typer.Option(
        TransportMode.DIRECT,
        "--transport",
        "-t",
        help="Transport to use",
        case_sensitive=False,
    ),
    parse: bool = typer.Option(
        False,
        "--parse",
        help="Parse the page as a specification page",
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c"),
) -> None:
    """Fetch a single URL through one transport.

    Examples:
        specharvest harvest probe https://www.gsmarena.com/makers.php3
        specharvest harvest probe https://www.gsmarena.com/apple_iphone_15-12559.php -t proxied --parse
    """
    from specharvest.core.catalog.specs import SpecParseError, parse_spec_page
    from specharvest.core.config import ConfigurationError
    from specharvest.core.transports.base import TransportError

    config = _load_config(config_path)

    try:
        result = asyncio.run(_probe(config, url, transport))
    except ConfigurationError as e:
        err_console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(2)
    except TransportError as e:
        err_console.print(f"[red]{type(e).__name__}:[/red] {e}")
        raise typer.Exit(1)

    console.print(f"[green]OK[/green] {result.status_code} via {result.transport.value}")
    console.print(f"[dim]{result.content_length} bytes in {result.elapsed_ms:.0f}ms[/dim]")
    if result.key:
        console.print(f"[dim]key: {result.key}[/dim]")

    if parse:
        try:
            raw = parse_spec_page(result.html, url=url)
        except SpecParseError as e:
            err_console.print(f"[red]Parse failed:[/red] {e}")
            raise typer.Exit(1)

        table = Table(title=raw["name"] or url, show_header=True, header_style="bold magenta")
        table.add_column("Category", style="cyan")
        table.add_column("Fields", justify="right")
        for category in raw["specification"]:
            table.add_row(category["category_title"], str(len(category["category_spec"])))
        console.print(table)


@app.command("keys")
def show_keys(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c"),
) -> None:
    """Show the configured proxy key pool (masked)."""
    from specharvest.core.fetch.keys import KeyPool

    config = _load_config(config_path)
    pool = KeyPool.initialize(config.harvest.api_keys)

    if not len(pool):
        console.print("[yellow]No proxy API keys configured; harvests run direct-only.[/yellow]")
        console.print("[dim]Set SCRAPINGBEE_API_KEYS=key1,key2 in the environment or .env[/dim]")
        return

    table = Table(title="Proxy Key Pool", show_header=True, header_style="bold magenta")
    table.add_column("#", justify="right")
    table.add_column("Key", style="cyan")
    table.add_column("State")

    for index, entry in enumerate(pool.snapshot(), start=1):
        state = "[red]exhausted[/red]" if entry["exhausted"] else "[green]usable[/green]"
        table.add_row(str(index), entry["key"], state)

    console.print(table)
    console.print(f"[dim]Batch size {config.harvest.batch_size}; keys rotate in the order shown.[/dim]")
