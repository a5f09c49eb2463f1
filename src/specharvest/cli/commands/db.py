"""
Database management commands.
"""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="Database operations",
    no_args_is_help=True,
)


@app.command("init")
def init_database(
    drop_existing: bool = typer.Option(
        False,
        "--drop",
        help="Drop existing tables before creating",
    ),
) -> None:
    """Initialize the database schema.

    Creates all tables. Use --drop to reset the database.
    """
    from specharvest.cli.main import load_config_or_exit
    from specharvest.persistence.db import drop_db, init_db

    config = load_config_or_exit()

    if drop_existing:
        if not typer.confirm("This will DELETE ALL DATA. Continue?", default=False):
            raise typer.Abort()

        console.print("[yellow]Dropping existing tables...[/yellow]")
        drop_db(config.database.url)

    console.print("Creating database schema...")
    init_db(config.database.url)

    console.print("[green]OK[/green] Database initialized")


@app.command("migrate")
def run_migrations(
    revision: str = typer.Option(
        "head",
        "--revision",
        "-r",
        help="Target revision (default: head)",
    ),
) -> None:
    """Upgrade the configured database with Alembic."""
    from alembic import command
    from alembic.config import Config
    from sqlalchemy.exc import SQLAlchemyError

    from specharvest.cli.main import load_config_or_exit

    config = load_config_or_exit()
    alembic_cfg = Config("alembic.ini")
    alembic_cfg.set_main_option("sqlalchemy.url", config.database.url)

    console.print(f"Migrating {config.database.url} to {revision}")

    try:
        command.upgrade(alembic_cfg, revision)
    except SQLAlchemyError as e:
        err_console.print(f"[red]Migration failed:[/red] {e}")
        raise typer.Exit(1)

    console.print("[green]OK[/green] Migrations complete")


@app.command("pending")
def show_pending(
    limit: int = typer.Option(
        25,
        "--limit",
        "-n",
        help="Number of records to show",
    ),
) -> None:
    """List phones touched but not yet complete."""
    from specharvest.cli.main import load_config_or_exit
    from specharvest.persistence.db import get_engine, get_session
    from specharvest.persistence.repo import CompletionRepository

    config = load_config_or_exit()
    get_engine(config.database.url)

    with get_session() as session:
        repo = CompletionRepository(session, config.harvest.namespace)
        records = repo.list_pending(limit=limit)
        counts = repo.counts()

        if not records:
            console.print("[green]No pending phones.[/green]")
            return

        table = Table(
            title=f"Pending phones ({counts['pending']} total)",
            show_header=True,
            header_style="bold magenta",
        )
        table.add_column("Phone ID", style="cyan")
        table.add_column("Brand")
        table.add_column("Name")
        table.add_column("Last Touched", justify="right")

        for record in records:
            table.add_row(
                record.item_id,
                record.group_name,
                record.name,
                record.updated_at.strftime("%Y-%m-%d %H:%M"),
            )

        console.print(table)
