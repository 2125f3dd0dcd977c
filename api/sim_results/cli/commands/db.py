"""
Database Management CLI Commands

Commands for managing the results database:
- init: Initialize database schema
- tables: List the results tables with their row counts
- validate: Validate schema against the record models
- clear: Delete every row of every results table
"""

from __future__ import annotations

from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from sim_results.cli.store import ConfigOption, DbPathOption, SchemaOption, open_engine
from sim_results.persistence.models import ALL_RECORD_TYPES
from sim_results.persistence.queries import count_rows
from sim_results.persistence.registry import ExperimentRegistry

# Create sub-app for database commands
db_app = typer.Typer(help="Database management commands")
console = Console()


@db_app.command("init")
def db_init(
    db_path: DbPathOption = None,
    schema_name: SchemaOption = None,
    config_path: ConfigOption = None,
    force: Annotated[
        bool,
        typer.Option("--force", help="Drop and recreate existing tables"),
    ] = False,
) -> None:
    """Initialize the results schema from the record models."""
    try:
        with open_engine(db_path, schema_name, config_path) as engine:
            console.print(f"[yellow]Initializing database at {engine.label}...[/yellow]")
            engine.initialize_schema(force_recreate=force)

        console.print(f"[green]✓ Database initialized at {engine.label}[/green]")

    except Exception as e:
        console.print(f"[red]✗ Error initializing database: {e}[/red]")
        raise typer.Exit(code=1)


@db_app.command("tables")
def db_tables(
    db_path: DbPathOption = None,
    schema_name: SchemaOption = None,
    config_path: ConfigOption = None,
) -> None:
    """List the results tables and their row counts."""
    try:
        with open_engine(db_path, schema_name, config_path) as engine:
            existing = set(engine.table_names())
            missing = engine.missing_tables()

            table = Table(title="Results Tables")
            table.add_column("Table Name", style="cyan")
            table.add_column("Rows", justify="right", style="magenta")

            with engine.connection() as conn:
                for record_type in ALL_RECORD_TYPES:
                    name = record_type.descriptor().table_name
                    if name in existing:
                        count = count_rows(conn, record_type, engine.schema_name)
                        table.add_row(name, f"{count:,}")
                    else:
                        table.add_row(name, "[dim]missing[/dim]")

        console.print(table)

        if missing:
            console.print(f"[yellow]{len(missing)} table(s) missing; run 'sim-results db init'[/yellow]")

    except Exception as e:
        console.print(f"[red]✗ Error listing tables: {e}[/red]")
        raise typer.Exit(code=1)


@db_app.command("validate")
def db_validate(
    db_path: DbPathOption = None,
    schema_name: SchemaOption = None,
    config_path: ConfigOption = None,
) -> None:
    """Validate database schema against the record models."""
    try:
        console.print("[yellow]Validating database schema...[/yellow]")

        with open_engine(db_path, schema_name, config_path) as engine:
            is_valid = engine.validate_schema()

    except Exception as e:
        console.print(f"[red]✗ Error validating schema: {e}[/red]")
        raise typer.Exit(code=1)

    if not is_valid:
        console.print("[red]✗ Schema validation failed[/red]")
        console.print("[yellow]Run 'sim-results db init --force' to recreate the schema[/yellow]")
        raise typer.Exit(code=1)

    console.print("[green]✓ Schema validation passed[/green]")


@db_app.command("clear")
def db_clear(
    db_path: DbPathOption = None,
    schema_name: SchemaOption = None,
    config_path: ConfigOption = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Do not ask for confirmation"),
    ] = False,
) -> None:
    """Delete every row of every results table."""
    if not yes:
        typer.confirm("Delete all simulation results?", abort=True)

    try:
        with open_engine(db_path, schema_name, config_path) as engine:
            cleared = ExperimentRegistry(engine).clear_all_data()

    except Exception as e:
        console.print(f"[red]✗ Error clearing database: {e}[/red]")
        raise typer.Exit(code=1)

    if not cleared:
        console.print("[red]✗ Some tables could not be cleared[/red]")
        raise typer.Exit(code=1)

    console.print("[green]✓ All simulation results deleted[/green]")
