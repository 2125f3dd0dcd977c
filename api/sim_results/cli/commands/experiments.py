"""
Experiment CLI Commands

Inspect and delete the experiments stored in a results database.
"""

from __future__ import annotations

from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from sim_results.cli.store import ConfigOption, DbPathOption, SchemaOption, open_engine
from sim_results.persistence.cascade import CascadeDeleter, CascadeOutcome
from sim_results.persistence.queries import experiments_frame, simulation_runs_frame

experiments_app = typer.Typer(help="Experiment inspection and deletion commands")
console = Console()


def _cell(value: object) -> str:
    return "" if value is None else str(value)


@experiments_app.command("list")
def experiments_list(
    db_path: DbPathOption = None,
    schema_name: SchemaOption = None,
    config_path: ConfigOption = None,
) -> None:
    """List stored experiments with their number of runs."""
    try:
        with open_engine(db_path, schema_name, config_path) as engine:
            with engine.connection() as conn:
                df = experiments_frame(conn, engine.schema_name)
    except Exception as e:
        console.print(f"[red]✗ Error listing experiments: {e}[/red]")
        raise typer.Exit(code=1)

    if df.is_empty():
        console.print("[yellow]No experiments found[/yellow]")
        return

    table = Table(title="Experiments")
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Experiment", style="cyan")
    table.add_column("Simulation")
    table.add_column("Model")
    table.add_column("Chunks", justify="right")
    table.add_column("Runs", justify="right", style="magenta")

    for row in df.iter_rows(named=True):
        table.add_row(
            str(row["exp_id"]),
            row["exp_name"],
            row["sim_name"],
            row["model_name"],
            str(row["num_chunks"]),
            str(row["num_runs"]),
        )

    console.print(table)
    console.print(f"\n[green]Total: {len(df)} experiment(s)[/green]")


@experiments_app.command("show")
def experiments_show(
    name: Annotated[str, typer.Argument(help="Experiment name")],
    db_path: DbPathOption = None,
    schema_name: SchemaOption = None,
    config_path: ConfigOption = None,
) -> None:
    """Show the runs of one experiment."""
    try:
        with open_engine(db_path, schema_name, config_path) as engine:
            with engine.connection() as conn:
                df = simulation_runs_frame(conn, name, engine.schema_name)
    except Exception as e:
        console.print(f"[red]✗ Error reading experiment: {e}[/red]")
        raise typer.Exit(code=1)

    if df.is_empty():
        console.print(f"[red]✗ No runs found for experiment '{name}'[/red]")
        raise typer.Exit(code=1)

    table = Table(title=f"Runs of {name}")
    table.add_column("Run ID", justify="right", style="dim")
    table.add_column("Run", style="cyan")
    table.add_column("Reps", justify="right")
    table.add_column("First", justify="right")
    table.add_column("Last", justify="right")
    table.add_column("Started")
    table.add_column("Ended")
    table.add_column("Error", style="red")

    for row in df.iter_rows(named=True):
        table.add_row(
            str(row["run_id"]),
            row["run_name"],
            str(row["num_reps"]),
            str(row["start_rep_id"]),
            _cell(row["last_rep_id"]),
            _cell(row["run_start_time_stamp"]),
            _cell(row["run_end_time_stamp"]),
            _cell(row["run_error_msg"]),
        )

    console.print(table)


@experiments_app.command("delete")
def experiments_delete(
    name: Annotated[str, typer.Argument(help="Experiment name")],
    db_path: DbPathOption = None,
    schema_name: SchemaOption = None,
    config_path: ConfigOption = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Do not ask for confirmation"),
    ] = False,
) -> None:
    """Delete an experiment and every result recorded for it."""
    if not yes:
        typer.confirm(f"Delete experiment '{name}' and all of its results?", abort=True)

    try:
        with open_engine(db_path, schema_name, config_path) as engine:
            deleter = CascadeDeleter(engine)
            outcome = deleter.delete_experiment(name)
    except Exception as e:
        console.print(f"[red]✗ Error deleting experiment: {e}[/red]")
        raise typer.Exit(code=1)

    if outcome is CascadeOutcome.NOT_FOUND:
        console.print(f"[yellow]No experiment named '{name}'[/yellow]")
        raise typer.Exit(code=1)
    if outcome is CascadeOutcome.FAILED:
        console.print(f"[red]✗ {deleter.last_failure}[/red]")
        raise typer.Exit(code=1)

    console.print(f"[green]✓ Deleted experiment '{name}'[/green]")
