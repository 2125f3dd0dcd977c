"""Simulation Results CLI - Main entry point."""

from typing import Annotated

import typer

app = typer.Typer(
    name="sim-results",
    help="Simulation Results - store and manage experiment results in DuckDB",
    add_completion=True,
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        from sim_results import __version__
        from sim_results.cli.commands.db import console

        console.print(f"[bold]Simulation Results[/bold] v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
) -> None:
    """Simulation Results CLI."""
    pass


# Import commands after app is defined to avoid circular imports
from sim_results.cli.commands.db import db_app
from sim_results.cli.commands.experiments import experiments_app

app.add_typer(db_app, name="db")
app.add_typer(experiments_app, name="experiments")


if __name__ == "__main__":
    app()
