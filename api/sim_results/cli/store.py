"""Opening the results store from command line options."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from sim_results.config import StoreConfig, load_config
from sim_results.persistence.engine import DuckDBEngine

DEFAULT_DB_PATH = "simulation_results.duckdb"

DbPathOption = Annotated[
    str | None,
    typer.Option("--db-path", "-d", help="Path to database file"),
]
SchemaOption = Annotated[
    str | None,
    typer.Option("--schema", "-s", help="Schema holding the results tables"),
]
ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="YAML store configuration file"),
]


def resolve_config(
    db_path: str | None = None,
    schema_name: str | None = None,
    config_path: Path | None = None,
) -> StoreConfig:
    """Store configuration from a config file, overridden by explicit options."""
    config = load_config(config_path) if config_path else StoreConfig(db_path=DEFAULT_DB_PATH)
    if config_path:
        config = config.model_copy(update={"db_path": config.resolved_db_path(config_path.parent)})
    overrides = {}
    if db_path:
        overrides["db_path"] = db_path
    if schema_name:
        overrides["schema_name"] = schema_name
    return StoreConfig.model_validate({**config.model_dump(), **overrides})


def open_engine(
    db_path: str | None = None,
    schema_name: str | None = None,
    config_path: Path | None = None,
) -> DuckDBEngine:
    config = resolve_config(db_path, schema_name, config_path)
    return DuckDBEngine(config.db_path, schema_name=config.schema_name)
