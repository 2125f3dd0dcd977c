"""
Relational Engine Adapter

Defines the interface the registry and the cascade orchestrator need from a
database, and its DuckDB implementation.

Connections are scoped: ``connection()`` hands out a cursor on the shared
database instance and closes it when the ``with`` block exits, on every path.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from pathlib import Path
from typing import Protocol, runtime_checkable

import duckdb
from pydantic import BaseModel

from .descriptor import TableDescriptor, describe
from .errors import NotConfiguredError
from .models import ALL_RECORD_TYPES, TABLE_NAMES
from .schema_generator import (
    generate_full_schema_ddl,
    schema_descriptors,
    split_statements,
    validate_table_schema,
)
from .statements import delete_all_sql

logger = logging.getLogger(__name__)


@runtime_checkable
class RelationalEngine(Protocol):
    """What the persistence core needs from a relational database.

    Attributes:
        label: Human readable name used in log messages
        schema_name: Schema holding the results tables, or None for the default
    """

    label: str
    schema_name: str | None

    def connection(self) -> AbstractContextManager[duckdb.DuckDBPyConnection]:
        """Acquire a connection, released when the context exits."""
        ...

    def execute_script(self, path: str | Path) -> bool:
        """Execute a SQL script. Returns False if any statement failed."""
        ...

    def table_names(self, schema: str | None = None) -> list[str]:
        """Names of the base tables in ``schema``."""
        ...

    def delete_all_from(self, table: str, schema: str | None = None) -> bool:
        """Delete every row of ``table``. Returns False on failure."""
        ...


class DuckDBEngine:
    """DuckDB database holding simulation results.

    Responsibilities:
    - Own the DuckDB database instance and hand out scoped connections
    - Initialize the schema from the record models
    - Validate the schema against the models
    - Provide context manager for clean resource management

    Usage:
        with DuckDBEngine("results.duckdb") as engine:
            engine.initialize_schema()
            with engine.connection() as conn:
                conn.execute("SELECT COUNT(*) FROM experiment")

    In-memory databases (``":memory:"``) are supported: every connection
    handed out shares the same in-memory instance.
    """

    def __init__(
        self,
        db_path: str | Path = ":memory:",
        schema_name: str | None = None,
        label: str | None = None,
    ):
        """Initialize the engine.

        Args:
            db_path: Path to the DuckDB database file, or ``":memory:"``
            schema_name: Schema for the results tables (default: ``main``)
            label: Name used in log messages (default: the path)
        """
        self.db_path = db_path if db_path == ":memory:" else Path(db_path)
        self.schema_name = schema_name or None
        self.label = label or str(db_path)
        self.conn = duckdb.connect(str(self.db_path))

    @contextmanager
    def connection(self) -> Iterator[duckdb.DuckDBPyConnection]:
        """Acquire a connection for the duration of a ``with`` block.

        Examples:
            >>> with engine.connection() as conn:
            ...     conn.execute("SELECT 1").fetchone()
            (1,)
        """
        conn = self.conn.cursor()
        try:
            yield conn
        finally:
            conn.close()

    def descriptor(self, record_type: type[BaseModel]) -> TableDescriptor:
        """Descriptor of ``record_type`` bound to this engine's schema."""
        descriptor = describe(record_type)
        if self.schema_name:
            descriptor = descriptor.in_schema(self.schema_name)
        return descriptor

    # ------------------------------------------------------------------
    # Collaborator interface
    # ------------------------------------------------------------------

    def execute_script(self, path: str | Path) -> bool:
        """Execute each statement of a SQL script file.

        DuckDB has no executescript, so the script is split on semicolons.

        Returns:
            True if every statement executed, False otherwise
        """
        path = Path(path)
        try:
            script = path.read_text()
        except OSError as e:
            logger.warning("Database %s: could not read script %s: %s", self.label, path, e)
            return False

        with self.connection() as conn:
            try:
                for statement in split_statements(script):
                    conn.execute(statement)
            except duckdb.Error as e:
                logger.warning("Database %s: script %s failed: %s", self.label, path, e)
                return False

        logger.info("Database %s: executed script %s", self.label, path)
        return True

    def table_names(self, schema: str | None = None) -> list[str]:
        schema = schema or self.schema_name or "main"
        with self.connection() as conn:
            rows = conn.execute(
                """
                SELECT table_name FROM information_schema.tables
                WHERE table_schema = ? AND table_type = 'BASE TABLE'
                ORDER BY table_name
                """,
                [schema],
            ).fetchall()
        return [row[0] for row in rows]

    def delete_all_from(self, table: str, schema: str | None = None) -> bool:
        schema = schema or self.schema_name
        with self.connection() as conn:
            try:
                conn.execute(delete_all_sql(table, schema))
            except duckdb.Error as e:
                logger.warning("Database %s: could not delete rows from %s: %s", self.label, table, e)
                return False
        logger.debug("Database %s: deleted all rows from %s", self.label, table)
        return True

    # ------------------------------------------------------------------
    # Schema management
    # ------------------------------------------------------------------

    def initialize_schema(self, force_recreate: bool = False) -> None:
        """Initialize the results schema from the record models.

        Uses CREATE ... IF NOT EXISTS, so it is safe to run multiple times.

        Args:
            force_recreate: If True, drop existing tables before recreating them
        """
        logger.info("Database %s: initializing schema", self.label)

        if self.schema_name:
            with self.connection() as conn:
                conn.execute(f"CREATE SCHEMA IF NOT EXISTS {self.schema_name}")

        if force_recreate:
            self._drop_all_tables()

        ddl = generate_full_schema_ddl(self.schema_name)
        with self.connection() as conn:
            for statement in split_statements(ddl):
                conn.execute(statement)

        logger.info("Database %s: schema initialized", self.label)

    def is_initialized(self) -> bool:
        """True if every results table exists."""
        return not self.missing_tables()

    def missing_tables(self) -> list[str]:
        return missing_tables(self)

    def validate_schema(self) -> bool:
        """Validate that every results table matches its record model.

        Returns:
            True if all tables valid, False if any mismatches found
        """
        all_valid = True
        with self.connection() as conn:
            for model in ALL_RECORD_TYPES:
                is_valid, errors = validate_table_schema(conn, model, self.schema_name)
                if not is_valid:
                    all_valid = False
                    for error in errors:
                        logger.error("Database %s: %s", self.label, error)
        return all_valid

    def _drop_all_tables(self) -> None:
        """Drop the results tables (children first) and their sequences."""
        descriptors = schema_descriptors(self.schema_name)
        with self.connection() as conn:
            for descriptor in reversed(descriptors):
                conn.execute(f"DROP TABLE IF EXISTS {descriptor.qualified_name}")
            for descriptor in descriptors:
                if descriptor.sequence_name:
                    conn.execute(f"DROP SEQUENCE IF EXISTS {descriptor.sequence_name}")

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> DuckDBEngine:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def missing_tables(engine: RelationalEngine) -> list[str]:
    """Results tables absent from the engine's schema."""
    existing = {name.lower() for name in engine.table_names(engine.schema_name)}
    return [name for name in TABLE_NAMES if name not in existing]


def require_configured(engine: RelationalEngine) -> None:
    """Raise NotConfiguredError if any results table is missing."""
    missing = missing_tables(engine)
    if missing:
        raise NotConfiguredError(missing, engine.label)
