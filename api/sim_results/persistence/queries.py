"""
Record and Analytical Queries

Typed reads of record models, plus reporting queries returning Polars
DataFrames for efficient data processing.
"""

from collections.abc import Iterable
from typing import Any, TypeVar

import duckdb
import polars as pl
from pydantic import BaseModel

from .descriptor import TableDescriptor, describe
from .errors import SchemaViolation
from .models import Experiment, SimulationRun, WithinRepCounterStat, WithinRepStat
from .statements import select_sql

RecordT = TypeVar("RecordT", bound=BaseModel)


def _descriptor(
    record_type: type[BaseModel], schema_name: str | None, filters: Iterable[str] = ()
) -> TableDescriptor:
    descriptor = describe(record_type)
    unknown = [name for name in filters if name not in descriptor.column_names]
    if unknown:
        raise SchemaViolation(f"{descriptor.table_name} has no column(s) {', '.join(unknown)} to filter on")
    return descriptor.in_schema(schema_name) if schema_name else descriptor


# ============================================================================
# Typed Record Reads
# ============================================================================


def select_records(
    conn: duckdb.DuckDBPyConnection,
    record_type: type[RecordT],
    schema_name: str | None = None,
    **filters: Any,
) -> list[RecordT]:
    """Select rows into record instances, filtered by column equality.

    Args:
        conn: DuckDB connection
        record_type: Record model to read
        schema_name: Schema holding the table
        **filters: Column name to value equality filters

    Returns:
        Records ordered by primary key

    Examples:
        >>> runs = select_records(conn, SimulationRun, exp_id_fk=1)
        >>> [r.run_name for r in runs]
        ['Run1', 'Run2']
    """
    descriptor = _descriptor(record_type, schema_name, filters)
    statement = select_sql(descriptor, where=tuple(filters))
    rows = conn.execute(statement.sql, [filters[name] for name in statement.parameters]).fetchall()
    return [record_type.model_validate(dict(zip(descriptor.column_names, row))) for row in rows]


def select_one(
    conn: duckdb.DuckDBPyConnection,
    record_type: type[RecordT],
    schema_name: str | None = None,
    **filters: Any,
) -> RecordT | None:
    """First matching record, or None."""
    records = select_records(conn, record_type, schema_name, **filters)
    return records[0] if records else None


def count_rows(
    conn: duckdb.DuckDBPyConnection,
    record_type: type[BaseModel],
    schema_name: str | None = None,
    **filters: Any,
) -> int:
    """Number of rows matching the column equality filters."""
    descriptor = _descriptor(record_type, schema_name, filters)
    sql = f"SELECT COUNT(*) FROM {descriptor.qualified_name}"
    if filters:
        sql += " WHERE " + " AND ".join(f"{name} = ?" for name in filters)
    return conn.execute(sql, list(filters.values())).fetchone()[0]


# ============================================================================
# DataFrame Reads
# ============================================================================


def table_frame(
    conn: duckdb.DuckDBPyConnection,
    record_type: type[BaseModel],
    schema_name: str | None = None,
    **filters: Any,
) -> pl.DataFrame:
    """Rows of a record table as a Polars DataFrame, one column per field."""
    descriptor = _descriptor(record_type, schema_name, filters)
    statement = select_sql(descriptor, where=tuple(filters))
    return conn.execute(statement.sql, [filters[name] for name in statement.parameters]).pl()


def experiments_frame(conn: duckdb.DuckDBPyConnection, schema_name: str | None = None) -> pl.DataFrame:
    """Experiments with their number of runs.

    Returns:
        Polars DataFrame with columns exp_id, exp_name, sim_name, model_name,
        num_chunks, num_runs
    """
    exp = _descriptor(Experiment, schema_name).qualified_name
    run = _descriptor(SimulationRun, schema_name).qualified_name
    query = f"""
        SELECT
            e.exp_id,
            e.exp_name,
            e.sim_name,
            e.model_name,
            e.num_chunks,
            COUNT(r.run_id) AS num_runs
        FROM {exp} e
        LEFT JOIN {run} r ON r.exp_id_fk = e.exp_id
        GROUP BY e.exp_id, e.exp_name, e.sim_name, e.model_name, e.num_chunks
        ORDER BY e.exp_id
    """
    return conn.execute(query).pl()


def within_rep_values(
    conn: duckdb.DuckDBPyConnection,
    exp_name: str,
    stat_name: str,
    schema_name: str | None = None,
) -> pl.DataFrame:
    """Per-replication values of a response or counter for one experiment.

    Response rows report the replication average, counter rows the final
    counter value, across every run (chunk) of the experiment.

    Returns:
        Polars DataFrame with columns run_name, rep_id, value, ordered by rep_id
    """
    exp = _descriptor(Experiment, schema_name).qualified_name
    run = _descriptor(SimulationRun, schema_name).qualified_name
    wrs = _descriptor(WithinRepStat, schema_name).qualified_name
    wrc = _descriptor(WithinRepCounterStat, schema_name).qualified_name
    query = f"""
        SELECT r.run_name, s.rep_id, s.average AS value
        FROM {exp} e
        JOIN {run} r ON r.exp_id_fk = e.exp_id
        JOIN {wrs} s ON s.sim_run_id_fk = r.run_id
        WHERE e.exp_name = ? AND s.stat_name = ?
        UNION ALL
        SELECT r.run_name, c.rep_id, c.last_value AS value
        FROM {exp} e
        JOIN {run} r ON r.exp_id_fk = e.exp_id
        JOIN {wrc} c ON c.sim_run_id_fk = r.run_id
        WHERE e.exp_name = ? AND c.stat_name = ?
        ORDER BY rep_id
    """
    return conn.execute(query, [exp_name, stat_name, exp_name, stat_name]).pl()


def simulation_runs_frame(
    conn: duckdb.DuckDBPyConnection, exp_name: str, schema_name: str | None = None
) -> pl.DataFrame:
    """Runs of one experiment, ordered by run id.

    Returns:
        Polars DataFrame with columns run_id, run_name, num_reps,
        start_rep_id, last_rep_id, run_start_time_stamp, run_end_time_stamp,
        run_error_msg
    """
    exp = _descriptor(Experiment, schema_name).qualified_name
    run = _descriptor(SimulationRun, schema_name).qualified_name
    query = f"""
        SELECT
            r.run_id,
            r.run_name,
            r.num_reps,
            r.start_rep_id,
            r.last_rep_id,
            r.run_start_time_stamp,
            r.run_end_time_stamp,
            r.run_error_msg
        FROM {run} r
        JOIN {exp} e ON r.exp_id_fk = e.exp_id
        WHERE e.exp_name = ?
        ORDER BY r.run_id
    """
    return conn.execute(query, [exp_name]).pl()
