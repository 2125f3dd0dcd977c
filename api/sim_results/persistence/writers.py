"""
Record Write Functions

Insert and update operations for record models, built from the generated
statements and the value extractor.
"""

from collections.abc import Sequence

import duckdb
from pydantic import BaseModel

from .descriptor import TableDescriptor, describe
from .extractor import assign_generated_key, bind
from .statements import insert_sql, update_sql


def insert_record(
    conn: duckdb.DuckDBPyConnection,
    record: BaseModel,
    descriptor: TableDescriptor | None = None,
) -> BaseModel:
    """Insert one record.

    For an auto-increment table the key assigned by the database is written
    back to ``record``.

    Args:
        conn: DuckDB connection
        record: Record to insert
        descriptor: Descriptor to use (default: the record type's own)

    Returns:
        The same record, with its generated key set

    Examples:
        >>> exp = Experiment(sim_name="Sim", model_name="M", exp_name="Exp1")
        >>> insert_record(conn, exp).exp_id
        1
    """
    descriptor = descriptor or describe(type(record))
    statement = insert_sql(descriptor, returning_key=True)
    result = conn.execute(statement.sql, bind(statement, record))
    if descriptor.auto_increment:
        row = result.fetchone()
        assign_generated_key(record, row[0], descriptor)
    return record


def insert_records(
    conn: duckdb.DuckDBPyConnection,
    records: Sequence[BaseModel],
    descriptor: TableDescriptor | None = None,
) -> int:
    """Insert a batch of records of one type.

    Generated keys are not read back.

    Returns:
        Number of records written
    """
    if not records:
        return 0

    descriptor = descriptor or describe(type(records[0]))
    statement = insert_sql(descriptor)
    conn.executemany(statement.sql, [bind(statement, record) for record in records])

    return len(records)


def update_record(
    conn: duckdb.DuckDBPyConnection,
    record: BaseModel,
    descriptor: TableDescriptor | None = None,
) -> None:
    """Update every non-key column of the row matching the record's key."""
    descriptor = descriptor or describe(type(record))
    statement = update_sql(descriptor)
    conn.execute(statement.sql, bind(statement, record))
