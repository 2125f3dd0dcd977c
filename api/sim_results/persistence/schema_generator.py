"""
DDL Generation from Record Models

Generates the complete schema (sequences and tables) from the record models
and validates an existing database against them. This keeps the database
schema in sync with the model definitions.
"""

from typing import Any

from pydantic import BaseModel

from .descriptor import TableDescriptor, describe
from .models import ALL_RECORD_TYPES
from .statements import create_sequence_sql, create_table_sql


def schema_descriptors(schema_name: str | None = None) -> list[TableDescriptor]:
    """Descriptors of every record type, parents first, bound to ``schema_name``."""
    descriptors = [describe(record_type) for record_type in ALL_RECORD_TYPES]
    if schema_name:
        descriptors = [d.in_schema(schema_name) for d in descriptors]
    return descriptors


def generate_full_schema_ddl(schema_name: str | None = None) -> str:
    """Generate complete schema DDL for all record models.

    Args:
        schema_name: Optional schema to create the tables in

    Returns:
        SQL DDL: schema, sequences for auto-increment keys, then tables

    Examples:
        >>> ddl = generate_full_schema_ddl()
        >>> "CREATE TABLE IF NOT EXISTS experiment" in ddl
        True
        >>> "CREATE SEQUENCE IF NOT EXISTS simulation_run_run_id_seq" in ddl
        True
    """
    ddl_parts = []

    if schema_name:
        ddl_parts.append(f"CREATE SCHEMA IF NOT EXISTS {schema_name};")

    descriptors = schema_descriptors(schema_name)

    # Sequences must exist before the tables that default to them
    for descriptor in descriptors:
        sequence = create_sequence_sql(descriptor)
        if sequence:
            ddl_parts.append(sequence + ";")

    for descriptor in descriptors:
        ddl_parts.append(create_table_sql(descriptor))

    return "\n\n".join(ddl_parts)


def split_statements(script: str) -> list[str]:
    """Split a SQL script on semicolons, dropping blanks and ``--`` comment lines."""
    lines = [line for line in script.splitlines() if not line.strip().startswith("--")]
    return [s.strip() for s in "\n".join(lines).split(";") if s.strip()]


# ============================================================================
# Schema Validation
# ============================================================================


def validate_table_schema(
    conn: Any, model: type[BaseModel], schema_name: str | None = None
) -> tuple[bool, list[str]]:
    """Validate that a database table matches its record model.

    Args:
        conn: DuckDB connection
        model: Record model to validate against
        schema_name: Schema holding the table (defaults to the model's own)

    Returns:
        Tuple of (is_valid, list of error messages)
    """
    descriptor = describe(model)
    if schema_name:
        descriptor = descriptor.in_schema(schema_name)

    table_name = descriptor.table_name
    errors = []

    rows = conn.execute(
        """
        SELECT column_name FROM information_schema.columns
        WHERE table_name = ? AND table_schema = ?
        """,
        [table_name, descriptor.schema_name or "main"],
    ).fetchall()
    if not rows:
        return False, [f"Table {descriptor.qualified_name} does not exist"]

    db_fields = {row[0] for row in rows}
    model_fields = set(descriptor.column_names)

    missing_columns = model_fields - db_fields
    for col in sorted(missing_columns):
        errors.append(f"Column '{col}' missing from table {table_name}")

    extra_columns = db_fields - model_fields
    if extra_columns:
        errors.append(f"Unexpected columns in {table_name}: {sorted(extra_columns)}")

    return len(errors) == 0, errors
