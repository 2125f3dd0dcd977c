"""
SQL Statement Synthesis

Generates CREATE TABLE, INSERT, UPDATE, SELECT and DELETE statements from
table descriptors.

Each DML statement is returned as a ``Statement`` carrying the ordered names
of the columns bound to its ``?`` placeholders. Values are always bound by
reading those names from a record (see ``extractor.bind``), so a statement's
placeholders and its values cannot drift apart.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .descriptor import SemanticType, TableDescriptor


# ============================================================================
# Type Mapping
# ============================================================================

SEMANTIC_TO_SQL_TYPE_MAP: dict[SemanticType, str] = {
    SemanticType.DOUBLE: "DOUBLE",
    SemanticType.INT32: "INTEGER",
    SemanticType.INT64: "BIGINT",
    SemanticType.BOOLEAN: "BOOLEAN",
    SemanticType.FLOAT32: "REAL",
    SemanticType.INT16: "SMALLINT",
    SemanticType.INT8: "SMALLINT",
    SemanticType.TIMESTAMP: "TIMESTAMP",
}

DEFAULT_VARCHAR_LENGTH = 512


def sql_type_for(semantic_type: SemanticType, varchar_length: int = DEFAULT_VARCHAR_LENGTH) -> str:
    """Map a semantic type to its SQL type token.

    Examples:
        >>> sql_type_for(SemanticType.INT64)
        'BIGINT'
        >>> sql_type_for(SemanticType.STRING)
        'VARCHAR(512)'
    """
    return SEMANTIC_TO_SQL_TYPE_MAP.get(semantic_type, f"VARCHAR({varchar_length})")


# ============================================================================
# Statements
# ============================================================================


@dataclass(frozen=True)
class Statement:
    """SQL text together with the columns bound to its placeholders, in order."""

    sql: str
    parameters: tuple[str, ...] = ()

    @property
    def placeholder_count(self) -> int:
        return self.sql.count("?")


def create_sequence_sql(descriptor: TableDescriptor) -> str | None:
    """CREATE SEQUENCE for the auto-increment key, or None if there is none."""
    if descriptor.sequence_name is None:
        return None
    return f"CREATE SEQUENCE IF NOT EXISTS {descriptor.sequence_name} START 1"


def create_table_sql(descriptor: TableDescriptor, if_not_exists: bool = True) -> str:
    """Generate CREATE TABLE DDL for a descriptor.

    The auto-increment key is fed from the sequence returned by
    ``create_sequence_sql``, which must be created first.

    Examples:
        >>> from sim_results.persistence.models import WithinRepCounterStat
        >>> print(create_table_sql(WithinRepCounterStat.descriptor()))
        CREATE TABLE IF NOT EXISTS within_rep_counter_stat (
            id INTEGER DEFAULT nextval('within_rep_counter_stat_id_seq'),
            element_id_fk INTEGER NOT NULL,
            sim_run_id_fk INTEGER NOT NULL,
            rep_id INTEGER NOT NULL,
            stat_name VARCHAR(512) NOT NULL,
            last_value DOUBLE,
            PRIMARY KEY (id)
        );
    """
    auto_key = descriptor.auto_increment_key
    clauses = []
    for column in descriptor.columns:
        clause = f"    {column.name} {sql_type_for(column.semantic_type)}"
        if column.name == auto_key:
            clause += f" DEFAULT nextval('{descriptor.sequence_name}')"
        if not column.nullable:
            clause += " NOT NULL"
        clauses.append(clause)

    clauses.append(f"    PRIMARY KEY ({', '.join(descriptor.key_fields)})")

    exists = "IF NOT EXISTS " if if_not_exists else ""
    ddl = f"CREATE TABLE {exists}{descriptor.qualified_name} (\n"
    ddl += ",\n".join(clauses)
    ddl += "\n);"
    return ddl


def insert_sql(descriptor: TableDescriptor, returning_key: bool = False) -> Statement:
    """INSERT of every column except an auto-increment key.

    Args:
        descriptor: Table descriptor
        returning_key: Append ``RETURNING <key>`` for an auto-increment table

    Examples:
        >>> from sim_results.persistence.models import ModelElement
        >>> insert_sql(ModelElement.descriptor()).sql
        'INSERT INTO model_element (exp_id_fk, element_id, element_name, class_name, parent_id_fk, parent_name, left_count, right_count) VALUES (?, ?, ?, ?, ?, ?, ?, ?)'
    """
    columns = descriptor.insert_columns
    placeholders = ", ".join("?" for _ in columns)
    sql = f"INSERT INTO {descriptor.qualified_name} ({', '.join(columns)}) VALUES ({placeholders})"
    if returning_key and descriptor.auto_increment:
        sql += f" RETURNING {descriptor.auto_increment_key}"
    return Statement(sql, columns)


def update_sql(descriptor: TableDescriptor) -> Statement:
    """UPDATE of every non-key column, matched on all key fields.

    The SET placeholders come first, followed by one WHERE placeholder per
    key field in declared order.

    Examples:
        >>> from sim_results.persistence.models import ModelElement
        >>> stmt = update_sql(ModelElement.descriptor())
        >>> stmt.sql.endswith("WHERE exp_id_fk = ? AND element_id = ?")
        True
        >>> stmt.parameters[-2:]
        ('exp_id_fk', 'element_id')
    """
    set_columns = descriptor.update_columns
    assignments = ", ".join(f"{name} = ?" for name in set_columns)
    conditions = " AND ".join(f"{name} = ?" for name in descriptor.key_fields)
    sql = f"UPDATE {descriptor.qualified_name} SET {assignments} WHERE {conditions}"
    return Statement(sql, set_columns + descriptor.key_fields)


def select_sql(descriptor: TableDescriptor, where: Sequence[str] = ()) -> Statement:
    """SELECT of all columns, optionally filtered by equality on ``where`` columns."""
    sql = f"SELECT {', '.join(descriptor.column_names)} FROM {descriptor.qualified_name}"
    if where:
        sql += " WHERE " + " AND ".join(f"{name} = ?" for name in where)
    order = ", ".join(descriptor.key_fields)
    sql += f" ORDER BY {order}"
    return Statement(sql, tuple(where))


def delete_where_sql(descriptor: TableDescriptor, where: Sequence[str]) -> Statement:
    """DELETE rows matching equality on every ``where`` column.

    Examples:
        >>> from sim_results.persistence.models import Histogram
        >>> delete_where_sql(Histogram.descriptor(), ["sim_run_id_fk"]).sql
        'DELETE FROM histogram WHERE sim_run_id_fk = ?'
    """
    if not where:
        raise ValueError("delete_where_sql requires at least one condition column")
    conditions = " AND ".join(f"{name} = ?" for name in where)
    return Statement(f"DELETE FROM {descriptor.qualified_name} WHERE {conditions}", tuple(where))


def delete_all_sql(table_name: str, schema_name: str | None = None) -> str:
    """DELETE every row of a table."""
    qualified = f"{schema_name}.{table_name}" if schema_name else table_name
    return f"DELETE FROM {qualified}"
