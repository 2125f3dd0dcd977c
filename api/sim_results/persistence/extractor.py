"""
Value Extraction

Produces ordered value lists from record instances for the placeholders of
generated statements:

- ``full_row``: every column, in descriptor order
- ``insert_row``: ``full_row`` without an auto-increment key
- ``update_row``: non-key columns followed by the key fields (SET, then WHERE)
- ``key_row``: key fields only, in declared order

All four use the same column tuples as ``statements``, so the order of
values always matches the order of placeholders.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from typing import Any

from pydantic import BaseModel

from .descriptor import TableDescriptor, describe
from .errors import SchemaViolation
from .statements import Statement


def _descriptor_of(record: BaseModel, descriptor: TableDescriptor | None) -> TableDescriptor:
    if descriptor is not None:
        return descriptor
    return describe(type(record))


def read_values(record: BaseModel, columns: Iterable[str]) -> list[Any]:
    """Read ``columns`` from ``record`` in order.

    Enum members are stored as their value.

    Raises:
        SchemaViolation: If a column cannot be read from the record
    """
    values = []
    for name in columns:
        try:
            value = getattr(record, name)
        except AttributeError as e:
            raise SchemaViolation(
                f"Cannot read column '{name}' from {type(record).__name__}"
            ) from e
        if isinstance(value, Enum):
            value = value.value
        values.append(value)
    return values


def full_row(record: BaseModel, descriptor: TableDescriptor | None = None) -> list[Any]:
    return read_values(record, _descriptor_of(record, descriptor).column_names)


def insert_row(record: BaseModel, descriptor: TableDescriptor | None = None) -> list[Any]:
    return read_values(record, _descriptor_of(record, descriptor).insert_columns)


def update_row(record: BaseModel, descriptor: TableDescriptor | None = None) -> list[Any]:
    d = _descriptor_of(record, descriptor)
    return read_values(record, d.update_columns + d.key_fields)


def key_row(record: BaseModel, descriptor: TableDescriptor | None = None) -> list[Any]:
    return read_values(record, _descriptor_of(record, descriptor).key_fields)


def bind(statement: Statement, record: BaseModel) -> list[Any]:
    """Values of ``record`` for the placeholders of ``statement``."""
    return read_values(record, statement.parameters)


def assign_generated_key(record: BaseModel, value: Any, descriptor: TableDescriptor | None = None) -> None:
    """Store a store-assigned auto-increment key on the record."""
    d = _descriptor_of(record, descriptor)
    if d.auto_increment_key is None:
        raise SchemaViolation(f"{d.table_name} has no auto-increment key to assign")
    setattr(record, d.auto_increment_key, value)
