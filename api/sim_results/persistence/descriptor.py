"""
Schema Descriptors

Derives a table description from a record model: ordered columns with their
semantic types and nullability, the primary key fields, and whether the key
is a single auto-increment column.

Record models declare their table mapping once, in ``model_config``:

    class Experiment(TableRecord):
        model_config = ConfigDict(
            table_name="experiment",
            primary_key=["exp_id"],
            auto_increment=True,
        )

Every statement and value list in the persistence layer is derived from the
descriptor, so the column order used by SQL and by value extraction is the
same by construction.
"""

from __future__ import annotations

import inspect
import types
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from functools import lru_cache
from typing import Annotated, Any, Union, get_args, get_origin

from pydantic import BaseModel
from pydantic.fields import FieldInfo

from .errors import SchemaViolation


# ============================================================================
# Semantic Types
# ============================================================================


class SemanticType(str, Enum):
    """Storage-neutral column type."""

    DOUBLE = "double"
    INT64 = "int64"
    INT32 = "int32"
    BOOLEAN = "boolean"
    FLOAT32 = "float32"
    INT16 = "int16"
    INT8 = "int8"
    STRING = "string"
    TIMESTAMP = "timestamp"


PYTHON_TO_SEMANTIC_TYPE_MAP: dict[Any, SemanticType] = {
    float: SemanticType.DOUBLE,
    int: SemanticType.INT32,
    bool: SemanticType.BOOLEAN,
    str: SemanticType.STRING,
    datetime: SemanticType.TIMESTAMP,
}


def semantic_type_for(py_type: Any, metadata: list[Any] | tuple[Any, ...] = ()) -> SemanticType:
    """Resolve the semantic type of a field annotation.

    An explicit ``SemanticType`` in the field metadata wins, e.g.
    ``Annotated[int, SemanticType.INT64]``. Otherwise the (non-None) Python
    type is mapped; enums and unrecognised types are stored as strings.

    Examples:
        >>> semantic_type_for(float)
        <SemanticType.DOUBLE: 'double'>
        >>> semantic_type_for(int | None)
        <SemanticType.INT32: 'int32'>
        >>> semantic_type_for(int, [SemanticType.INT64])
        <SemanticType.INT64: 'int64'>
    """
    for item in metadata:
        if isinstance(item, SemanticType):
            return item

    py_type = _strip_optional(py_type)

    if get_origin(py_type) is Annotated:
        py_type, *extra = get_args(py_type)
        return semantic_type_for(py_type, extra)

    if inspect.isclass(py_type) and issubclass(py_type, Enum):
        return SemanticType.STRING

    return PYTHON_TO_SEMANTIC_TYPE_MAP.get(py_type, SemanticType.STRING)


def is_nullable(py_type: Any) -> bool:
    """True if the annotation admits None (``X | None`` or ``Optional[X]``)."""
    origin = get_origin(py_type)
    if origin is Union or origin is types.UnionType:
        return type(None) in get_args(py_type)
    return py_type is type(None)


def _strip_optional(py_type: Any) -> Any:
    origin = get_origin(py_type)
    if origin is Union or origin is types.UnionType:
        for arg in get_args(py_type):
            if arg is not type(None):
                return arg
    return py_type


# ============================================================================
# Descriptor
# ============================================================================


@dataclass(frozen=True)
class Column:
    """A single persisted column."""

    name: str
    semantic_type: SemanticType
    nullable: bool


@dataclass(frozen=True)
class TableDescriptor:
    """Table mapping for one record type.

    Attributes:
        record_type: The pydantic model class being mapped
        table_name: Unqualified table name
        columns: Persisted columns in declaration order
        key_fields: Primary key column names in declaration order
        auto_increment: True if the single key column is assigned by the store
        schema_name: Optional schema qualifier
    """

    record_type: type[BaseModel]
    table_name: str
    columns: tuple[Column, ...]
    key_fields: tuple[str, ...]
    auto_increment: bool
    schema_name: str | None = None

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(column.name for column in self.columns)

    @property
    def qualified_name(self) -> str:
        """Table name prefixed with ``schema.`` when a schema is set."""
        if self.schema_name:
            return f"{self.schema_name}.{self.table_name}"
        return self.table_name

    @property
    def auto_increment_key(self) -> str | None:
        return self.key_fields[0] if self.auto_increment else None

    @property
    def insert_columns(self) -> tuple[str, ...]:
        """Columns written by INSERT: everything except an auto-increment key."""
        key = self.auto_increment_key
        return tuple(name for name in self.column_names if name != key)

    @property
    def update_columns(self) -> tuple[str, ...]:
        """Columns written by UPDATE ... SET: everything except the key fields."""
        return tuple(name for name in self.column_names if name not in self.key_fields)

    @property
    def sequence_name(self) -> str | None:
        """Name of the sequence feeding the auto-increment key, if any."""
        key = self.auto_increment_key
        if key is None:
            return None
        name = f"{self.table_name}_{key}_seq"
        return f"{self.schema_name}.{name}" if self.schema_name else name

    def column(self, name: str) -> Column:
        for column in self.columns:
            if column.name == name:
                return column
        raise KeyError(f"{self.table_name} has no column '{name}'")

    def in_schema(self, schema_name: str | None) -> TableDescriptor:
        """Return a copy of this descriptor bound to ``schema_name``."""
        return replace(self, schema_name=schema_name or None)


def is_persistable(field_info: FieldInfo) -> bool:
    """Only settable, non-constant fields are columns.

    A field declared with ``exclude=True`` is never persisted, and a field
    declared ``frozen=True`` is treated as a constant.
    """
    return not field_info.exclude and not field_info.frozen


def build_descriptor(record_type: type[BaseModel]) -> TableDescriptor:
    """Build (without caching) the descriptor for ``record_type``.

    Raises:
        SchemaViolation: If the table mapping is missing or inconsistent
    """
    if not (inspect.isclass(record_type) and issubclass(record_type, BaseModel)):
        raise SchemaViolation(f"{record_type!r} is not a pydantic record model")

    name = record_type.__name__
    config = record_type.model_config

    table_name = config.get("table_name")
    if not table_name:
        raise SchemaViolation(f"Model {name} missing model_config['table_name']")

    columns = tuple(
        Column(
            name=field_name,
            semantic_type=semantic_type_for(field_info.annotation, field_info.metadata),
            nullable=is_nullable(field_info.annotation),
        )
        for field_name, field_info in record_type.model_fields.items()
        if is_persistable(field_info)
    )
    column_names = [column.name for column in columns]

    key_fields = tuple(config.get("primary_key") or ())
    auto_increment = bool(config.get("auto_increment", False))

    if not key_fields:
        raise SchemaViolation(f"Model {name} must declare at least one primary key field")
    if auto_increment and len(key_fields) != 1:
        raise SchemaViolation(
            f"Model {name} declares an auto-increment key but has "
            f"{len(key_fields)} key fields; exactly one is required"
        )
    missing = [key for key in key_fields if key not in column_names]
    if missing:
        raise SchemaViolation(f"Model {name} key fields are not persisted columns: {missing}")
    declared_order = tuple(c for c in column_names if c in key_fields)
    if declared_order != key_fields:
        raise SchemaViolation(
            f"Model {name} primary_key {list(key_fields)} must follow field "
            f"declaration order {list(declared_order)}"
        )

    return TableDescriptor(
        record_type=record_type,
        table_name=table_name,
        columns=columns,
        key_fields=key_fields,
        auto_increment=auto_increment,
        schema_name=config.get("schema_name"),
    )


@lru_cache(maxsize=None)
def describe(record_type: type[BaseModel]) -> TableDescriptor:
    """Return the (cached) descriptor for ``record_type``.

    Examples:
        >>> from sim_results.persistence.models import SimulationRun
        >>> d = describe(SimulationRun)
        >>> d.table_name, d.key_fields, d.auto_increment
        ('simulation_run', ('run_id',), True)
        >>> d.insert_columns[0]
        'exp_id_fk'
    """
    return build_descriptor(record_type)
