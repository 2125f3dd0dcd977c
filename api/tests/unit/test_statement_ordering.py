"""
Statement and Value Ordering Tests

For every record kind, the columns named in the generated SQL text and the
values produced by the extractor must line up position by position.
"""

import re
from datetime import datetime, timedelta
from enum import Enum

import pytest
from pydantic import ConfigDict

from sim_results.persistence.descriptor import SemanticType
from sim_results.persistence.errors import SchemaViolation
from sim_results.persistence.extractor import (
    assign_generated_key,
    bind,
    full_row,
    insert_row,
    key_row,
    read_values,
    update_row,
)
from sim_results.persistence.models import (
    ALL_RECORD_TYPES,
    Experiment,
    Histogram,
    ModelElement,
    SimulationRun,
    TableRecord,
)
from sim_results.persistence.statements import (
    delete_all_sql,
    delete_where_sql,
    insert_sql,
    select_sql,
    update_sql,
)


def distinct_record(record_type):
    """Instance of ``record_type`` with a different value in every column."""
    base = datetime(2024, 1, 1)
    values = {}
    for i, column in enumerate(record_type.descriptor().columns, start=1):
        if column.semantic_type is SemanticType.DOUBLE:
            values[column.name] = i + 0.5
        elif column.semantic_type is SemanticType.BOOLEAN:
            values[column.name] = i % 2 == 0
        elif column.semantic_type is SemanticType.TIMESTAMP:
            values[column.name] = base + timedelta(days=i)
        elif column.semantic_type is SemanticType.STRING:
            values[column.name] = f"value-{i}"
        else:
            values[column.name] = i
    return record_type.model_validate(values)


def insert_columns_in_sql(sql: str) -> list[str]:
    match = re.match(r"INSERT INTO \S+ \((.*?)\) VALUES", sql)
    assert match is not None
    return [name.strip() for name in match.group(1).split(",")]


def bound_columns_in_sql(sql: str) -> list[str]:
    return re.findall(r"(\w+) = \?", sql)


@pytest.mark.parametrize("record_type", ALL_RECORD_TYPES, ids=lambda t: t.__name__)
class TestOrderingInvariant:
    """SQL placeholders and extracted values agree for every record kind."""

    def test_insert(self, record_type):
        record = distinct_record(record_type)
        statement = insert_sql(record_type.descriptor())
        columns = insert_columns_in_sql(statement.sql)

        assert statement.placeholder_count == len(columns)
        assert insert_row(record) == [getattr(record, name) for name in columns]

    def test_update(self, record_type):
        record = distinct_record(record_type)
        statement = update_sql(record_type.descriptor())
        columns = bound_columns_in_sql(statement.sql)

        assert statement.placeholder_count == len(columns)
        assert update_row(record) == [getattr(record, name) for name in columns]

    def test_full_row_and_key_row(self, record_type):
        record = distinct_record(record_type)
        d = record_type.descriptor()

        assert full_row(record) == [getattr(record, name) for name in d.column_names]
        assert key_row(record) == [getattr(record, name) for name in d.key_fields]

    def test_bind_matches_extractor(self, record_type):
        record = distinct_record(record_type)
        d = record_type.descriptor()

        assert bind(insert_sql(d), record) == insert_row(record)
        assert bind(update_sql(d), record) == update_row(record)


class TestStatementText:
    """Exact statement shapes."""

    def test_insert_returning_key(self):
        statement = insert_sql(Experiment.descriptor(), returning_key=True)

        assert statement.sql.endswith(") RETURNING exp_id")
        assert "exp_id," not in statement.sql
        assert statement.parameters[0] == "sim_name"

    def test_returning_ignored_without_auto_increment(self):
        statement = insert_sql(ModelElement.descriptor(), returning_key=True)
        assert "RETURNING" not in statement.sql

    def test_update_statement(self):
        statement = update_sql(SimulationRun.descriptor())

        assert statement.sql.startswith("UPDATE simulation_run SET exp_id_fk = ?, run_name = ?")
        assert statement.sql.endswith("WHERE run_id = ?")
        assert statement.parameters[-1] == "run_id"

    def test_select_statement(self):
        statement = select_sql(SimulationRun.descriptor(), where=["exp_id_fk", "run_name"])

        assert statement.sql.endswith("WHERE exp_id_fk = ? AND run_name = ? ORDER BY run_id")
        assert statement.parameters == ("exp_id_fk", "run_name")

    def test_delete_statements(self):
        statement = delete_where_sql(Histogram.descriptor().in_schema("results"), ["sim_run_id_fk"])

        assert statement.sql == "DELETE FROM results.histogram WHERE sim_run_id_fk = ?"
        assert delete_all_sql("histogram") == "DELETE FROM histogram"
        assert delete_all_sql("histogram", "results") == "DELETE FROM results.histogram"

    def test_delete_requires_condition(self):
        with pytest.raises(ValueError):
            delete_where_sql(Histogram.descriptor(), [])


class Shape(str, Enum):
    ROUND = "round"


class TestExtractor:
    """Value extraction details."""

    def test_enum_values_are_stored_as_values(self):
        class Shaped(TableRecord):
            model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
                table_name="shaped",
                primary_key=["shaped_id"],
            )

            shaped_id: int
            shape: Shape

        assert full_row(Shaped(shaped_id=1, shape=Shape.ROUND)) == [1, "round"]

    def test_unknown_column_raises(self):
        record = distinct_record(Histogram)

        with pytest.raises(SchemaViolation, match="missing_column"):
            read_values(record, ["id", "missing_column"])

    def test_assign_generated_key(self):
        run = SimulationRun(exp_id_fk=1, run_name="Run1", num_reps=5)

        assign_generated_key(run, 42)

        assert run.run_id == 42
        assert key_row(run) == [42]

    def test_assign_generated_key_requires_auto_increment(self):
        element = distinct_record(ModelElement)

        with pytest.raises(SchemaViolation):
            assign_generated_key(element, 1)
