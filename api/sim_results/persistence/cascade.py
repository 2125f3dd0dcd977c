"""
Cascading Delete

Removes an experiment, or a single run of an experiment, together with every
row that refers to it, inside one transaction.

The tables that depend on a parent are declared once in ``CASCADE_GRAPH``.
A delete plan is built by walking the graph depth-first from the root, so
every child table is emptied before the table it points to:

    experiment
    ├── simulation_run (exp_id_fk)
    │   ├── within_rep_stat (sim_run_id_fk)
    │   ├── ...
    │   └── time_series_response (sim_run_id_fk)
    ├── control (exp_id_fk)
    ├── rv_parameter (exp_id_fk)
    └── model_element (exp_id_fk)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

import duckdb

from .descriptor import TableDescriptor, describe
from .engine import RelationalEngine, require_configured
from .errors import CascadeDeleteFailure
from .models import (
    AcrossRepStat,
    BatchStat,
    Control,
    Experiment,
    Frequency,
    Histogram,
    ModelElement,
    RvParameter,
    SimulationRun,
    TableRecord,
    TimeSeriesResponse,
    WithinRepCounterStat,
    WithinRepStat,
)
from .queries import select_one
from .statements import delete_where_sql, select_sql

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Dependency:
    """A child table and the column holding its parent's key."""

    child: type[TableRecord]
    foreign_key: str


CASCADE_GRAPH: dict[type[TableRecord], tuple[Dependency, ...]] = {
    Experiment: (
        Dependency(SimulationRun, "exp_id_fk"),
        Dependency(Control, "exp_id_fk"),
        Dependency(RvParameter, "exp_id_fk"),
        Dependency(ModelElement, "exp_id_fk"),
    ),
    SimulationRun: (
        Dependency(WithinRepStat, "sim_run_id_fk"),
        Dependency(WithinRepCounterStat, "sim_run_id_fk"),
        Dependency(AcrossRepStat, "sim_run_id_fk"),
        Dependency(BatchStat, "sim_run_id_fk"),
        Dependency(Histogram, "sim_run_id_fk"),
        Dependency(Frequency, "sim_run_id_fk"),
        Dependency(TimeSeriesResponse, "sim_run_id_fk"),
    ),
}


class CascadeOutcome(str, Enum):
    DELETED = "deleted"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass(frozen=True)
class DeleteStep:
    """One DELETE statement of a plan with its bound values."""

    sql: str
    values: tuple[Any, ...]


class CascadeDeleter:
    """Deletes experiments and runs with all of their dependent rows.

    Usage:
        deleter = CascadeDeleter(engine)
        if deleter.delete_experiment("Exp1") is CascadeOutcome.FAILED:
            print(deleter.last_failure)

    Raises:
        NotConfiguredError: If the engine is missing any results table
    """

    def __init__(self, engine: RelationalEngine):
        require_configured(engine)
        self.engine = engine
        self.last_failure: CascadeDeleteFailure | None = None

    def _descriptor(self, record_type: type[TableRecord]) -> TableDescriptor:
        return describe(record_type).in_schema(self.engine.schema_name)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def delete_experiment(self, exp_name: str) -> CascadeOutcome:
        """Delete the named experiment, its runs and all of their results."""
        with self.engine.connection() as conn:
            experiment = select_one(conn, Experiment, self.engine.schema_name, exp_name=exp_name)
            if experiment is None:
                logger.info("Database %s: no experiment named '%s' to delete", self.engine.label, exp_name)
                return CascadeOutcome.NOT_FOUND

            plan = self.plan(conn, Experiment, experiment.exp_id)
            return self._execute(conn, plan, f"experiment '{exp_name}'")

    def delete_simulation_run(self, exp_id: int, run_name: str) -> CascadeOutcome:
        """Delete one run of an experiment and all of its results."""
        with self.engine.connection() as conn:
            run = select_one(
                conn, SimulationRun, self.engine.schema_name, exp_id_fk=exp_id, run_name=run_name
            )
            if run is None:
                logger.debug(
                    "Database %s: no run '%s' under experiment id %s", self.engine.label, run_name, exp_id
                )
                return CascadeOutcome.NOT_FOUND

            plan = self.plan(conn, SimulationRun, run.run_id)
            return self._execute(conn, plan, f"run '{run_name}' of experiment id {exp_id}")

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def plan(
        self, conn: duckdb.DuckDBPyConnection, root: type[TableRecord], key_value: Any
    ) -> list[DeleteStep]:
        """Build the delete plan for one root row.

        The last step always deletes the root row itself, so a plan is never
        empty.
        """
        root_descriptor = self._descriptor(root)
        steps = self._plan_children(conn, root, key_value)
        statement = delete_where_sql(root_descriptor, root_descriptor.key_fields)
        steps.append(DeleteStep(statement.sql, (key_value,)))
        return steps

    def _plan_children(
        self, conn: duckdb.DuckDBPyConnection, parent: type[TableRecord], key_value: Any
    ) -> list[DeleteStep]:
        steps: list[DeleteStep] = []
        for dependency in CASCADE_GRAPH.get(parent, ()):
            child = self._descriptor(dependency.child)

            if dependency.child in CASCADE_GRAPH:
                for child_key in self._child_keys(conn, child, dependency.foreign_key, key_value):
                    steps.extend(self._plan_children(conn, dependency.child, child_key))

            statement = delete_where_sql(child, [dependency.foreign_key])
            steps.append(DeleteStep(statement.sql, (key_value,)))
        return steps

    @staticmethod
    def _child_keys(
        conn: duckdb.DuckDBPyConnection, child: TableDescriptor, foreign_key: str, key_value: Any
    ) -> list[Any]:
        statement = select_sql(child, where=[foreign_key])
        key_index = child.column_names.index(child.key_fields[0])
        return [row[key_index] for row in conn.execute(statement.sql, [key_value]).fetchall()]

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _execute(self, conn: duckdb.DuckDBPyConnection, plan: list[DeleteStep], target: str) -> CascadeOutcome:
        conn.begin()
        try:
            for step in plan:
                conn.execute(step.sql, list(step.values))
        except duckdb.Error as e:
            try:
                conn.rollback()
            except duckdb.Error as rollback_error:
                rollback_error.__context__ = e
                return self._failed(target, rollback_error)
            return self._failed(target, e)
        except BaseException:
            conn.rollback()
            raise

        # A failed commit ends the transaction on its own
        try:
            conn.commit()
        except duckdb.Error as e:
            return self._failed(target, e)

        self.last_failure = None
        logger.info(
            "Database %s: deleted %s (%d statements)", self.engine.label, target, len(plan)
        )
        return CascadeOutcome.DELETED

    def _failed(self, target: str, error: duckdb.Error) -> CascadeOutcome:
        failure = CascadeDeleteFailure(f"Could not delete {target}: {error}")
        failure.__cause__ = error
        self.last_failure = failure
        logger.warning("Database %s: %s; changes rolled back", self.engine.label, failure)
        return CascadeOutcome.FAILED
