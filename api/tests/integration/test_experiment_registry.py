"""
Experiment Registry Tests

The begin/after-replication/end protocol: new experiments, chunked runs,
duplicate detection, and the rows written at each step.
"""

import logging

import pytest

from sim_results.persistence.cascade import CascadeOutcome
from sim_results.persistence.engine import DuckDBEngine
from sim_results.persistence.errors import (
    DuplicateExperimentError,
    NotConfiguredError,
    RegistryStateError,
)
from sim_results.persistence.models import (
    AcrossRepStat,
    BatchStat,
    Control,
    Experiment,
    Frequency,
    Histogram,
    ModelElement,
    RvParameter,
    SimulationRun,
    TimeSeriesResponse,
    WithinRepCounterStat,
    WithinRepStat,
)
from sim_results.persistence.queries import count_rows, select_records
from sim_results.persistence.registry import ExperimentRegistry, RegistryState


pytestmark = pytest.mark.integration


def run_replications(registry, model, count):
    for rep_id in range(model.starting_rep_id, model.starting_rep_id + count):
        model.current_replication_id = rep_id
        registry.after_replication(model)
        model.number_replications_completed = rep_id - model.starting_rep_id + 1


class TestRegistryInit:
    def test_requires_configured_database(self):
        with DuckDBEngine() as engine:
            with pytest.raises(NotConfiguredError):
                ExperimentRegistry(engine)

    def test_clear_data_on_startup(self, engine, completed_experiment):
        registry = ExperimentRegistry(engine, clear_data=True)

        assert registry.experiment_names() == []
        with engine.connection() as conn:
            assert count_rows(conn, WithinRepStat) == 0


class TestBeginExperiment:
    """Test begin_experiment for new, chunked and duplicate experiments."""

    def test_new_experiment(self, engine, registry, make_model):
        run = registry.begin_experiment(make_model())

        assert registry.state is RegistryState.EXPERIMENT_FOUND
        assert run.run_id is not None
        assert run.run_start_time_stamp is not None

        exp = registry.fetch_experiment("Exp1")
        assert exp.sim_name == "Pharmacy"
        assert exp.model_name == "PharmacyModel"
        assert exp.length_of_rep == 20000.0
        assert exp.rep_allowed_exec_time == 60_000
        assert registry.experiment_exists("Exp1")

        with engine.connection() as conn:
            assert count_rows(conn, SimulationRun, exp_id_fk=exp.exp_id) == 1
            assert count_rows(conn, ModelElement, exp_id_fk=exp.exp_id) == 3
            assert count_rows(conn, Control, exp_id_fk=exp.exp_id) == 1
            assert count_rows(conn, RvParameter, exp_id_fk=exp.exp_id) == 1

    def test_model_element_hierarchy(self, engine, registry, make_model):
        registry.begin_experiment(make_model())

        with engine.connection() as conn:
            elements = select_records(conn, ModelElement)

        assert [e.element_name for e in elements] == ["PharmacyModel", "Pharmacist", "ServiceTime"]
        assert elements[0].parent_id_fk is None
        assert elements[1].parent_name == "PharmacyModel"

    def test_chunks_share_one_experiment(self, engine, registry, make_model):
        registry.begin_experiment(make_model(run_name="Chunk1", num_chunks=2))
        registry.begin_experiment(make_model(run_name="Chunk2", num_chunks=2))

        assert registry.state is RegistryState.EXPERIMENT_FOUND
        exp = registry.fetch_experiment("Exp1")
        runs = registry.fetch_simulation_runs(exp.exp_id)
        assert [r.run_name for r in runs] == ["Chunk1", "Chunk2"]

        with engine.connection() as conn:
            assert count_rows(conn, Experiment) == 1
            # Experiment structure is recorded once
            assert count_rows(conn, ModelElement) == 3

    def test_chunk_resubmission_replaces_previous_run(self, engine, registry, make_model):
        first = make_model(run_name="Chunk1", num_chunks=2, wait_time=1.0)
        registry.begin_experiment(first)
        run_replications(registry, first, 2)
        registry.end_experiment(first)

        again = make_model(run_name="Chunk1", num_chunks=2, wait_time=9.0)
        registry.begin_experiment(again)
        run_replications(registry, again, 2)
        registry.end_experiment(again)

        exp = registry.fetch_experiment("Exp1")
        runs = registry.fetch_simulation_runs(exp.exp_id)
        assert [r.run_name for r in runs] == ["Chunk1"]

        with engine.connection() as conn:
            stats = select_records(conn, WithinRepStat)
            assert [s.average for s in stats] == [9.0, 9.0]
            assert {s.sim_run_id_fk for s in stats} == {runs[0].run_id}
            assert count_rows(conn, AcrossRepStat) == 2
            assert count_rows(conn, Histogram) == 2

    def test_duplicate_experiment_rejected(self, engine, registry, make_model, caplog):
        registry.begin_experiment(make_model())

        with caplog.at_level(logging.ERROR):
            with pytest.raises(DuplicateExperimentError) as exc_info:
                registry.begin_experiment(make_model(run_name="Run2"))

        assert exc_info.value.simulation_name == "Pharmacy"
        assert exc_info.value.experiment_name == "Exp1"
        assert "Exp1" in str(exc_info.value)
        assert "already exists" in caplog.text
        assert registry.state is RegistryState.EXPERIMENT_FOUND

        with engine.connection() as conn:
            assert count_rows(conn, SimulationRun) == 1

    def test_rejected_duplicate_cannot_write_into_first_run(self, engine, registry, make_model):
        registry.begin_experiment(make_model())
        exp = registry.fetch_experiment("Exp1")
        (first_run,) = registry.fetch_simulation_runs(exp.exp_id)

        duplicate = make_model(run_name="Run2")
        with pytest.raises(DuplicateExperimentError):
            registry.begin_experiment(duplicate)

        assert registry.current_run is None
        duplicate.current_replication_id = 1
        duplicate.run_error_msg = "from duplicate"
        with pytest.raises(RegistryStateError):
            registry.after_replication(duplicate)
        with pytest.raises(RegistryStateError):
            registry.end_experiment(duplicate)

        (stored,) = registry.fetch_simulation_runs(exp.exp_id)
        assert stored == first_run
        assert stored.run_error_msg is None
        with engine.connection() as conn:
            assert count_rows(conn, WithinRepStat) == 0


class TestReplicationsAndEnd:
    """Test after_replication and end_experiment."""

    def test_after_replication_writes_within_rep_rows(self, engine, registry, make_model):
        model = make_model()
        run = registry.begin_experiment(model)
        run_replications(registry, model, 2)

        with engine.connection() as conn:
            stats = select_records(conn, WithinRepStat, sim_run_id_fk=run.run_id)
            counters = select_records(conn, WithinRepCounterStat, sim_run_id_fk=run.run_id)
            assert count_rows(conn, BatchStat) == 0

        assert [(s.rep_id, s.stat_name, s.average) for s in stats] == [
            (1, "Wait Time", 4.5),
            (2, "Wait Time", 4.5),
        ]
        assert [(c.rep_id, c.last_value) for c in counters] == [(1, 100.0), (2, 100.0)]

    def test_batch_statistics_when_batching_enabled(self, engine, registry, make_model):
        model = make_model(batching=True)
        registry.begin_experiment(model)
        run_replications(registry, model, 2)

        with engine.connection() as conn:
            batches = select_records(conn, BatchStat)

        assert len(batches) == 2
        assert batches[0].min_num_batches == 20.0
        assert batches[0].stat_name == "Wait Time"

    def test_end_experiment_updates_run(self, engine, completed_experiment, registry):
        exp = registry.fetch_experiment("Exp1")
        (run,) = registry.fetch_simulation_runs(exp.exp_id)

        assert run.last_rep_id == 2
        assert run.run_end_time_stamp is not None
        assert run.run_error_msg is None

    def test_end_experiment_writes_summary_rows(self, engine, completed_experiment):
        with engine.connection() as conn:
            across = select_records(conn, AcrossRepStat)
            assert [a.stat_name for a in across] == ["Wait Time", "Num Served"]
            assert across[0].std_dev == 0.1
            assert count_rows(conn, Histogram) == 2
            assert count_rows(conn, Frequency) == 2
            assert count_rows(conn, TimeSeriesResponse) == 1

    def test_last_rep_id_uses_starting_rep(self, engine, registry, make_model):
        model = make_model(run_name="Chunk2", num_chunks=2)
        model.starting_rep_id = 11
        registry.begin_experiment(model)
        run_replications(registry, model, 3)
        run = registry.end_experiment(model)

        assert run.start_rep_id == 11
        assert run.last_rep_id == 13

    def test_error_message_recorded(self, registry, make_model):
        model = make_model()
        registry.begin_experiment(model)
        model.run_error_msg = "Replication 1 exceeded its allowed execution time"
        registry.end_experiment(model)

        exp = registry.fetch_experiment("Exp1")
        (run,) = registry.fetch_simulation_runs(exp.exp_id)
        assert run.run_error_msg == "Replication 1 exceeded its allowed execution time"
        assert run.last_rep_id == 0

    def test_calls_out_of_order_raise(self, registry, make_model):
        model = make_model()

        with pytest.raises(RegistryStateError):
            registry.after_replication(model)
        with pytest.raises(RegistryStateError):
            registry.end_experiment(model)

    def test_end_closes_the_run(self, registry, completed_experiment):
        with pytest.raises(RegistryStateError):
            registry.after_replication(completed_experiment)


class TestClearing:
    def test_clear_simulation_data(self, engine, registry, completed_experiment):
        assert registry.clear_simulation_data(completed_experiment) is CascadeOutcome.DELETED
        assert not registry.experiment_exists("Exp1")
        assert registry.clear_simulation_data(completed_experiment) is CascadeOutcome.NOT_FOUND

    def test_clear_all_data(self, engine, registry, completed_experiment):
        assert registry.clear_all_data() is True

        with engine.connection() as conn:
            for record_type in (Experiment, SimulationRun, WithinRepStat, AcrossRepStat, Histogram):
                assert count_rows(conn, record_type) == 0
