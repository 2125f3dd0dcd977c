"""
Experiment/Run Registry

Records the lifecycle of simulation experiments in the results database:

    begin_experiment(model)      # once per experiment (or chunk)
    after_replication(model)     # after every replication
    end_experiment(model)        # once, when the run finishes

An experiment run in several chunks is one ``experiment`` row with one
``simulation_run`` row per chunk. Re-submitting a chunk replaces its previous
run and results.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum

from ..simulation import SimulationModel, SummaryStatistic
from .cascade import CascadeDeleter, CascadeOutcome
from .descriptor import TableDescriptor
from .engine import RelationalEngine, require_configured
from .errors import DuplicateExperimentError, RegistryStateError
from .models import (
    TABLE_NAMES,
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
from .queries import select_one, select_records
from .writers import insert_record, insert_records, update_record

logger = logging.getLogger(__name__)


class RegistryState(str, Enum):
    NO_EXPERIMENT = "no_experiment"
    EXPERIMENT_FOUND = "experiment_found"


class ExperimentRegistry:
    """Writes experiments, runs and their statistics through a relational engine.

    Usage:
        registry = ExperimentRegistry(engine)
        registry.begin_experiment(model)
        for _ in range(model.number_of_replications):
            ...  # run a replication
            registry.after_replication(model)
        registry.end_experiment(model)

    Raises:
        NotConfiguredError: If the engine is missing any results table
    """

    def __init__(self, engine: RelationalEngine, clear_data: bool = False):
        require_configured(engine)
        self.engine = engine
        self.deleter = CascadeDeleter(engine)
        self.state = RegistryState.NO_EXPERIMENT
        self.current_experiment: Experiment | None = None
        self.current_run: SimulationRun | None = None

        if clear_data:
            self.clear_all_data()

    @property
    def schema_name(self) -> str | None:
        return self.engine.schema_name

    def _descriptor(self, record_type: type[TableRecord]) -> TableDescriptor:
        return record_type.descriptor().in_schema(self.schema_name)

    def _insert(self, record: TableRecord) -> TableRecord:
        with self.engine.connection() as conn:
            return insert_record(conn, record, self._descriptor(type(record)))

    def _insert_all(self, records: list[TableRecord]) -> int:
        if not records:
            return 0
        with self.engine.connection() as conn:
            return insert_records(conn, records, self._descriptor(type(records[0])))

    def _require_run(self, operation: str) -> SimulationRun:
        if self.current_run is None or self.current_run.run_id is None:
            raise RegistryStateError(f"{operation} called before begin_experiment")
        return self.current_run

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def begin_experiment(self, model: SimulationModel) -> SimulationRun:
        """Record the start of an experiment run.

        Returns:
            The new simulation run row, with its generated id

        Raises:
            DuplicateExperimentError: If a non-chunked experiment with the
                same name already exists
        """
        # A rejected begin leaves no current run
        self.current_experiment = None
        self.current_run = None
        existing = self.fetch_experiment(model.experiment_name)

        if existing is None:
            self.state = RegistryState.NO_EXPERIMENT
            experiment = self._insert(self._experiment_record(model))
            self.state = RegistryState.EXPERIMENT_FOUND
            run = self._insert(self._run_record(model, experiment.exp_id))
            self._insert_experiment_structure(model, experiment.exp_id)
            logger.info(
                "Database %s: started experiment '%s' (id %s), run '%s'",
                self.engine.label,
                model.experiment_name,
                experiment.exp_id,
                model.run_name,
            )
        elif model.num_chunks > 1:
            self.state = RegistryState.EXPERIMENT_FOUND
            experiment = existing
            outcome = self.deleter.delete_simulation_run(experiment.exp_id, model.run_name)
            if outcome is CascadeOutcome.DELETED:
                logger.info(
                    "Database %s: replaced previous results of run '%s' of experiment '%s'",
                    self.engine.label,
                    model.run_name,
                    model.experiment_name,
                )
            elif outcome is CascadeOutcome.FAILED:
                raise self.deleter.last_failure
            run = self._insert(self._run_record(model, experiment.exp_id))
            logger.info(
                "Database %s: started chunk run '%s' of experiment '%s'",
                self.engine.label,
                model.run_name,
                model.experiment_name,
            )
        else:
            self.state = RegistryState.EXPERIMENT_FOUND
            logger.error(
                "Database %s: an experiment record already exists with the experiment name '%s'",
                self.engine.label,
                model.experiment_name,
            )
            logger.error(
                "Database %s: existing experiments: %s",
                self.engine.label,
                ", ".join(self.experiment_names()),
            )
            logger.error(
                "Database %s: delete the experiment or rename it before running simulation '%s'",
                self.engine.label,
                model.simulation_name,
            )
            raise DuplicateExperimentError(model.simulation_name, model.experiment_name, self.engine.label)

        self.current_experiment = experiment
        self.current_run = run
        return run

    def after_replication(self, model: SimulationModel) -> None:
        """Record the statistics of the replication that just finished."""
        run = self._require_run("after_replication")
        rep_id = model.current_replication_id

        within = [
            WithinRepStat(
                element_id_fk=response.element_id,
                sim_run_id_fk=run.run_id,
                rep_id=rep_id,
                stat_name=response.within_rep.name,
                stat_count=response.within_rep.count,
                average=response.within_rep.weighted_average,
                minimum=response.within_rep.minimum,
                maximum=response.within_rep.maximum,
                weighted_sum=response.within_rep.weighted_sum,
                sum_of_weights=response.within_rep.sum_of_weights,
                weighted_ssq=response.within_rep.weighted_ssq,
                last_value=response.within_rep.last_value,
                last_weight=response.within_rep.last_weight,
            )
            for response in model.responses
        ]
        counters = [
            WithinRepCounterStat(
                element_id_fk=counter.element_id,
                sim_run_id_fk=run.run_id,
                rep_id=rep_id,
                stat_name=counter.name,
                last_value=counter.value,
            )
            for counter in model.counters
        ]
        self._insert_all(within)
        self._insert_all(counters)

        if model.batch_statistics is not None:
            batches = [
                BatchStat(
                    element_id_fk=info.element_id,
                    sim_run_id_fk=run.run_id,
                    rep_id=rep_id,
                    min_batch_size=info.statistic.min_batch_size,
                    min_num_batches=info.statistic.min_num_batches,
                    max_num_batches_multiple=info.statistic.max_num_batches_multiple,
                    max_num_batches=info.statistic.max_num_batches,
                    num_rebatches=info.statistic.num_rebatches,
                    current_batch_size=info.statistic.current_batch_size,
                    amt_unbatched=info.statistic.amount_unbatched,
                    total_num_obs=info.statistic.total_num_obs,
                    **_summary_columns(info.statistic),
                )
                for info in model.batch_statistics
            ]
            self._insert_all(batches)

        logger.debug(
            "Database %s: stored replication %d of run '%s'", self.engine.label, rep_id, run.run_name
        )

    def end_experiment(self, model: SimulationModel) -> SimulationRun:
        """Close the current run and store the end-of-run statistics."""
        run = self._require_run("end_experiment")

        run.last_rep_id = model.starting_rep_id + model.number_replications_completed - 1
        run.run_end_time_stamp = datetime.now()
        run.run_error_msg = model.run_error_msg
        with self.engine.connection() as conn:
            update_record(conn, run, self._descriptor(SimulationRun))

        across = [
            AcrossRepStat(
                element_id_fk=response.element_id,
                sim_run_id_fk=run.run_id,
                **_summary_columns(response.across_rep),
            )
            for response in model.responses
        ]
        across += [
            AcrossRepStat(
                element_id_fk=counter.element_id,
                sim_run_id_fk=run.run_id,
                **_summary_columns(counter.across_rep),
            )
            for counter in model.counters
        ]
        histograms = [
            Histogram(
                element_id_fk=histogram.element_id,
                sim_run_id_fk=run.run_id,
                response_id_fk=histogram.response_id,
                response_name=histogram.response_name,
                bin_label=b.label,
                bin_num=b.bin_num,
                bin_lower_limit=b.lower_limit,
                bin_upper_limit=b.upper_limit,
                bin_count=b.count,
                bin_cum_count=b.cum_count,
                bin_proportion=b.proportion,
                bin_cum_proportion=b.cum_proportion,
            )
            for histogram in model.histograms
            for b in histogram.bins
        ]
        frequencies = [
            Frequency(
                element_id_fk=frequency.element_id,
                sim_run_id_fk=run.run_id,
                name=frequency.name,
                cell_label=cell.label,
                value=cell.value,
                count=cell.count,
                cum_count=cell.cum_count,
                proportion=cell.proportion,
                cum_proportion=cell.cum_proportion,
            )
            for frequency in model.frequencies
            for cell in frequency.cells
        ]
        time_series = [
            TimeSeriesResponse(
                element_id_fk=period.element_id,
                sim_run_id_fk=run.run_id,
                rep_id=period.rep_id,
                stat_name=period.response_name,
                period=period.period,
                start_time=period.start_time,
                end_time=period.end_time,
                length=period.length,
                value=period.value,
            )
            for period in model.time_series
        ]
        for records in (across, histograms, frequencies, time_series):
            self._insert_all(records)

        logger.info(
            "Database %s: finished run '%s' of experiment '%s' (last replication %s)",
            self.engine.label,
            run.run_name,
            model.experiment_name,
            run.last_rep_id,
        )
        self.current_run = None
        return run

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def experiment_names(self) -> list[str]:
        with self.engine.connection() as conn:
            return [e.exp_name for e in select_records(conn, Experiment, self.schema_name)]

    def fetch_experiment(self, exp_name: str) -> Experiment | None:
        with self.engine.connection() as conn:
            return select_one(conn, Experiment, self.schema_name, exp_name=exp_name)

    def experiment_exists(self, exp_name: str) -> bool:
        return self.fetch_experiment(exp_name) is not None

    def fetch_simulation_runs(self, exp_id: int) -> list[SimulationRun]:
        with self.engine.connection() as conn:
            return select_records(conn, SimulationRun, self.schema_name, exp_id_fk=exp_id)

    # ------------------------------------------------------------------
    # Clearing
    # ------------------------------------------------------------------

    def clear_all_data(self) -> bool:
        """Delete every row of every results table, children first.

        Returns:
            False if any table could not be emptied
        """
        cleared = True
        for table in reversed(TABLE_NAMES):
            if not self.engine.delete_all_from(table, self.schema_name):
                cleared = False
        logger.info("Database %s: cleared all simulation results", self.engine.label)
        return cleared

    def clear_simulation_data(self, model: SimulationModel) -> CascadeOutcome:
        """Delete the model's experiment and all of its results."""
        return self.deleter.delete_experiment(model.experiment_name)

    # ------------------------------------------------------------------
    # Snapshot conversion
    # ------------------------------------------------------------------

    @staticmethod
    def _experiment_record(model: SimulationModel) -> Experiment:
        return Experiment(
            sim_name=model.simulation_name,
            model_name=model.name,
            exp_name=model.experiment_name,
            num_chunks=model.num_chunks,
            length_of_rep=model.length_of_replication,
            length_of_warm_up=model.length_of_warm_up,
            rep_allowed_exec_time=model.max_allowed_exec_time_ms,
            rep_init_option=model.replication_initialization_option,
            reset_start_stream_option=model.reset_start_stream_option,
            antithetic_option=model.antithetic_option,
            adv_next_sub_stream_option=model.advance_next_sub_stream_option,
            num_stream_advances=model.number_of_stream_advances,
            gc_after_rep_option=model.garbage_collect_after_replication,
        )

    @staticmethod
    def _run_record(model: SimulationModel, exp_id: int) -> SimulationRun:
        return SimulationRun(
            exp_id_fk=exp_id,
            run_name=model.run_name,
            num_reps=model.number_of_replications,
            start_rep_id=model.starting_rep_id,
            run_start_time_stamp=datetime.now(),
        )

    def _insert_experiment_structure(self, model: SimulationModel, exp_id: int) -> None:
        elements = [
            ModelElement(
                exp_id_fk=exp_id,
                element_id=e.element_id,
                element_name=e.name,
                class_name=e.class_name,
                parent_id_fk=e.parent_id,
                parent_name=e.parent_name,
                left_count=e.left_count,
                right_count=e.right_count,
            )
            for e in model.model_elements
        ]
        controls = [
            Control(
                exp_id_fk=exp_id,
                element_id_fk=c.element_id,
                key_name=c.key_name,
                control_value=c.value,
                lower_bound=c.lower_bound,
                upper_bound=c.upper_bound,
                property_name=c.property_name,
                control_type=c.control_type,
                comment=c.comment,
            )
            for c in model.controls
        ]
        parameters = [
            RvParameter(
                exp_id_fk=exp_id,
                element_id_fk=p.element_id,
                class_name=p.class_name,
                data_type=p.data_type,
                rv_name=p.rv_name,
                param_name=p.param_name,
                param_value=p.param_value,
            )
            for p in model.rv_parameters
        ]
        self._insert_all(elements)
        self._insert_all(controls)
        self._insert_all(parameters)


def _summary_columns(statistic: SummaryStatistic) -> dict:
    """Column values shared by across-replication and batch statistics rows."""
    return {
        "stat_name": statistic.name,
        "stat_count": statistic.count,
        "average": statistic.average,
        "std_dev": statistic.std_dev,
        "std_err": statistic.std_err,
        "half_width": statistic.half_width,
        "conf_level": statistic.conf_level,
        "minimum": statistic.minimum,
        "maximum": statistic.maximum,
        "sum_of_obs": statistic.sum,
        "dev_ssq": statistic.dev_ssq,
        "last_value": statistic.last_value,
        "kurtosis": statistic.kurtosis,
        "skewness": statistic.skewness,
        "lag1_cov": statistic.lag1_cov,
        "lag1_corr": statistic.lag1_corr,
        "von_neumann_lag1_stat": statistic.von_neumann_lag1_stat,
        "num_missing_obs": statistic.num_missing,
    }
