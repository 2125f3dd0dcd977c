"""
Pydantic Models for Persistence Layer

These models are the single source of truth for the database schema.
Table names, key fields and the auto-increment convention are declared in
``model_config`` and checked when each class is defined; all DDL and DML is
derived from them.

Relationships (by foreign key column, enforced by convention only):
- experiment (1) -> simulation_run, model_element, control, rv_parameter (N)
  via ``exp_id_fk``
- simulation_run (1) -> within_rep_stat, within_rep_counter_stat,
  across_rep_stat, batch_stat, histogram, frequency, time_series_response (N)
  via ``sim_run_id_fk``
"""

import math
from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from .descriptor import SemanticType, TableDescriptor, describe, is_nullable


# ============================================================================
# Base Record
# ============================================================================


class TableRecord(BaseModel):
    """Base class for records mapped to a table.

    Subclasses that declare ``table_name`` in ``model_config`` are registered
    on definition: a missing or inconsistent key declaration raises
    ``SchemaViolation`` immediately rather than at the first insert.
    """

    model_config = ConfigDict(validate_assignment=True, protected_namespaces=())

    @classmethod
    def __pydantic_init_subclass__(cls, **kwargs: Any) -> None:
        super().__pydantic_init_subclass__(**kwargs)
        if cls.model_config.get("table_name"):
            describe(cls)

    @classmethod
    def descriptor(cls) -> TableDescriptor:
        return describe(cls)

    @field_validator("*", mode="after")
    @classmethod
    def _non_finite_as_null(cls, value: Any, info: ValidationInfo) -> Any:
        # NaN and infinities are not portable across engines
        if isinstance(value, float) and not math.isfinite(value):
            field = cls.model_fields.get(info.field_name or "")
            if field is not None and is_nullable(field.annotation):
                return None
        return value


# ============================================================================
# Experiment-scoped Records
# ============================================================================


class Experiment(TableRecord):
    """An experiment: a named set of runs of one simulation model."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="experiment",
        primary_key=["exp_id"],
        auto_increment=True,
    )

    exp_id: int | None = Field(None, description="Assigned by the store")
    sim_name: str = Field(..., description="Simulation name")
    model_name: str = Field(..., description="Model name")
    exp_name: str = Field(..., description="Experiment name, unique per database")
    num_chunks: int = Field(1, description="Number of chunks the experiment runs in", ge=1)
    length_of_rep: float | None = Field(None, description="Replication length")
    length_of_warm_up: float | None = Field(None, description="Warm up period length")
    rep_allowed_exec_time: Annotated[int | None, SemanticType.INT64] = Field(
        None, description="Maximum wall-clock time per replication in milliseconds"
    )
    rep_init_option: bool = Field(True, description="Re-initialize between replications")
    reset_start_stream_option: bool = Field(False, description="Reset streams to start")
    antithetic_option: bool = Field(False, description="Use antithetic replications")
    adv_next_sub_stream_option: bool = Field(True, description="Advance to next sub-stream")
    num_stream_advances: int = Field(-1, description="Stream advances before running")
    gc_after_rep_option: bool = Field(False, description="Collect garbage after replications")


class SimulationRun(TableRecord):
    """One execution (or chunk) of an experiment."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="simulation_run",
        primary_key=["run_id"],
        auto_increment=True,
    )

    run_id: int | None = Field(None, description="Assigned by the store")
    exp_id_fk: int = Field(..., description="Foreign key to experiment")
    run_name: str = Field(..., description="Run name, unique within an experiment")
    num_reps: int = Field(..., description="Number of replications requested", ge=1)
    start_rep_id: int = Field(1, description="Identifier of the first replication")
    last_rep_id: int | None = Field(None, description="Identifier of the last completed replication")
    run_start_time_stamp: datetime | None = Field(None, description="When the run started")
    run_end_time_stamp: datetime | None = Field(None, description="When the run ended")
    run_error_msg: str | None = Field(None, description="Error message if the run failed")


class ModelElement(TableRecord):
    """A node of the model element hierarchy (nested set encoding)."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="model_element",
        primary_key=["exp_id_fk", "element_id"],
    )

    exp_id_fk: int = Field(..., description="Foreign key to experiment")
    element_id: int = Field(..., description="Element identifier within the model")
    element_name: str = Field(..., description="Element name")
    class_name: str = Field(..., description="Element class name")
    parent_id_fk: int | None = Field(None, description="Parent element identifier")
    parent_name: str | None = Field(None, description="Parent element name")
    left_count: int = Field(..., description="Nested set left traversal count")
    right_count: int = Field(..., description="Nested set right traversal count")


class Control(TableRecord):
    """An experimental control exposed by the model."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="control",
        primary_key=["control_id"],
        auto_increment=True,
    )

    control_id: int | None = Field(None, description="Assigned by the store")
    exp_id_fk: int = Field(..., description="Foreign key to experiment")
    element_id_fk: int = Field(..., description="Element owning the control")
    key_name: str = Field(..., description="Control key")
    control_value: float | None = None
    lower_bound: float | None = None
    upper_bound: float | None = None
    property_name: str = Field(..., description="Controlled property")
    control_type: str = Field(..., description="Control value type")
    comment: str | None = None


class RvParameter(TableRecord):
    """A parameter of a random variable used by the model."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="rv_parameter",
        primary_key=["rv_param_id"],
        auto_increment=True,
    )

    rv_param_id: int | None = Field(None, description="Assigned by the store")
    exp_id_fk: int = Field(..., description="Foreign key to experiment")
    element_id_fk: int = Field(..., description="Random variable element")
    class_name: str
    data_type: str
    rv_name: str
    param_name: str
    param_value: float | None = None


# ============================================================================
# Run-scoped Statistics
# ============================================================================


class WithinRepStat(TableRecord):
    """Within-replication statistics of a response for one replication."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="within_rep_stat",
        primary_key=["id"],
        auto_increment=True,
    )

    id: int | None = None
    element_id_fk: int
    sim_run_id_fk: int
    rep_id: int
    stat_name: str
    stat_count: float | None = None
    average: float | None = None
    minimum: float | None = None
    maximum: float | None = None
    weighted_sum: float | None = None
    sum_of_weights: float | None = None
    weighted_ssq: float | None = None
    last_value: float | None = None
    last_weight: float | None = None


class WithinRepCounterStat(TableRecord):
    """Final value of a counter for one replication."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="within_rep_counter_stat",
        primary_key=["id"],
        auto_increment=True,
    )

    id: int | None = None
    element_id_fk: int
    sim_run_id_fk: int
    rep_id: int
    stat_name: str
    last_value: float | None = None


class AcrossRepStat(TableRecord):
    """Summary statistics of a response or counter across replications."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="across_rep_stat",
        primary_key=["id"],
        auto_increment=True,
    )

    id: int | None = None
    element_id_fk: int
    sim_run_id_fk: int
    stat_name: str
    stat_count: float | None = None
    average: float | None = None
    std_dev: float | None = None
    std_err: float | None = None
    half_width: float | None = None
    conf_level: float | None = None
    minimum: float | None = None
    maximum: float | None = None
    sum_of_obs: float | None = None
    dev_ssq: float | None = None
    last_value: float | None = None
    kurtosis: float | None = None
    skewness: float | None = None
    lag1_cov: float | None = None
    lag1_corr: float | None = None
    von_neumann_lag1_stat: float | None = None
    num_missing_obs: float | None = None


class BatchStat(TableRecord):
    """Batch means statistics of a response within one replication."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="batch_stat",
        primary_key=["id"],
        auto_increment=True,
    )

    id: int | None = None
    element_id_fk: int
    sim_run_id_fk: int
    rep_id: int
    stat_name: str
    stat_count: float | None = None
    average: float | None = None
    std_dev: float | None = None
    std_err: float | None = None
    half_width: float | None = None
    conf_level: float | None = None
    minimum: float | None = None
    maximum: float | None = None
    sum_of_obs: float | None = None
    dev_ssq: float | None = None
    last_value: float | None = None
    kurtosis: float | None = None
    skewness: float | None = None
    lag1_cov: float | None = None
    lag1_corr: float | None = None
    von_neumann_lag1_stat: float | None = None
    num_missing_obs: float | None = None
    min_batch_size: float | None = None
    min_num_batches: float | None = None
    max_num_batches_multiple: float | None = None
    max_num_batches: float | None = None
    num_rebatches: float | None = None
    current_batch_size: float | None = None
    amt_unbatched: float | None = None
    total_num_obs: float | None = None


class Histogram(TableRecord):
    """One bin of a histogram response."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="histogram",
        primary_key=["id"],
        auto_increment=True,
    )

    id: int | None = None
    element_id_fk: int
    sim_run_id_fk: int
    response_id_fk: int
    response_name: str
    bin_label: str
    bin_num: int
    bin_lower_limit: float | None = None
    bin_upper_limit: float | None = None
    bin_count: float | None = None
    bin_cum_count: float | None = None
    bin_proportion: float | None = None
    bin_cum_proportion: float | None = None


class Frequency(TableRecord):
    """One cell of an integer frequency response."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="frequency",
        primary_key=["id"],
        auto_increment=True,
    )

    id: int | None = None
    element_id_fk: int
    sim_run_id_fk: int
    name: str
    cell_label: str
    value: int
    count: float | None = None
    cum_count: float | None = None
    proportion: float | None = None
    cum_proportion: float | None = None


class TimeSeriesResponse(TableRecord):
    """The value of a response over one period of one replication."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="time_series_response",
        primary_key=["id"],
        auto_increment=True,
    )

    id: int | None = None
    element_id_fk: int
    sim_run_id_fk: int
    rep_id: int
    stat_name: str
    period: int
    start_time: float | None = None
    end_time: float | None = None
    length: float | None = None
    value: float | None = None


# ============================================================================
# Registry of Record Types
# ============================================================================

# Parents before children: the order tables are created in.
ALL_RECORD_TYPES: tuple[type[TableRecord], ...] = (
    Experiment,
    SimulationRun,
    ModelElement,
    Control,
    RvParameter,
    WithinRepStat,
    WithinRepCounterStat,
    AcrossRepStat,
    BatchStat,
    Histogram,
    Frequency,
    TimeSeriesResponse,
)

TABLE_NAMES: tuple[str, ...] = tuple(describe(t).table_name for t in ALL_RECORD_TYPES)
