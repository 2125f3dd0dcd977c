"""Simulation model snapshot contract.

The registry does not know the simulation engine. At each lifecycle point it
reads a ``SimulationModel``: run identity, experiment options, and the
current statistics, expressed with the plain dataclasses below.

``ModelSnapshot`` is a ready-made implementation a driver can fill in.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable


# =============================================================================
# Experiment Structure
# =============================================================================


@dataclass(frozen=True)
class ModelElementInfo:
    """A model element and its place in the element hierarchy.

    ``left_count``/``right_count`` are the nested set traversal counts.
    """

    element_id: int
    name: str
    class_name: str
    left_count: int
    right_count: int
    parent_id: int | None = None
    parent_name: str | None = None


@dataclass(frozen=True)
class ControlInfo:
    element_id: int
    key_name: str
    property_name: str
    control_type: str
    value: float | None = None
    lower_bound: float | None = None
    upper_bound: float | None = None
    comment: str | None = None


@dataclass(frozen=True)
class RvParameterInfo:
    element_id: int
    class_name: str
    data_type: str
    rv_name: str
    param_name: str
    param_value: float | None = None


# =============================================================================
# Statistics
# =============================================================================


@dataclass(frozen=True)
class WeightedStatistic:
    """Within-replication (possibly time-weighted) statistic."""

    name: str
    count: float | None = None
    weighted_average: float | None = None
    minimum: float | None = None
    maximum: float | None = None
    weighted_sum: float | None = None
    sum_of_weights: float | None = None
    weighted_ssq: float | None = None
    last_value: float | None = None
    last_weight: float | None = None


@dataclass(frozen=True)
class SummaryStatistic:
    """Summary of a set of observations (across replications or batches)."""

    name: str
    count: float | None = None
    average: float | None = None
    std_dev: float | None = None
    std_err: float | None = None
    half_width: float | None = None
    conf_level: float | None = None
    minimum: float | None = None
    maximum: float | None = None
    sum: float | None = None
    dev_ssq: float | None = None
    last_value: float | None = None
    kurtosis: float | None = None
    skewness: float | None = None
    lag1_cov: float | None = None
    lag1_corr: float | None = None
    von_neumann_lag1_stat: float | None = None
    num_missing: float | None = None


@dataclass(frozen=True)
class BatchStatistic(SummaryStatistic):
    """Batch means summary with the batching parameters in effect."""

    min_batch_size: float | None = None
    min_num_batches: float | None = None
    max_num_batches_multiple: float | None = None
    max_num_batches: float | None = None
    num_rebatches: float | None = None
    current_batch_size: float | None = None
    amount_unbatched: float | None = None
    total_num_obs: float | None = None


@dataclass(frozen=True)
class ResponseInfo:
    """A response variable: its current replication and across-replication statistics."""

    element_id: int
    within_rep: WeightedStatistic
    across_rep: SummaryStatistic


@dataclass(frozen=True)
class CounterInfo:
    """A counter: its value at the end of the replication and across-replication statistics."""

    element_id: int
    name: str
    value: float | None
    across_rep: SummaryStatistic


@dataclass(frozen=True)
class BatchStatisticInfo:
    element_id: int
    statistic: BatchStatistic


@dataclass(frozen=True)
class HistogramBin:
    bin_num: int
    label: str
    lower_limit: float | None = None
    upper_limit: float | None = None
    count: float | None = None
    cum_count: float | None = None
    proportion: float | None = None
    cum_proportion: float | None = None


@dataclass(frozen=True)
class HistogramInfo:
    element_id: int
    response_id: int
    response_name: str
    bins: tuple[HistogramBin, ...] = ()


@dataclass(frozen=True)
class FrequencyCell:
    label: str
    value: int
    count: float | None = None
    cum_count: float | None = None
    proportion: float | None = None
    cum_proportion: float | None = None


@dataclass(frozen=True)
class FrequencyInfo:
    element_id: int
    name: str
    cells: tuple[FrequencyCell, ...] = ()


@dataclass(frozen=True)
class TimeSeriesPeriod:
    element_id: int
    rep_id: int
    response_name: str
    period: int
    start_time: float | None = None
    end_time: float | None = None
    length: float | None = None
    value: float | None = None


# =============================================================================
# Model Protocol
# =============================================================================


@runtime_checkable
class SimulationModel(Protocol):
    """What the registry reads from a simulation model.

    ``batch_statistics`` is None when batching is not enabled for the run.
    """

    simulation_name: str
    experiment_name: str
    name: str
    run_name: str
    num_chunks: int
    number_of_replications: int
    starting_rep_id: int
    number_replications_completed: int
    current_replication_id: int
    run_error_msg: str | None

    length_of_replication: float | None
    length_of_warm_up: float | None
    max_allowed_exec_time_ms: int | None
    replication_initialization_option: bool
    reset_start_stream_option: bool
    antithetic_option: bool
    advance_next_sub_stream_option: bool
    number_of_stream_advances: int
    garbage_collect_after_replication: bool

    model_elements: list[ModelElementInfo]
    controls: list[ControlInfo]
    rv_parameters: list[RvParameterInfo]
    responses: list[ResponseInfo]
    counters: list[CounterInfo]
    batch_statistics: list[BatchStatisticInfo] | None
    histograms: list[HistogramInfo]
    frequencies: list[FrequencyInfo]
    time_series: list[TimeSeriesPeriod]


@dataclass
class ModelSnapshot:
    """Mutable ``SimulationModel`` implementation filled in by a driver.

    Example:
        >>> model = ModelSnapshot(
        ...     simulation_name="Pharmacy",
        ...     experiment_name="Base",
        ...     name="PharmacyModel",
        ...     run_name="Base_Run",
        ...     number_of_replications=10,
        ... )
        >>> model.num_chunks
        1
    """

    simulation_name: str
    experiment_name: str
    name: str
    run_name: str
    number_of_replications: int
    num_chunks: int = 1
    starting_rep_id: int = 1
    number_replications_completed: int = 0
    current_replication_id: int = 1
    run_error_msg: str | None = None

    length_of_replication: float | None = None
    length_of_warm_up: float | None = None
    max_allowed_exec_time_ms: int | None = None
    replication_initialization_option: bool = True
    reset_start_stream_option: bool = False
    antithetic_option: bool = False
    advance_next_sub_stream_option: bool = True
    number_of_stream_advances: int = -1
    garbage_collect_after_replication: bool = False

    model_elements: list[ModelElementInfo] = field(default_factory=list)
    controls: list[ControlInfo] = field(default_factory=list)
    rv_parameters: list[RvParameterInfo] = field(default_factory=list)
    responses: list[ResponseInfo] = field(default_factory=list)
    counters: list[CounterInfo] = field(default_factory=list)
    batch_statistics: list[BatchStatisticInfo] | None = None
    histograms: list[HistogramInfo] = field(default_factory=list)
    frequencies: list[FrequencyInfo] = field(default_factory=list)
    time_series: list[TimeSeriesPeriod] = field(default_factory=list)
