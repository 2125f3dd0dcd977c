"""
Persistence layer for simulation results.

Maps record models to tables by convention, records the experiment/run
lifecycle and deletes experiments with all of their dependent rows.
"""

from .cascade import CASCADE_GRAPH, CascadeDeleter, CascadeOutcome, Dependency
from .descriptor import SemanticType, TableDescriptor, describe
from .engine import DuckDBEngine, RelationalEngine
from .errors import (
    CascadeDeleteFailure,
    DuplicateExperimentError,
    NotConfiguredError,
    RegistryStateError,
    SchemaViolation,
    SimResultsError,
)
from .models import (
    ALL_RECORD_TYPES,
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
from .registry import ExperimentRegistry, RegistryState

__all__ = [
    "ALL_RECORD_TYPES",
    "AcrossRepStat",
    "BatchStat",
    "CASCADE_GRAPH",
    "CascadeDeleteFailure",
    "CascadeDeleter",
    "CascadeOutcome",
    "Control",
    "Dependency",
    "DuckDBEngine",
    "DuplicateExperimentError",
    "Experiment",
    "ExperimentRegistry",
    "Frequency",
    "Histogram",
    "ModelElement",
    "NotConfiguredError",
    "RegistryState",
    "RegistryStateError",
    "RelationalEngine",
    "RvParameter",
    "SchemaViolation",
    "SemanticType",
    "SimResultsError",
    "SimulationRun",
    "TableDescriptor",
    "TableRecord",
    "TimeSeriesResponse",
    "WithinRepCounterStat",
    "WithinRepStat",
    "describe",
]
