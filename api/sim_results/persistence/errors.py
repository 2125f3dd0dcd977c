"""
Persistence Error Taxonomy

Exceptions raised by the record mapper, the experiment registry and the
cascading delete orchestrator.
"""

from __future__ import annotations


class SimResultsError(Exception):
    """Base class for all simulation results store errors."""


class SchemaViolation(SimResultsError):
    """A record type or instance does not satisfy the table mapping rules.

    Raised when a record class is declared (missing table name, empty or
    inconsistent key fields) or when a value cannot be read from a record.
    This is a programming error and is never retried.
    """


class DuplicateExperimentError(SimResultsError):
    """An experiment with the same name already holds data.

    Raised when a non-chunked run is started under an experiment name that
    is already present in the database.
    """

    def __init__(self, simulation_name: str, experiment_name: str, label: str = "") -> None:
        self.simulation_name = simulation_name
        self.experiment_name = experiment_name
        where = f" in database {label}" if label else ""
        super().__init__(
            f"An experiment record already exists with the experiment name "
            f"'{experiment_name}' (simulation '{simulation_name}'){where}. "
            f"Delete the experiment or rename it before running again."
        )


class NotConfiguredError(SimResultsError):
    """The target database does not contain the required tables."""

    def __init__(self, missing_tables: list[str], label: str = "") -> None:
        self.missing_tables = missing_tables
        where = f" {label}" if label else ""
        super().__init__(
            f"The database{where} was not configured to hold simulation results. "
            f"Missing tables: {', '.join(missing_tables)}"
        )


class CascadeDeleteFailure(SimResultsError):
    """A statement failed while executing a cascading delete.

    The surrounding transaction is rolled back; callers of the orchestrator
    receive a failed outcome rather than this exception.
    """


class RegistryStateError(SimResultsError):
    """A registry operation was called out of protocol order."""
