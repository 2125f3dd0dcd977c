"""
Pytest configuration and shared fixtures.

Provides database fixtures that:
- Use an in-memory DuckDB database for fast engine tests
- Use the repo directory for file databases, for easy debugging
- Keep file databases on test failure
- Clean up on test success
"""

import os
from pathlib import Path
from typing import Callable, Generator

import pytest

from sim_results.persistence.engine import DuckDBEngine
from sim_results.persistence.registry import ExperimentRegistry
from sim_results.simulation import (
    BatchStatistic,
    BatchStatisticInfo,
    ControlInfo,
    CounterInfo,
    FrequencyCell,
    FrequencyInfo,
    HistogramBin,
    HistogramInfo,
    ModelElementInfo,
    ModelSnapshot,
    ResponseInfo,
    RvParameterInfo,
    SummaryStatistic,
    TimeSeriesPeriod,
    WeightedStatistic,
)


@pytest.fixture
def db_path(request, tmp_path) -> Generator[Path, None, None]:
    """Provide database path with intelligent cleanup.

    Behavior:
    - Local dev (default): Uses api/test_databases/ for easy inspection
    - CI environment: Uses tmp_path for isolation
    - Keeps database on test failure for debugging
    - Cleans up on test success

    To inspect after test:
        $ duckdb api/test_databases/test_something.db
        D SELECT * FROM simulation_run;
    """
    is_ci = os.getenv("CI") == "true" or os.getenv("GITHUB_ACTIONS") == "true"

    if is_ci:
        db_file = tmp_path / "test.db"
    else:
        test_db_dir = Path(__file__).parent.parent / "test_databases"
        test_db_dir.mkdir(exist_ok=True)

        test_name = request.node.name.replace("[", "_").replace("]", "")
        db_file = test_db_dir / f"{test_name}.db"

        if db_file.exists():
            db_file.unlink()
            wal_file = Path(str(db_file) + ".wal")
            if wal_file.exists():
                wal_file.unlink()

    yield db_file

    # On test failure: keep the database for debugging
    rep_call = getattr(request.node, "rep_call", None)
    if not is_ci and rep_call is not None and rep_call.passed:
        if db_file.exists():
            db_file.unlink()
        wal_file = Path(str(db_file) + ".wal")
        if wal_file.exists():
            wal_file.unlink()


@pytest.hookimpl(tryfirst=True, hookwrapper=True)
def pytest_runtest_makereport(item, call):
    """Hook to make test results available to fixtures.

    This allows the db_path fixture to know if the test passed or failed.
    """
    outcome = yield
    rep = outcome.get_result()
    setattr(item, f"rep_{rep.when}", rep)


@pytest.fixture
def engine() -> Generator[DuckDBEngine, None, None]:
    """In-memory engine with the results schema initialized."""
    engine = DuckDBEngine(":memory:", label="test")
    engine.initialize_schema()
    yield engine
    engine.close()


@pytest.fixture
def registry(engine) -> ExperimentRegistry:
    return ExperimentRegistry(engine)


@pytest.fixture
def make_model() -> Callable[..., ModelSnapshot]:
    """Factory for a small but complete model snapshot.

    Usage:
        model = make_model(experiment_name="Exp1", run_name="Run1")
    """

    def _make(
        experiment_name: str = "Exp1",
        run_name: str = "Run1",
        num_chunks: int = 1,
        number_of_replications: int = 2,
        wait_time: float = 4.5,
        batching: bool = False,
    ) -> ModelSnapshot:
        return ModelSnapshot(
            simulation_name="Pharmacy",
            experiment_name=experiment_name,
            name="PharmacyModel",
            run_name=run_name,
            number_of_replications=number_of_replications,
            num_chunks=num_chunks,
            length_of_replication=20000.0,
            length_of_warm_up=5000.0,
            max_allowed_exec_time_ms=60_000,
            model_elements=[
                ModelElementInfo(1, "PharmacyModel", "Model", 1, 6),
                ModelElementInfo(2, "Pharmacist", "ResourceWithQ", 2, 3, parent_id=1, parent_name="PharmacyModel"),
                ModelElementInfo(3, "ServiceTime", "RandomVariable", 4, 5, parent_id=1, parent_name="PharmacyModel"),
            ],
            controls=[
                ControlInfo(2, "Pharmacist.initialCapacity", "initialCapacity", "INTEGER", value=1.0, lower_bound=0.0),
            ],
            rv_parameters=[
                RvParameterInfo(3, "ExponentialRV", "DOUBLE", "ServiceTime", "mean", 0.5),
            ],
            responses=[
                ResponseInfo(
                    element_id=2,
                    within_rep=WeightedStatistic("Wait Time", count=100.0, weighted_average=wait_time),
                    across_rep=SummaryStatistic("Wait Time", count=2.0, average=wait_time, std_dev=0.1),
                ),
            ],
            counters=[
                CounterInfo(2, "Num Served", 100.0, SummaryStatistic("Num Served", count=2.0, average=100.0)),
            ],
            batch_statistics=[
                BatchStatisticInfo(2, BatchStatistic("Wait Time", count=10.0, average=wait_time, min_num_batches=20.0)),
            ]
            if batching
            else None,
            histograms=[
                HistogramInfo(
                    2,
                    response_id=2,
                    response_name="Wait Time",
                    bins=(
                        HistogramBin(1, "[0,5)", 0.0, 5.0, 60.0, 60.0, 0.6, 0.6),
                        HistogramBin(2, "[5,inf)", 5.0, None, 40.0, 100.0, 0.4, 1.0),
                    ),
                ),
            ],
            frequencies=[
                FrequencyInfo(2, "Num Busy", (FrequencyCell("0", 0, 30.0), FrequencyCell("1", 1, 70.0))),
            ],
            time_series=[
                TimeSeriesPeriod(2, rep_id=1, response_name="Wait Time", period=1, start_time=0.0, end_time=100.0, value=wait_time),
            ],
        )

    return _make


@pytest.fixture
def completed_experiment(registry, make_model) -> ModelSnapshot:
    """Run "Exp1"/"Run1" through the full lifecycle with two replications."""
    model = make_model()
    registry.begin_experiment(model)
    for rep_id in (1, 2):
        model.current_replication_id = rep_id
        registry.after_replication(model)
        model.number_replications_completed = rep_id
    registry.end_experiment(model)
    return model
