"""Simulation results store: experiments, runs and statistics in DuckDB."""

__version__ = "0.1.0"
