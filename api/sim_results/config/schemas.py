"""Pydantic schemas for store configuration."""
from pathlib import Path

from pydantic import BaseModel, Field, field_validator


class StoreConfig(BaseModel):
    """Where simulation results are stored and how the store starts up.

    Example YAML:

        db_path: results/pharmacy.duckdb
        schema_name: sim_results
        clear_data: false
    """

    db_path: str = Field("simulation_results.duckdb", description="DuckDB file, or ':memory:'")
    schema_name: str | None = Field(None, description="Schema holding the results tables")
    clear_data: bool = Field(False, description="Empty every results table on startup")

    @field_validator("schema_name")
    @classmethod
    def validate_schema_name(cls, v: str | None) -> str | None:
        """Schema names are interpolated into SQL, so only identifiers are accepted."""
        if v is not None and not v.isidentifier():
            raise ValueError(f"schema_name must be a plain identifier, got {v!r}")
        return v

    @classmethod
    def from_dict(cls, config_dict: dict) -> "StoreConfig":
        return cls.model_validate(config_dict)

    def resolved_db_path(self, base_dir: Path | None = None) -> str:
        """db_path, made relative to ``base_dir`` unless absolute or in-memory."""
        if self.db_path == ":memory:" or base_dir is None:
            return self.db_path
        path = Path(self.db_path)
        return str(path if path.is_absolute() else base_dir / path)
