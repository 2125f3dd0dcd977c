"""Read a results store configuration from YAML.

The file holds the ``StoreConfig`` fields at top level::

    db_path: results/pharmacy.duckdb
    schema_name: pharmacy
    clear_data: false
"""
from pathlib import Path

import yaml

from .schemas import StoreConfig


def load_config(config_path: str | Path) -> StoreConfig:
    """Build a StoreConfig from a YAML file.

    ``db_path`` is returned as written; use ``StoreConfig.resolved_db_path``
    to anchor a relative path to the file's directory.

    Raises:
        FileNotFoundError: No file at ``config_path``
        ValueError: The file is empty or its fields fail validation
        yaml.YAMLError: The file is not valid YAML
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Store configuration not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f)

    if raw is None:
        raise ValueError(f"Empty configuration file: {path}")

    try:
        return StoreConfig.from_dict(raw)
    except Exception as e:
        raise ValueError(f"Invalid configuration in {path}: {e}") from e
