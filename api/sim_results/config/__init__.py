"""Configuration module for the simulation results store."""
from .loader import load_config
from .schemas import StoreConfig

__all__ = [
    "StoreConfig",
    "load_config",
]
