"""Core utilities for the health context pipeline."""

from .config import Config  # noqa: F401
from .exceptions import (  # noqa: F401
    BackendError,
    ConfigError,
    ContextPipelineError,
    DataAccessError,
    SnapshotConflictError,
)
from .logger import get_logger, setup_logging  # noqa: F401

__all__ = [
    "BackendError",
    "Config",
    "ConfigError",
    "ContextPipelineError",
    "DataAccessError",
    "SnapshotConflictError",
    "get_logger",
    "setup_logging",
]
