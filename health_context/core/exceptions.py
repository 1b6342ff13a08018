"""Custom exception hierarchy for the health context pipeline."""

from __future__ import annotations


class ContextPipelineError(Exception):
    """Base class for project-specific exceptions."""


class ConfigError(ContextPipelineError):
    """Raised when configuration loading or validation fails."""


class DataAccessError(ContextPipelineError):
    """Raised when a record provider or persistent store cannot be read or written."""


class SnapshotConflictError(DataAccessError):
    """Raised when a snapshot changed between the pipeline's read and its upsert."""


class BackendError(ContextPipelineError):
    """Raised when a summarization, embedding or vector backend fails or misbehaves."""
