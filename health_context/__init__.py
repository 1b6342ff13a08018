"""Health context pipeline: per-user context snapshots with an archive of summarised history."""

from .factory import create_context_service
from .pipeline import ContextPipeline, PipelineResult
from .service import ContextService

__all__ = [
    "ContextPipeline",
    "ContextService",
    "PipelineResult",
    "create_context_service",
]

__version__ = "0.1.0"
