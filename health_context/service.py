"""High-level coordinator for running the pipeline and reading its outputs."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from .context.snapshot_store import Snapshot, SqliteSnapshotStore
from .core.logger import get_logger
from .core.utils import utc_now
from .memory.memory_records import ScoredMemory
from .memory.storage import MemoryRepository
from .pipeline import ContextPipeline, PipelineResult


class ContextService:
    """Bundles the pipeline with snapshot and memory reads for callers."""

    def __init__(
        self,
        *,
        pipeline: ContextPipeline,
        snapshots: SqliteSnapshotStore,
        repository: MemoryRepository,
        snapshot_ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._pipeline = pipeline
        self._snapshots = snapshots
        self._repository = repository
        self._snapshot_ttl = snapshot_ttl
        self._clock = clock
        self._logger = get_logger(self.__class__.__name__)

    @property
    def repository(self) -> MemoryRepository:
        return self._repository

    def run(self, user_id: str) -> PipelineResult:
        return self._pipeline.run(user_id)

    def current_snapshot(self, user_id: str) -> Optional[Snapshot]:
        return self._snapshots.get(user_id)

    def get_cached_context(self, user_id: str) -> Dict[str, Any]:
        """Serve the stored context while it is fresh, otherwise refresh through the pipeline."""
        snapshot = self._snapshots.get(user_id)
        if snapshot is not None and self._clock() - snapshot.updated_at < self._snapshot_ttl:
            self._logger.debug("Serving cached context for %s", user_id)
            return snapshot.context
        return self._pipeline.run(user_id).context

    def search_memories(self, user_id: str, text: str, k: int = 5) -> List[ScoredMemory]:
        return self._repository.search_text(user_id, text, k)
