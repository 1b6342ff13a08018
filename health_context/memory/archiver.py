"""Compress a superseded context into a stored memory record."""

from __future__ import annotations

from typing import Any, Mapping

from ..core.logger import get_logger
from .embedding import ContextEmbedder
from .memory_records import MemoryRecord
from .stats_reducer import StatsReducer
from .storage import MemoryRepository
from .summarizer import ContextSummarizer


class ContextArchiver:
    """Runs stats reduction, summarization, embedding and the append, in that order.

    Summarizer and embedder never raise (they fall back); a storage error from
    the append propagates to the caller.
    """

    def __init__(
        self,
        *,
        reducer: StatsReducer,
        summarizer: ContextSummarizer,
        embedder: ContextEmbedder,
        repository: MemoryRepository,
    ) -> None:
        self._reducer = reducer
        self._summarizer = summarizer
        self._embedder = embedder
        self._repository = repository
        self._logger = get_logger(self.__class__.__name__)

    def archive(self, user_id: str, source_hash: str, previous_context: Mapping[str, Any]) -> MemoryRecord:
        stats = self._reducer.reduce(previous_context)
        summary = self._summarizer.summarize(stats)
        embedding = self._embedder.embed(summary)
        record = self._repository.append(
            user_id,
            summary,
            embedding,
            {"sourceHash": source_hash, "stats": stats.as_dict()},
        )
        self._logger.info("Archived context %s for %s as memory %s", source_hash[:12], user_id, record.id)
        return record
