"""High-level memory repository combining the record store and vector index."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from ...core.logger import get_logger
from ..embedding import ContextEmbedder
from ..memory_records import MemoryRecord, ScoredMemory
from .base import BaseMemoryStore, VectorIndex

DEFAULT_SCAN_LIMIT = 200
MIN_INDEX_CANDIDATES = 50


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine over the overlapping prefix of two vectors; zero norms count as one."""
    length = min(len(a), len(b))
    if not length:
        return 0.0
    left = np.asarray(a[:length], dtype=np.float64)
    right = np.asarray(b[:length], dtype=np.float64)
    denominator = float(np.linalg.norm(left) * np.linalg.norm(right)) or 1.0
    return float(np.dot(left, right)) / denominator


class MemoryRepository:
    """Appends archived memories and answers top-k similarity queries.

    Queries go to the vector index first; when it is absent, raises, or finds
    nothing for the user, the user's most recent records are scored by brute
    force instead.
    """

    def __init__(
        self,
        store: BaseMemoryStore,
        *,
        vector_index: VectorIndex | None = None,
        embedder: ContextEmbedder | None = None,
        scan_limit: int = DEFAULT_SCAN_LIMIT,
    ) -> None:
        self._store = store
        self._vector_index = vector_index
        self._embedder = embedder
        self._scan_limit = scan_limit
        self._logger = get_logger(self.__class__.__name__)

    @property
    def store(self) -> BaseMemoryStore:
        return self._store

    def append(
        self,
        user_id: str,
        summary_text: str,
        embedding: Sequence[float],
        meta: Optional[Dict[str, Any]] = None,
    ) -> MemoryRecord:
        record = self._store.append(user_id, summary_text, embedding, meta)
        if self._vector_index is not None and record.embedding:
            try:
                self._vector_index.add(record.id, user_id, record.embedding)
            except Exception as exc:
                self._logger.warning("Vector index rejected memory %s: %s", record.id, exc)
        return record

    def query(self, user_id: str, query_embedding: Sequence[float], k: int = 5) -> List[ScoredMemory]:
        if k <= 0 or not query_embedding:
            return []

        if self._vector_index is not None:
            try:
                matches = self._index_query(user_id, query_embedding, k)
            except Exception as exc:
                self._logger.warning("Vector index query failed, scanning recent memories: %s", exc)
            else:
                if matches:
                    return matches
                self._logger.debug("Vector index returned nothing for %s, scanning recent memories", user_id)

        return self._scan_query(user_id, query_embedding, k)

    def search_text(self, user_id: str, text: str, k: int = 5) -> List[ScoredMemory]:
        if self._embedder is None:
            raise ValueError("search_text requires an embedder.")
        return self.query(user_id, self._embedder.embed(text), k)

    def _index_query(self, user_id: str, query_embedding: Sequence[float], k: int) -> List[ScoredMemory]:
        candidates = max(MIN_INDEX_CANDIDATES, 10 * k)
        results = self._vector_index.search(query_embedding, user_id=user_id, candidates=candidates)
        if not results:
            return []
        records = self._store.get_many(result.record_id for result in results)
        scored = [
            ScoredMemory(record=records[result.record_id].without_embedding(), score=result.score)
            for result in results
            if result.record_id in records and records[result.record_id].user_id == user_id
        ]
        scored.sort(key=lambda match: match.score, reverse=True)
        return scored[:k]

    def _scan_query(self, user_id: str, query_embedding: Sequence[float], k: int) -> List[ScoredMemory]:
        recent = self._store.recent(user_id, self._scan_limit)
        scored = [
            ScoredMemory(
                record=record.without_embedding(),
                score=cosine_similarity(query_embedding, record.embedding or []),
            )
            for record in recent
        ]
        scored.sort(key=lambda match: match.score, reverse=True)
        return scored[:k]
