"""Interfaces for memory storage and vector index operations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ..memory_records import MemoryRecord


class BaseMemoryStore(ABC):
    """Append-only persistence for memory records. No update or delete is exposed."""

    @abstractmethod
    def append(
        self,
        user_id: str,
        summary_text: str,
        embedding: Sequence[float],
        meta: Optional[Dict[str, Any]] = None,
    ) -> MemoryRecord:
        """Persist a new record and return it."""

    @abstractmethod
    def get_many(self, record_ids: Iterable[str]) -> Dict[str, MemoryRecord]:
        """Return the records with the given ids, keyed by id."""

    @abstractmethod
    def recent(self, user_id: str, limit: int) -> List[MemoryRecord]:
        """Return up to ``limit`` of the user's records, newest first."""

    @abstractmethod
    def iter_embeddings(self) -> Iterable[Tuple[str, str, List[float]]]:
        """Yield ``(record_id, user_id, embedding)`` for every record with a vector."""


class VectorIndex(ABC):
    """Vector similarity index for memory search."""

    @abstractmethod
    def add(self, record_id: str, user_id: str, embedding: Sequence[float]) -> None:
        """Insert the embedding for a record."""

    @abstractmethod
    def search(
        self,
        embedding: Sequence[float],
        *,
        user_id: str,
        candidates: int,
    ) -> Sequence["VectorIndexResult"]:
        """Return the best matches among the user's records, best first."""


class VectorIndexResult:
    """Result entry returned by vector similarity searches."""

    __slots__ = ("record_id", "score")

    def __init__(self, record_id: str, score: float) -> None:
        self.record_id = record_id
        self.score = score

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"VectorIndexResult(record_id={self.record_id!r}, score={self.score!r})"
