"""FAISS-based vector index for memory embeddings."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple

import faiss
import numpy as np

from ...core.logger import get_logger
from .base import VectorIndex, VectorIndexResult


class FaissVectorIndex(VectorIndex):
    """Inner-product index over L2-normalised vectors, i.e. cosine similarity.

    FAISS has no notion of owners, so each position keeps a
    ``(record_id, user_id)`` label and searches over-fetch candidates before
    filtering to one user.
    """

    def __init__(self, dimension: int, *, index_path: str | Path | None = None) -> None:
        self._dimension = dimension
        self._index_path = Path(index_path) if index_path else None
        self._logger = get_logger(self.__class__.__name__)
        self._index = faiss.IndexFlatIP(dimension)
        self._labels: List[Tuple[str, str]] = []
        if self._index_path and self._index_path.exists():
            self._load()

    def __len__(self) -> int:
        return len(self._labels)

    def add(self, record_id: str, user_id: str, embedding: Sequence[float]) -> None:
        vector = self._as_matrix([embedding])
        self._index.add(vector)
        self._labels.append((record_id, user_id))
        if self._index_path:
            self._save()

    def search(
        self,
        embedding: Sequence[float],
        *,
        user_id: str,
        candidates: int,
    ) -> Sequence[VectorIndexResult]:
        if not self._labels:
            return []
        vector = self._as_matrix([embedding])
        # A flat index scores every vector anyway; ranking the whole index
        # keeps other users' records from crowding this user's candidates out.
        similarities, indices = self._index.search(vector, len(self._labels))
        results: list[VectorIndexResult] = []
        for score, idx in zip(similarities[0], indices[0]):
            if idx == -1:
                continue
            record_id, owner = self._labels[idx]
            if owner == user_id:
                results.append(VectorIndexResult(record_id, float(score)))
                if len(results) >= candidates:
                    break
        return results

    def populate(self, entries: Iterable[Tuple[str, str, Sequence[float]]]) -> int:
        """Add stored embeddings the index does not know yet; returns how many were added.

        The SQLite store is authoritative: records written while the index was
        disabled, rejected by it, or saved by another process are picked up here.
        """
        known = {record_id for record_id, _ in self._labels}
        labels: list[Tuple[str, str]] = []
        vectors: list[Sequence[float]] = []
        for record_id, user_id, embedding in entries:
            if record_id in known:
                continue
            if len(embedding) != self._dimension:
                self._logger.warning("Skipping memory %s with %d dimensions", record_id, len(embedding))
                continue
            known.add(record_id)
            labels.append((record_id, user_id))
            vectors.append(embedding)
        if not vectors:
            return 0
        self._index.add(self._as_matrix(vectors))
        self._labels.extend(labels)
        if self._index_path:
            self._save()
        self._logger.debug("FAISS index populated with %d vectors (%d total)", len(labels), len(self._labels))
        return len(labels)

    def _as_matrix(self, vectors: Sequence[Sequence[float]]) -> np.ndarray:
        matrix = np.asarray(vectors, dtype="float32")
        if matrix.ndim != 2 or matrix.shape[1] != self._dimension:
            raise ValueError(f"Expected vectors of dimension {self._dimension}, got shape {matrix.shape}")
        faiss.normalize_L2(matrix)
        return matrix

    def _save(self) -> None:
        if not self._index_path:
            return
        self._index_path.parent.mkdir(parents=True, exist_ok=True)
        faiss.write_index(self._index, str(self._index_path))
        label_path = self._index_path.with_suffix(".labels")
        label_path.write_text("\n".join(json.dumps(label) for label in self._labels), encoding="utf-8")
        self._logger.debug("FAISS index saved to %s", self._index_path)

    def _load(self) -> None:
        if not self._index_path:
            return
        index = faiss.read_index(str(self._index_path))
        label_path = self._index_path.with_suffix(".labels")
        labels = []
        if label_path.exists():
            labels = [tuple(json.loads(line)) for line in label_path.read_text(encoding="utf-8").splitlines() if line]
        if index.d != self._dimension or index.ntotal != len(labels):
            self._logger.warning("Ignoring stale FAISS index at %s", self._index_path)
            return
        self._index = index
        self._labels = labels
        self._logger.debug("FAISS index loaded from %s", self._index_path)
