"""Text embeddings with a pluggable backend and a deterministic hash fallback."""

from __future__ import annotations

import math
import re
from typing import Any, List, Optional, Protocol, Sequence

import numpy as np

from ..core.exceptions import BackendError
from ..core.logger import get_logger

DEFAULT_DIMENSION = 256
DEFAULT_MAX_CHARS = 4000

_FNV_OFFSET = 0x811C9DC5
_FNV_PRIME = 0x01000193
_TOKEN_SPLIT = re.compile(r"\W+")


class EmbeddingBackend(Protocol):
    def embed_single(self, text: str) -> Sequence[float]: ...


def fnv1a_32(token: str) -> int:
    """32-bit FNV-1a over the UTF-8 bytes of ``token``."""
    value = _FNV_OFFSET
    for byte in token.encode("utf-8"):
        value ^= byte
        value = (value * _FNV_PRIME) & 0xFFFFFFFF
    return value


def hash_embedding(text: str, dimension: int = DEFAULT_DIMENSION) -> List[float]:
    """Bag-of-tokens embedding: each token adds one to ``hash % dimension``, then L2-normalise."""
    vector = np.zeros(dimension, dtype=np.float64)
    for token in _TOKEN_SPLIT.split(text.lower()):
        if token:
            vector[fnv1a_32(token) % dimension] += 1.0
    norm = float(np.linalg.norm(vector)) or 1.0
    return (vector / norm).tolist()


class GeminiEmbeddingBackend:
    """Embedding backend backed by :meth:`AIBrain.embed_text`."""

    def __init__(self, brain: Any, *, dimension: int = DEFAULT_DIMENSION) -> None:
        self._brain = brain
        self._dimension = dimension

    def embed_single(self, text: str) -> List[float]:
        return self._brain.embed_text(text, output_dimensionality=self._dimension)


class ContextEmbedder:
    """Embed summaries into fixed-length vectors.

    Input is truncated to ``max_chars`` before reaching the backend. Backend
    errors and malformed vectors (wrong length, non-finite values) fall back
    to :func:`hash_embedding`. Empty or whitespace-only text yields ``[]``.
    """

    def __init__(
        self,
        backend: Optional[EmbeddingBackend] = None,
        *,
        dimension: int = DEFAULT_DIMENSION,
        max_chars: int = DEFAULT_MAX_CHARS,
    ) -> None:
        self._backend = backend
        self._dimension = dimension
        self._max_chars = max_chars
        self._logger = get_logger(self.__class__.__name__)

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str) -> List[float]:
        if not isinstance(text, str) or not text.strip():
            return []
        if self._backend is None:
            return hash_embedding(text, self._dimension)

        try:
            raw = self._backend.embed_single(text[: self._max_chars])
            return self._validate(raw)
        except Exception as exc:
            self._logger.warning("Embedding backend failed, using hash embedding: %s", exc)
            return hash_embedding(text, self._dimension)

    def _validate(self, raw: Any) -> List[float]:
        if not isinstance(raw, (list, tuple, np.ndarray)):
            raise BackendError(f"Embedding backend returned {type(raw).__name__}, expected a vector")
        if len(raw) != self._dimension:
            raise BackendError(f"Embedding backend returned {len(raw)} values, expected {self._dimension}")
        vector = [float(value) for value in raw]
        if not all(math.isfinite(value) for value in vector):
            raise BackendError("Embedding backend returned non-finite values")
        return vector
