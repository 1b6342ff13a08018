"""Storage backends for context memories."""

from .base import BaseMemoryStore, VectorIndex, VectorIndexResult
from .repository import MemoryRepository, cosine_similarity
from .sqlite_store import SqliteMemoryStore

__all__ = [
    "BaseMemoryStore",
    "MemoryRepository",
    "SqliteMemoryStore",
    "VectorIndex",
    "VectorIndexResult",
    "cosine_similarity",
]
