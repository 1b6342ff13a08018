"""Memory subsystem: stats, summaries, embeddings and the archive store."""

from .archiver import ContextArchiver
from .embedding import ContextEmbedder, GeminiEmbeddingBackend, hash_embedding
from .memory_records import CycleStats, MemoryRecord, ScoredMemory
from .stats_reducer import StatsReducer
from .storage import (
    BaseMemoryStore,
    MemoryRepository,
    SqliteMemoryStore,
    VectorIndex,
    VectorIndexResult,
)
from .summarizer import ContextSummarizer, fallback_summary

__all__ = [
    "ContextArchiver",
    "ContextEmbedder",
    "ContextSummarizer",
    "CycleStats",
    "GeminiEmbeddingBackend",
    "MemoryRecord",
    "MemoryRepository",
    "ScoredMemory",
    "SqliteMemoryStore",
    "StatsReducer",
    "BaseMemoryStore",
    "VectorIndex",
    "VectorIndexResult",
    "fallback_summary",
    "hash_embedding",
]
