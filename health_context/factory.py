"""Factory helpers for wiring the context pipeline from configuration."""

from __future__ import annotations

import os
from datetime import timedelta
from typing import Optional, Protocol

# Allow duplicated OpenMP runtimes (PyTorch/FAISS on macOS can each bundle libomp).
os.environ.setdefault("KMP_DUPLICATE_LIB_OK", "TRUE")

from .ai_brain import AIBrain
from .context.aggregator import ContextAggregator
from .context.snapshot_store import SqliteSnapshotStore
from .core.config import Config
from .core.exceptions import BackendError
from .core.logger import get_logger
from .memory.archiver import ContextArchiver
from .memory.embedding import ContextEmbedder, EmbeddingBackend, GeminiEmbeddingBackend
from .memory.stats_reducer import StatsReducer
from .memory.storage import MemoryRepository, SqliteMemoryStore, VectorIndex
from .memory.summarizer import ContextSummarizer
from .pipeline import ContextPipeline
from .service import ContextService
from .sources import SqliteHealthRecords


class HealthRecordSources(Protocol):
    """Any object serving cycles, symptoms, trackers and consent."""

    def latest_cycle(self, user_id: str): ...
    def recent_symptoms(self, user_id: str, limit: int): ...
    def active_tracker(self, user_id: str): ...
    def ai_consent(self, user_id: str) -> bool: ...


_logger = get_logger("ContextServiceFactory")


def create_brain(config: Config) -> Optional[AIBrain]:
    """Return a Gemini adapter, or ``None`` when no API key is configured."""
    if not config.gemini_api_key:
        _logger.info("GEMINI_API_KEY not set; summaries and embeddings use deterministic fallbacks")
        return None
    try:
        return AIBrain(config)
    except BackendError as exc:
        _logger.warning("Gemini client unavailable, using fallbacks: %s", exc)
        return None


def create_embedding_backend(config: Config, brain: Optional[AIBrain]) -> Optional[EmbeddingBackend]:
    if config.embedding_backend == "hash":
        return None
    if config.embedding_backend == "gemini":
        if brain is None:
            return None
        return GeminiEmbeddingBackend(brain, dimension=config.embedding_dimension)
    try:
        from .memory.qwen_embedding import QwenEmbeddingModel

        return QwenEmbeddingModel(dimension=config.embedding_dimension)
    except BackendError as exc:
        _logger.warning("Qwen embedding backend unavailable, using hash embeddings: %s", exc)
        return None


def create_vector_index(config: Config, store: SqliteMemoryStore) -> Optional[VectorIndex]:
    if config.vector_index_backend == "none":
        return None
    try:
        from .memory.storage.vector_index import FaissVectorIndex

        index = FaissVectorIndex(config.embedding_dimension, index_path=config.vector_index_path)
        index.populate(store.iter_embeddings())
    except Exception as exc:
        _logger.warning("FAISS index unavailable, memory queries will scan recent records: %s", exc)
        return None
    return index


def create_context_service(
    config: Optional[Config] = None,
    *,
    sources: Optional[HealthRecordSources] = None,
) -> ContextService:
    """Instantiate the full pipeline: SQLite stores, optional Gemini and FAISS backends."""
    config = config or Config.load()
    _logger.debug("Initialising context service", extra={"config": config.as_dict()})

    sources = sources or SqliteHealthRecords(config.database_path)
    brain = create_brain(config)

    memory_store = SqliteMemoryStore(config.database_path, summary_max_chars=config.summary_max_chars)
    embedder = ContextEmbedder(
        create_embedding_backend(config, brain),
        dimension=config.embedding_dimension,
        max_chars=config.embedding_max_chars,
    )
    repository = MemoryRepository(
        memory_store,
        vector_index=create_vector_index(config, memory_store),
        embedder=embedder,
        scan_limit=config.memory_scan_limit,
    )
    summarizer = ContextSummarizer(
        brain,
        max_output_tokens=config.summary_max_output_tokens,
        max_chars=config.summary_max_chars,
        timeout=config.backend_timeout,
    )
    snapshots = SqliteSnapshotStore(config.database_path)
    aggregator = ContextAggregator(
        cycles=sources,
        symptoms=sources,
        trackers=sources,
        consent=sources,
        symptom_window=config.symptom_window,
    )
    archiver = ContextArchiver(
        reducer=StatsReducer(window=config.symptom_window),
        summarizer=summarizer,
        embedder=embedder,
        repository=repository,
    )
    pipeline = ContextPipeline(aggregator=aggregator, snapshots=snapshots, archiver=archiver)
    return ContextService(
        pipeline=pipeline,
        snapshots=snapshots,
        repository=repository,
        snapshot_ttl=timedelta(hours=config.snapshot_ttl_hours),
    )
