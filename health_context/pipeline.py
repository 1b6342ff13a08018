"""Orchestrates aggregation, change detection, archival and the snapshot upsert."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

from .context.aggregator import ContextAggregator
from .context.comparator import has_significant_change, hash_context
from .context.snapshot_store import SqliteSnapshotStore
from .core.exceptions import DataAccessError
from .core.logger import get_logger
from .memory.archiver import ContextArchiver
from .memory.memory_records import MemoryRecord


@dataclass(frozen=True, slots=True)
class PipelineResult:
    context: Dict[str, Any]
    changed: bool
    archived: Optional[MemoryRecord] = None

    def to_document(self) -> Dict[str, Any]:
        document: Dict[str, Any] = {"context": self.context, "changed": self.changed}
        if self.archived is not None:
            document["archived"] = self.archived.without_embedding().to_document()
        return document


class _UserLocks:
    """Hands out one lock per user id, dropping it once no run holds or waits on it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, List[Any]] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, user_id: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(user_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[user_id]


class ContextPipeline:
    """One invocation per call to :meth:`run`.

    ``changed`` and ``archived`` are independent: the first run for a user is
    always reported as changed but has nothing to archive. The previous
    snapshot stays authoritative until the final upsert succeeds; runs for the
    same user are serialised in-process and the upsert is conditioned on the
    hash read at the start, so a concurrent writer elsewhere surfaces as
    :class:`SnapshotConflictError` instead of a silent overwrite.
    """

    def __init__(
        self,
        *,
        aggregator: ContextAggregator,
        snapshots: SqliteSnapshotStore,
        archiver: ContextArchiver,
    ) -> None:
        self._aggregator = aggregator
        self._snapshots = snapshots
        self._archiver = archiver
        self._locks = _UserLocks()
        self._logger = get_logger(self.__class__.__name__)

    def run(self, user_id: str) -> PipelineResult:
        with self._locks.hold(user_id):
            try:
                return self._run(user_id)
            except DataAccessError:
                self._logger.error("Context pipeline failed for %s", user_id, exc_info=True)
                raise

    def _run(self, user_id: str) -> PipelineResult:
        context = self._aggregator.aggregate(user_id)
        context_hash = hash_context(context)
        previous = self._snapshots.get(user_id)
        previous_hash = previous.hash if previous else None

        changed = has_significant_change(previous_hash, context_hash)
        self._logger.debug(
            "Context hash for %s: %s (previous=%s, changed=%s)",
            user_id,
            context_hash[:12],
            previous_hash[:12] if previous_hash else None,
            changed,
        )

        archived: Optional[MemoryRecord] = None
        if changed and previous is not None:
            archived = self._archiver.archive(user_id, previous.hash, previous.context)

        self._snapshots.upsert(user_id, context, context_hash, expected_hash=previous_hash)
        return PipelineResult(context=context, changed=changed, archived=archived)
