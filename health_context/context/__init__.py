"""Context assembly, change detection and snapshot persistence."""

from .aggregator import ContextAggregator
from .comparator import has_significant_change, hash_context, stable_stringify
from .snapshot_store import Snapshot, SqliteSnapshotStore

__all__ = [
    "ContextAggregator",
    "Snapshot",
    "SqliteSnapshotStore",
    "has_significant_change",
    "hash_context",
    "stable_stringify",
]
