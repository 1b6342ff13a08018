"""End-to-end tests for the context pipeline."""

from __future__ import annotations

import pytest

from health_context.context.aggregator import ContextAggregator
from health_context.context.comparator import hash_context
from health_context.context.snapshot_store import SqliteSnapshotStore
from health_context.core.exceptions import DataAccessError, SnapshotConflictError
from health_context.memory.archiver import ContextArchiver
from health_context.memory.embedding import ContextEmbedder
from health_context.memory.stats_reducer import StatsReducer
from health_context.memory.storage import MemoryRepository, SqliteMemoryStore
from health_context.memory.summarizer import ContextSummarizer
from health_context.pipeline import ContextPipeline
from health_context.sources import SqliteHealthRecords


class FailingMemoryStore(SqliteMemoryStore):
    def append(self, user_id, summary_text, embedding, meta=None):  # noqa: ANN001
        raise DataAccessError("memory store offline")


def _build(tmp_path, *, memory_store=None):
    db_path = tmp_path / "context.db"
    records = SqliteHealthRecords(db_path)
    snapshots = SqliteSnapshotStore(db_path)
    store = memory_store or SqliteMemoryStore(db_path)
    embedder = ContextEmbedder(dimension=32)
    repository = MemoryRepository(store, embedder=embedder)
    archiver = ContextArchiver(
        reducer=StatsReducer(),
        summarizer=ContextSummarizer(),
        embedder=embedder,
        repository=repository,
    )
    aggregator = ContextAggregator(cycles=records, symptoms=records, trackers=records, consent=records)
    pipeline = ContextPipeline(aggregator=aggregator, snapshots=snapshots, archiver=archiver)
    return pipeline, records, snapshots, store


def test_three_run_scenario(tmp_path):
    pipeline, records, snapshots, store = _build(tmp_path)
    records.save_tracker("user-1", {"cycleInfo": {"cycleDuration": 30}})

    first = pipeline.run("user-1")
    assert first.changed is True
    assert first.archived is None
    first_hash = snapshots.get("user-1").hash
    assert first_hash == hash_context(first.context)

    second = pipeline.run("user-1")
    assert second.changed is False
    assert second.archived is None
    assert store.recent("user-1", 10) == []

    records.save_tracker("user-1", {"cycleInfo": {"cycleDuration": 35}})
    third = pipeline.run("user-1")

    assert third.changed is True
    assert third.archived is not None
    assert "30" in third.archived.summary_text
    assert "35" not in third.archived.summary_text
    assert third.archived.source_hash == first_hash
    assert third.archived.stats["avgCycleLength"] == 30
    assert len(third.archived.embedding) == 32
    assert third.context["periodTracker"]["cycleInfo"]["cycleDuration"] == 35
    assert snapshots.get("user-1").hash == hash_context(third.context)
    assert len(store.recent("user-1", 10)) == 1


def test_unknown_user_gets_an_empty_context(tmp_path):
    pipeline, _, snapshots, _ = _build(tmp_path)

    result = pipeline.run("nobody")

    assert result.changed is True
    assert result.context["cycle"] is None
    assert snapshots.get("nobody") is not None


def test_archive_failure_leaves_previous_snapshot(tmp_path):
    pipeline, records, snapshots, _ = _build(tmp_path, memory_store=FailingMemoryStore(tmp_path / "memory.db"))
    records.save_tracker("user-1", {"cycleInfo": {"cycleDuration": 30}})
    pipeline.run("user-1")
    before = snapshots.get("user-1")

    records.save_tracker("user-1", {"cycleInfo": {"cycleDuration": 35}})
    with pytest.raises(DataAccessError):
        pipeline.run("user-1")

    after = snapshots.get("user-1")
    assert after.hash == before.hash
    assert after.context == before.context


def test_aggregation_failure_writes_nothing(tmp_path):
    db_path = tmp_path / "context.db"

    class BrokenRecords(SqliteHealthRecords):
        def latest_cycle(self, user_id):  # noqa: ANN001
            raise OSError("disk gone")

    records = BrokenRecords(db_path)
    snapshots = SqliteSnapshotStore(db_path)
    embedder = ContextEmbedder(dimension=8)
    archiver = ContextArchiver(
        reducer=StatsReducer(),
        summarizer=ContextSummarizer(),
        embedder=embedder,
        repository=MemoryRepository(SqliteMemoryStore(db_path)),
    )
    aggregator = ContextAggregator(cycles=records, symptoms=records, trackers=records, consent=records)
    pipeline = ContextPipeline(aggregator=aggregator, snapshots=snapshots, archiver=archiver)

    with pytest.raises(DataAccessError):
        pipeline.run("user-1")
    assert snapshots.get("user-1") is None


def test_concurrent_snapshot_write_is_reported(tmp_path):
    pipeline, records, snapshots, _ = _build(tmp_path)
    records.save_tracker("user-1", {"cycleInfo": {"cycleDuration": 30}})
    pipeline.run("user-1")

    class InterferingArchiver:
        def archive(self, user_id, source_hash, previous_context):  # noqa: ANN001
            snapshots.upsert(user_id, {"written": "elsewhere"}, "other-hash")
            return None

    pipeline._archiver = InterferingArchiver()
    records.save_tracker("user-1", {"cycleInfo": {"cycleDuration": 35}})

    with pytest.raises(SnapshotConflictError):
        pipeline.run("user-1")
    assert snapshots.get("user-1").hash == "other-hash"


def test_result_document_omits_embedding(tmp_path):
    pipeline, records, _, _ = _build(tmp_path)
    records.save_tracker("user-1", {"cycleInfo": {"cycleDuration": 30}})
    pipeline.run("user-1")
    records.save_tracker("user-1", {"cycleInfo": {"cycleDuration": 35}})

    document = pipeline.run("user-1").to_document()

    assert document["changed"] is True
    assert "embedding" not in document["archived"]
    assert document["archived"]["meta"]["stats"]["avgCycleLength"] == 30


def test_user_locks_are_released_after_runs(tmp_path):
    pipeline, records, _, _ = _build(tmp_path, memory_store=FailingMemoryStore(tmp_path / "memory.db"))
    records.save_tracker("user-1", {"cycleInfo": {"cycleDuration": 30}})

    for user_id in ("user-1", "user-2", "user-3"):
        pipeline.run(user_id)
    records.save_tracker("user-1", {"cycleInfo": {"cycleDuration": 35}})
    with pytest.raises(DataAccessError):
        pipeline.run("user-1")

    assert len(pipeline._locks) == 0


def test_runs_for_one_user_are_serialised(tmp_path):
    import threading

    pipeline, records, snapshots, store = _build(tmp_path)
    records.save_tracker("user-1", {"cycleInfo": {"cycleDuration": 30}})
    pipeline.run("user-1")
    records.save_tracker("user-1", {"cycleInfo": {"cycleDuration": 35}})

    errors: list[BaseException] = []

    def run() -> None:
        try:
            pipeline.run("user-1")
        except BaseException as exc:  # noqa: BLE001
            errors.append(exc)

    threads = [threading.Thread(target=run) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert len(store.recent("user-1", 10)) == 1
    assert len(pipeline._locks) == 0
