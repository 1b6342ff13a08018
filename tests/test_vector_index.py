"""FAISS-backed vector index tests."""

from __future__ import annotations

import pytest

pytest.importorskip("faiss")

from health_context.memory.storage import MemoryRepository, SqliteMemoryStore  # noqa: E402
from health_context.memory.storage.vector_index import FaissVectorIndex  # noqa: E402


def test_search_filters_to_user_and_ranks_by_cosine():
    index = FaissVectorIndex(3)
    index.add("a", "user-1", [1.0, 0.0, 0.0])
    index.add("b", "user-2", [1.0, 0.0, 0.0])
    index.add("c", "user-1", [0.0, 1.0, 0.0])

    results = index.search([2.0, 0.0, 0.0], user_id="user-1", candidates=50)

    assert [result.record_id for result in results] == ["a", "c"]
    assert results[0].score == pytest.approx(1.0)


def test_wrong_dimension_is_rejected():
    index = FaissVectorIndex(3)

    with pytest.raises(ValueError):
        index.add("a", "user-1", [1.0, 0.0])


def test_index_persists_with_labels(tmp_path):
    path = tmp_path / "memory.index"
    index = FaissVectorIndex(2, index_path=path)
    index.add("a", "user-1", [1.0, 0.0])

    reloaded = FaissVectorIndex(2, index_path=path)

    assert len(reloaded) == 1
    assert reloaded.search([1.0, 0.0], user_id="user-1", candidates=5)[0].record_id == "a"


def test_populate_skips_wrong_dimensions():
    index = FaissVectorIndex(2)

    index.populate([("a", "user-1", [1.0, 0.0]), ("b", "user-1", [1.0, 0.0, 0.0])])

    assert len(index) == 1


def test_repository_uses_faiss_index(tmp_path):
    store = SqliteMemoryStore(tmp_path / "memory.db")
    repository = MemoryRepository(store, vector_index=FaissVectorIndex(2))
    repository.append("user-1", "match", [1.0, 0.0])
    repository.append("user-1", "other", [0.0, 1.0])

    results = repository.query("user-1", [1.0, 0.0], k=1)

    assert [match.record.summary_text for match in results] == ["match"]
    assert results[0].score == pytest.approx(1.0)


def test_other_users_do_not_crowd_out_candidates(tmp_path):
    store = SqliteMemoryStore(tmp_path / "memory.db")
    repository = MemoryRepository(store, vector_index=FaissVectorIndex(2))
    for number in range(60):
        repository.append(f"crowd-{number}", f"crowd {number}", [1.0, 0.001 * number])
    repository.append("me", "mine-close", [1.0, 0.0])
    for number in range(4):
        repository.append("me", f"mine-far-{number}", [0.0, 1.0])

    results = repository.query("me", [1.0, 0.0], k=3)

    assert len(results) == 3
    assert results[0].record.summary_text == "mine-close"
    assert all(match.record.user_id == "me" for match in results)


def test_search_stops_at_candidate_count():
    index = FaissVectorIndex(2)
    for number in range(5):
        index.add(f"r{number}", "user-1", [1.0, 0.1 * number])

    assert len(index.search([1.0, 0.0], user_id="user-1", candidates=2)) == 2


def test_reloaded_index_picks_up_records_it_never_saw(tmp_path):
    index_path = tmp_path / "memory.index"
    store = SqliteMemoryStore(tmp_path / "memory.db")
    MemoryRepository(store, vector_index=FaissVectorIndex(2, index_path=index_path)).append(
        "user-1", "indexed", [0.0, 1.0]
    )
    MemoryRepository(store).append("user-1", "unindexed", [1.0, 0.0])

    reloaded = FaissVectorIndex(2, index_path=index_path)
    assert len(reloaded) == 1
    assert reloaded.populate(store.iter_embeddings()) == 1
    assert reloaded.populate(store.iter_embeddings()) == 0

    results = MemoryRepository(store, vector_index=reloaded).query("user-1", [1.0, 0.0], k=1)

    assert results[0].record.summary_text == "unindexed"
    assert len(FaissVectorIndex(2, index_path=index_path)) == 2
