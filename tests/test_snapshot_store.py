"""Tests for the one-row-per-user snapshot store."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from health_context.context.snapshot_store import SqliteSnapshotStore
from health_context.core.exceptions import DataAccessError, SnapshotConflictError


class TickingClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 5, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


def test_get_missing_user_returns_none(tmp_path):
    store = SqliteSnapshotStore(tmp_path / "context.db")

    assert store.get("nobody") is None


def test_upsert_round_trips_context(tmp_path):
    store = SqliteSnapshotStore(tmp_path / "context.db")
    context = {"user": {"id": "user-1"}, "symptoms": [{"type": "cramps"}], "cycle": None}

    store.upsert("user-1", context, "hash-1")
    snapshot = store.get("user-1")

    assert snapshot.context == context
    assert snapshot.hash == "hash-1"
    assert snapshot.updated_at.tzinfo is not None


def test_upsert_keeps_single_row_and_refreshes_timestamp(tmp_path):
    db_path = tmp_path / "context.db"
    store = SqliteSnapshotStore(db_path, clock=TickingClock())

    first = store.upsert("user-1", {"v": 1}, "hash-1")
    second = store.upsert("user-1", {"v": 1}, "hash-1")

    assert second.updated_at > first.updated_at
    with sqlite3.connect(db_path) as conn:
        count = conn.execute("SELECT COUNT(*) FROM context_snapshots WHERE user_id = ?", ("user-1",)).fetchone()[0]
    assert count == 1
    assert store.get("user-1").updated_at == second.updated_at


def test_expected_hash_guards_against_concurrent_writes(tmp_path):
    store = SqliteSnapshotStore(tmp_path / "context.db")
    store.upsert("user-1", {"v": 1}, "hash-1", expected_hash=None)

    with pytest.raises(SnapshotConflictError):
        store.upsert("user-1", {"v": 2}, "hash-2", expected_hash=None)
    with pytest.raises(SnapshotConflictError):
        store.upsert("user-1", {"v": 2}, "hash-2", expected_hash="stale")

    assert store.get("user-1").hash == "hash-1"

    store.upsert("user-1", {"v": 2}, "hash-2", expected_hash="hash-1")
    assert store.get("user-1").context == {"v": 2}


def test_unknown_schema_version_is_rejected(tmp_path):
    db_path = tmp_path / "context.db"
    store = SqliteSnapshotStore(db_path)
    store.upsert("user-1", {"v": 1}, "hash-1")
    with sqlite3.connect(db_path) as conn:
        conn.execute("UPDATE context_snapshots SET schema_version = 99 WHERE user_id = ?", ("user-1",))

    with pytest.raises(DataAccessError):
        store.get("user-1")


def test_malformed_envelope_is_rejected(tmp_path):
    db_path = tmp_path / "context.db"
    store = SqliteSnapshotStore(db_path)
    store.upsert("user-1", {"v": 1}, "hash-1")
    with sqlite3.connect(db_path) as conn:
        conn.execute("UPDATE context_snapshots SET context = '{\"v\": 1}' WHERE user_id = ?", ("user-1",))

    with pytest.raises(DataAccessError):
        store.get("user-1")


def test_snapshot_document_shape(tmp_path):
    store = SqliteSnapshotStore(tmp_path / "context.db")

    document = store.upsert("user-1", {"v": 1}, "hash-1").to_document()

    assert set(document) == {"userId", "context", "hash", "updatedAt"}
    assert document["userId"] == "user-1"
