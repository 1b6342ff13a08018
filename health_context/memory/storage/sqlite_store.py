"""SQLite-backed append-only log of context memories."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple
from uuid import uuid4

from ...core.exceptions import DataAccessError
from ...core.logger import get_logger
from ...core.utils import utc_now
from ..memory_records import MemoryRecord
from .base import BaseMemoryStore

SUMMARY_MAX_CHARS = 2500

_SCHEMA = """
CREATE TABLE IF NOT EXISTS context_memories (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    summary_text TEXT NOT NULL,
    embedding TEXT NOT NULL,
    created_at TEXT NOT NULL,
    source_hash TEXT,
    stats TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_context_memories_user_created ON context_memories (user_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_context_memories_source_hash ON context_memories (source_hash);
"""

_COLUMNS = "id, user_id, summary_text, embedding, created_at, source_hash, stats"


class SqliteMemoryStore(BaseMemoryStore):
    """Persist memory records in a lightweight SQLite database."""

    def __init__(
        self,
        database_path: str | Path,
        *,
        summary_max_chars: int = SUMMARY_MAX_CHARS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._path = Path(database_path)
        self._summary_max_chars = summary_max_chars
        self._clock = clock
        self._logger = get_logger(self.__class__.__name__)
        self._initialise()

    def append(
        self,
        user_id: str,
        summary_text: str,
        embedding: Sequence[float],
        meta: Optional[Dict[str, Any]] = None,
    ) -> MemoryRecord:
        if not summary_text:
            raise ValueError("Memory records require a summary.")
        if len(summary_text) > self._summary_max_chars:
            raise ValueError(f"Summary exceeds {self._summary_max_chars} characters.")

        meta = meta or {}
        record = MemoryRecord(
            id=str(uuid4()),
            user_id=user_id,
            summary_text=summary_text,
            embedding=[float(value) for value in embedding],
            source_hash=meta.get("sourceHash"),
            stats=dict(meta.get("stats") or {}),
            created_at=self._clock(),
        )
        try:
            with self._connect() as conn:
                conn.execute(
                    f"INSERT INTO context_memories ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        record.id,
                        record.user_id,
                        record.summary_text,
                        json.dumps(record.embedding),
                        record.created_at.isoformat(),
                        record.source_hash,
                        json.dumps(record.stats, ensure_ascii=False),
                    ),
                )
        except sqlite3.Error as exc:
            raise DataAccessError(f"Failed to store memory for user {user_id}") from exc

        self._logger.debug("Stored memory %s for %s", record.id, user_id)
        return record

    def get_many(self, record_ids: Iterable[str]) -> Dict[str, MemoryRecord]:
        ids = list(dict.fromkeys(record_ids))
        if not ids:
            return {}
        placeholders = ",".join("?" for _ in ids)
        rows = self._fetch(f"SELECT {_COLUMNS} FROM context_memories WHERE id IN ({placeholders})", ids)
        return {row[0]: self._from_row(row) for row in rows}

    def recent(self, user_id: str, limit: int) -> List[MemoryRecord]:
        rows = self._fetch(
            f"SELECT {_COLUMNS} FROM context_memories WHERE user_id = ? "
            "ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (user_id, limit),
        )
        return [self._from_row(row) for row in rows]

    def iter_embeddings(self) -> Iterable[Tuple[str, str, List[float]]]:
        rows = self._fetch("SELECT id, user_id, embedding FROM context_memories ORDER BY rowid", ())
        for record_id, user_id, raw_embedding in rows:
            embedding = json.loads(raw_embedding)
            if embedding:
                yield record_id, user_id, embedding

    def _fetch(self, sql: str, params: Sequence[Any]) -> List[tuple]:
        try:
            with self._connect() as conn:
                return conn.execute(sql, tuple(params)).fetchall()
        except sqlite3.Error as exc:
            raise DataAccessError("Failed to read context memories") from exc

    @staticmethod
    def _from_row(row: tuple) -> MemoryRecord:
        record_id, user_id, summary_text, raw_embedding, created_at, source_hash, raw_stats = row
        timestamp = datetime.fromisoformat(created_at)
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return MemoryRecord(
            id=record_id,
            user_id=user_id,
            summary_text=summary_text,
            embedding=json.loads(raw_embedding),
            source_hash=source_hash,
            stats=json.loads(raw_stats),
            created_at=timestamp,
        )

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._path)
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _initialise(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(_SCHEMA)
        self._logger.debug("SQLite memory store initialised at %s", self._path)
