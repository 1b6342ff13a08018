"""SQLite-backed single-slot cache of each user's latest context."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional

from ..core.exceptions import DataAccessError, SnapshotConflictError
from ..core.logger import get_logger
from ..core.utils import utc_now

SNAPSHOT_SCHEMA_VERSION = 1

_SCHEMA = """
CREATE TABLE IF NOT EXISTS context_snapshots (
    user_id TEXT PRIMARY KEY,
    schema_version INTEGER NOT NULL,
    context TEXT NOT NULL,
    hash TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_context_snapshots_hash ON context_snapshots (hash);
"""


class _Unset:
    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return "UNSET"


UNSET: Any = _Unset()


@dataclass(frozen=True, slots=True)
class Snapshot:
    """The cached context for one user together with its content hash."""

    user_id: str
    context: Dict[str, Any]
    hash: str
    updated_at: datetime

    def to_document(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "context": self.context,
            "hash": self.hash,
            "updatedAt": self.updated_at.isoformat(),
        }


class SqliteSnapshotStore:
    """Keep exactly one snapshot row per user.

    Contexts are persisted inside a versioned envelope; a row written by an
    unknown schema version is reported as a :class:`DataAccessError` rather
    than being reinterpreted.
    """

    def __init__(self, database_path: str | Path, *, clock: Callable[[], datetime] = utc_now) -> None:
        self._path = Path(database_path)
        self._clock = clock
        self._logger = get_logger(self.__class__.__name__)
        self._initialise()

    def get(self, user_id: str) -> Optional[Snapshot]:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT user_id, schema_version, context, hash, updated_at FROM context_snapshots WHERE user_id = ?",
                    (user_id,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise DataAccessError(f"Failed to read snapshot for user {user_id}") from exc
        if row is None:
            return None
        return self._from_row(row)

    def upsert(
        self,
        user_id: str,
        context: Dict[str, Any],
        context_hash: str,
        *,
        expected_hash: Optional[str] = UNSET,
    ) -> Snapshot:
        """Replace the user's snapshot in a single statement.

        Passing ``expected_hash`` (a hash, or ``None`` for "no snapshot yet")
        turns the write into a compare-and-set: it raises
        :class:`SnapshotConflictError` when the stored hash no longer matches.
        """
        updated_at = self._clock()
        envelope = json.dumps(
            {"schemaVersion": SNAPSHOT_SCHEMA_VERSION, "context": context},
            ensure_ascii=False,
        )
        params = {
            "user_id": user_id,
            "schema_version": SNAPSHOT_SCHEMA_VERSION,
            "context": envelope,
            "hash": context_hash,
            "updated_at": updated_at.isoformat(),
        }
        try:
            with self._connect(immediate=expected_hash is not UNSET) as conn:
                if expected_hash is not UNSET:
                    row = conn.execute(
                        "SELECT hash FROM context_snapshots WHERE user_id = ?", (user_id,)
                    ).fetchone()
                    current = row[0] if row else None
                    if current != expected_hash:
                        raise SnapshotConflictError(
                            f"Snapshot for user {user_id} changed concurrently "
                            f"(expected {expected_hash!r}, found {current!r})"
                        )
                conn.execute(
                    """
                    INSERT INTO context_snapshots (user_id, schema_version, context, hash, updated_at)
                    VALUES (:user_id, :schema_version, :context, :hash, :updated_at)
                    ON CONFLICT(user_id) DO UPDATE SET
                        schema_version = excluded.schema_version,
                        context = excluded.context,
                        hash = excluded.hash,
                        updated_at = excluded.updated_at
                    """,
                    params,
                )
        except sqlite3.Error as exc:
            raise DataAccessError(f"Failed to save snapshot for user {user_id}") from exc

        self._logger.debug("Snapshot saved for %s (hash=%s)", user_id, context_hash[:12])
        return Snapshot(user_id=user_id, context=context, hash=context_hash, updated_at=updated_at)

    def _from_row(self, row: tuple) -> Snapshot:
        user_id, schema_version, raw_context, context_hash, updated_at = row
        if schema_version != SNAPSHOT_SCHEMA_VERSION:
            raise DataAccessError(
                f"Snapshot for user {user_id} uses unsupported schema version {schema_version}"
            )
        try:
            envelope = json.loads(raw_context)
        except json.JSONDecodeError as exc:
            raise DataAccessError(f"Snapshot for user {user_id} is not valid JSON") from exc
        if not isinstance(envelope, dict) or envelope.get("schemaVersion") != SNAPSHOT_SCHEMA_VERSION:
            raise DataAccessError(f"Snapshot envelope for user {user_id} is malformed")

        timestamp = datetime.fromisoformat(updated_at)
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return Snapshot(
            user_id=user_id,
            context=envelope.get("context") or {},
            hash=context_hash,
            updated_at=timestamp,
        )

    @contextmanager
    def _connect(self, *, immediate: bool = False) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._path, isolation_level=None)
        try:
            conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    def _initialise(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self._path)
        try:
            conn.executescript(_SCHEMA)
            conn.commit()
        finally:
            conn.close()
        self._logger.debug("SQLite snapshot store initialised at %s", self._path)
