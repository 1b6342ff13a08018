"""SQLite-backed implementation of every record provider."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterator, List, Mapping, Optional
from uuid import uuid4

from ..core.logger import get_logger
from ..core.utils import utc_now
from .base import (
    ConsentProvider,
    CycleRecordProvider,
    PeriodTrackerProvider,
    RawRecord,
    SymptomEntryProvider,
)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    user_id TEXT PRIMARY KEY,
    ai_consent INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE IF NOT EXISTS cycles (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    start_date TEXT NOT NULL,
    payload TEXT NOT NULL,
    UNIQUE (user_id, start_date)
);
CREATE INDEX IF NOT EXISTS idx_cycles_user_start ON cycles (user_id, start_date DESC);
CREATE TABLE IF NOT EXISTS symptom_entries (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    entry_date TEXT NOT NULL,
    payload TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_symptoms_user_date ON symptom_entries (user_id, entry_date DESC);
CREATE TABLE IF NOT EXISTS period_trackers (
    user_id TEXT PRIMARY KEY,
    is_active INTEGER NOT NULL DEFAULT 1,
    updated_at TEXT NOT NULL,
    payload TEXT NOT NULL
);
"""


def _json_default(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serialisable")


def _dumps(payload: Mapping[str, Any]) -> str:
    return json.dumps(dict(payload), ensure_ascii=False, default=_json_default)


def _iso(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


class SqliteHealthRecords(CycleRecordProvider, SymptomEntryProvider, PeriodTrackerProvider, ConsentProvider):
    """Store raw cycle, symptom, tracker and consent records in one SQLite file.

    Records are kept as JSON payloads so the aggregator sees them exactly as
    they were written. Errors from SQLite propagate unchanged; the aggregator
    is responsible for classifying them.
    """

    def __init__(self, database_path: str | Path) -> None:
        self._path = Path(database_path)
        self._logger = get_logger(self.__class__.__name__)
        self._initialise()

    # -- providers -----------------------------------------------------

    def latest_cycle(self, user_id: str) -> Optional[RawRecord]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT payload FROM cycles WHERE user_id = ? ORDER BY start_date DESC LIMIT 1",
                (user_id,),
            ).fetchone()
        return json.loads(row[0]) if row else None

    def recent_symptoms(self, user_id: str, limit: int) -> List[RawRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT payload FROM symptom_entries WHERE user_id = ? ORDER BY entry_date DESC LIMIT ?",
                (user_id, limit),
            ).fetchall()
        return [json.loads(row[0]) for row in rows]

    def active_tracker(self, user_id: str) -> Optional[RawRecord]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT payload FROM period_trackers WHERE user_id = ? AND is_active = 1",
                (user_id,),
            ).fetchone()
        return json.loads(row[0]) if row else None

    def ai_consent(self, user_id: str) -> bool:
        with self._connect() as conn:
            row = conn.execute("SELECT ai_consent FROM users WHERE user_id = ?", (user_id,)).fetchone()
        return bool(row and row[0] == 1)

    # -- writers -------------------------------------------------------

    def set_consent(self, user_id: str, granted: bool) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO users (user_id, ai_consent) VALUES (?, ?)
                ON CONFLICT(user_id) DO UPDATE SET ai_consent = excluded.ai_consent
                """,
                (user_id, 1 if granted else 0),
            )

    def add_cycle(self, user_id: str, record: Mapping[str, Any]) -> str:
        """Insert or replace the cycle that starts on ``record['startDate']``."""
        if "startDate" not in record:
            raise ValueError("Cycle records require a startDate.")
        record_id = str(record.get("id") or uuid4())
        payload = {**record, "id": record_id, "user": user_id}
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO cycles (id, user_id, start_date, payload) VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id, start_date) DO UPDATE SET payload = excluded.payload
                """,
                (record_id, user_id, _iso(record["startDate"]), _dumps(payload)),
            )
        return record_id

    def add_symptom_entry(self, user_id: str, record: Mapping[str, Any]) -> str:
        record_id = str(record.get("id") or uuid4())
        entry_date = record.get("date") or utc_now()
        payload = {**record, "id": record_id, "user": user_id, "date": _iso(entry_date)}
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO symptom_entries (id, user_id, entry_date, payload) VALUES (?, ?, ?, ?)",
                (record_id, user_id, _iso(entry_date), _dumps(payload)),
            )
        return record_id

    def save_tracker(self, user_id: str, record: Mapping[str, Any]) -> None:
        """Replace the user's period tracker; ``isActive`` defaults to true."""
        is_active = record.get("isActive", True) is not False
        payload = {**record, "userId": user_id, "isActive": is_active}
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO period_trackers (user_id, is_active, updated_at, payload) VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    is_active = excluded.is_active,
                    updated_at = excluded.updated_at,
                    payload = excluded.payload
                """,
                (user_id, 1 if is_active else 0, utc_now().isoformat(), _dumps(payload)),
            )

    # -- internals -----------------------------------------------------

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
        self._logger.debug("SQLite health records initialised at %s", self._path)
