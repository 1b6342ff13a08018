"""Data contracts for archived context memories."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..core.utils import utc_now


@dataclass(slots=True)
class CycleStats:
    """Rule-based compression of a superseded context.

    Optional fields stay ``None`` when their inputs were absent and are left
    out of :meth:`as_dict` entirely.
    """

    avg_cycle_length: Optional[float] = None
    irregular_cycle: Optional[bool] = None
    symptom_frequency: Dict[str, int] = field(default_factory=dict)
    days_until_next_period: Optional[int] = None

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.avg_cycle_length is not None:
            payload["avgCycleLength"] = self.avg_cycle_length
        if self.irregular_cycle is not None:
            payload["irregularCycle"] = self.irregular_cycle
        payload["symptomFrequency"] = dict(self.symptom_frequency)
        if self.days_until_next_period is not None:
            payload["daysUntilNextPeriod"] = self.days_until_next_period
        return payload


@dataclass(frozen=True, slots=True)
class MemoryRecord:
    """Immutable archived summary of a context that was replaced."""

    id: str
    user_id: str
    summary_text: str
    embedding: Optional[List[float]]
    source_hash: Optional[str]
    stats: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)

    @property
    def meta(self) -> Dict[str, Any]:
        return {"sourceHash": self.source_hash, "stats": dict(self.stats)}

    def without_embedding(self) -> "MemoryRecord":
        return replace(self, embedding=None)

    def to_document(self) -> Dict[str, Any]:
        """Flatten the record for JSON output; the embedding is omitted when stripped."""
        document: Dict[str, Any] = {
            "id": self.id,
            "userId": self.user_id,
            "summaryText": self.summary_text,
            "createdAt": self.created_at.isoformat(),
            "meta": self.meta,
        }
        if self.embedding is not None:
            document["embedding"] = list(self.embedding)
        return document


@dataclass(frozen=True, slots=True)
class ScoredMemory:
    """Query result: a memory without its embedding plus its similarity score."""

    record: MemoryRecord
    score: float

    def to_document(self) -> Dict[str, Any]:
        return {**self.record.to_document(), "score": self.score}
