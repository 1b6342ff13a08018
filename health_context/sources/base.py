"""Interfaces for the read-only record providers consumed by the aggregator."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

RawRecord = Dict[str, Any]


class CycleRecordProvider(ABC):
    @abstractmethod
    def latest_cycle(self, user_id: str) -> Optional[RawRecord]:
        """Return the user's most recent cycle record by start date, or ``None``."""


class SymptomEntryProvider(ABC):
    @abstractmethod
    def recent_symptoms(self, user_id: str, limit: int) -> List[RawRecord]:
        """Return up to ``limit`` symptom entries, newest first."""


class PeriodTrackerProvider(ABC):
    @abstractmethod
    def active_tracker(self, user_id: str) -> Optional[RawRecord]:
        """Return the user's active period-tracker record, or ``None``."""


class ConsentProvider(ABC):
    @abstractmethod
    def ai_consent(self, user_id: str) -> bool:
        """Return ``True`` only when the user explicitly granted AI processing consent."""
