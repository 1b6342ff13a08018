"""Rule-based compression of a superseded context into cycle statistics."""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from ..core.utils import days_until, utc_now
from .memory_records import CycleStats

SYMPTOM_WINDOW = 30
BOOLEAN_SYMPTOM_FLAGS = ("cramps", "headaches", "moodSwings", "bloating", "breastTenderness")


class SymptomShape(str, Enum):
    """Discriminator for the record layouts symptom entries arrive in."""

    NAMED_LIST = "named_list"
    TYPED_TAG = "typed_tag"
    BOOLEAN_FLAGS = "boolean_flags"


@dataclass(frozen=True, slots=True)
class NamedSymptomList:
    """Tracker style: ``{"symptoms": [{"name": ..., "severity": ...}, ...]}``."""

    names: Tuple[str, ...]
    kind: SymptomShape = SymptomShape.NAMED_LIST


@dataclass(frozen=True, slots=True)
class TypedSymptomTag:
    """Single tag style: ``{"type": "Cramps"}``."""

    name: str
    kind: SymptomShape = SymptomShape.TYPED_TAG


@dataclass(frozen=True, slots=True)
class SymptomFlags:
    """Daily checklist style: one boolean per known symptom."""

    present: Tuple[str, ...]
    kind: SymptomShape = SymptomShape.BOOLEAN_FLAGS


SymptomEntry = Union[NamedSymptomList, TypedSymptomTag, SymptomFlags]


def classify_symptom_entry(raw: Any) -> Optional[SymptomEntry]:
    """Map a raw entry onto one of the known shapes, or ``None`` if it matches none."""
    if not isinstance(raw, Mapping):
        return None

    items = raw.get("symptoms")
    if isinstance(items, list):
        names = []
        for item in items:
            if isinstance(item, Mapping) and isinstance(item.get("name"), str) and item["name"].strip():
                names.append(item["name"].strip())
        return NamedSymptomList(names=tuple(names))

    tag = raw.get("type")
    if isinstance(tag, str) and tag.strip():
        return TypedSymptomTag(name=tag.strip())

    if any(flag in raw for flag in BOOLEAN_SYMPTOM_FLAGS):
        return SymptomFlags(present=tuple(flag for flag in BOOLEAN_SYMPTOM_FLAGS if raw.get(flag) is True))
    return None


def _symptom_names(entry: SymptomEntry) -> Iterable[str]:
    if entry.kind is SymptomShape.NAMED_LIST:
        return entry.names
    if entry.kind is SymptomShape.TYPED_TAG:
        return (entry.name,)
    if entry.kind is SymptomShape.BOOLEAN_FLAGS:
        return entry.present
    raise AssertionError(f"Unhandled symptom shape: {entry.kind}")


class StatsReducer:
    """Derives :class:`CycleStats` from the context that is about to be replaced."""

    def __init__(self, *, window: int = SYMPTOM_WINDOW, clock: Callable[[], datetime] = utc_now) -> None:
        self._window = window
        self._clock = clock

    def reduce(self, previous_context: Mapping[str, Any]) -> CycleStats:
        context = previous_context if isinstance(previous_context, Mapping) else {}
        tracker = _mapping(context.get("periodTracker"))
        cycle_info = _mapping(tracker.get("cycleInfo"))

        return CycleStats(
            avg_cycle_length=self._cycle_length(context, tracker, cycle_info),
            irregular_cycle=cycle_info.get("irregularCycle") if isinstance(cycle_info.get("irregularCycle"), bool) else None,
            symptom_frequency=self._symptom_frequency(context, tracker),
            days_until_next_period=self._days_until_next_period(tracker, cycle_info),
        )

    def _cycle_length(
        self,
        context: Mapping[str, Any],
        tracker: Mapping[str, Any],
        cycle_info: Mapping[str, Any],
    ) -> Optional[float]:
        cycle = _mapping(context.get("cycle"))
        candidates = (
            cycle_info.get("cycleDuration"),
            cycle.get("cycleDuration"),
            cycle.get("cycleLength"),
            _mapping(context.get("cycleInfo")).get("cycleDuration"),
        )
        for candidate in candidates:
            if _is_number(candidate) and candidate > 0:
                return int(candidate) if float(candidate).is_integer() else float(candidate)
        return None

    def _symptom_frequency(self, context: Mapping[str, Any], tracker: Mapping[str, Any]) -> Dict[str, int]:
        entries: List[Any] = []
        symptoms = context.get("symptoms")
        if isinstance(symptoms, list) and symptoms:
            entries = symptoms[: self._window]
        elif isinstance(tracker.get("symptomTracking"), list):
            # Tracker entries are appended oldest first.
            entries = list(reversed(tracker["symptomTracking"]))[: self._window]

        frequency: Counter[str] = Counter()
        for raw in entries:
            entry = classify_symptom_entry(raw)
            if entry is None:
                continue
            frequency.update(_symptom_names(entry))
        return dict(frequency)

    def _days_until_next_period(self, tracker: Mapping[str, Any], cycle_info: Mapping[str, Any]) -> Optional[int]:
        precomputed = tracker.get("daysUntilNextPeriod")
        if _is_number(precomputed) and math.isfinite(precomputed):
            return max(math.ceil(precomputed), 0)
        return days_until(cycle_info.get("nextPeriodPrediction"), self._clock())


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)
