"""Combine a user's cycle, symptom and tracker records into one context."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from datetime import date, datetime
from typing import Any, Callable, Dict, Mapping, Optional

from ..core.exceptions import DataAccessError
from ..core.logger import get_logger
from ..core.utils import days_until, utc_now
from ..sources.base import (
    ConsentProvider,
    CycleRecordProvider,
    PeriodTrackerProvider,
    SymptomEntryProvider,
)

Context = Dict[str, Any]

DEFAULT_SYMPTOM_WINDOW = 30

# Fields removed from each sub-record unless the user granted AI consent.
SENSITIVE_FIELDS: Mapping[str, tuple[str, ...]] = {
    "cycle": ("fertilityWindow", "pregnancy", "notes"),
    "symptoms": ("notes",),
    "periodTracker": ("healthTips", "symptomTracking", "moodTracking", "sleepTracking"),
}

CONSENT_DISCLAIMER = "User consent granted for AI usage of sensitive context."
NO_CONSENT_DISCLAIMER = "Sensitive fields excluded due to missing AI consent."


class ContextAggregator:
    """Reads every source concurrently and returns a consent-redacted context.

    A provider returning nothing is fine; a provider raising aborts the whole
    aggregation with :class:`DataAccessError` so callers never see a partial
    context.
    """

    def __init__(
        self,
        *,
        cycles: CycleRecordProvider,
        symptoms: SymptomEntryProvider,
        trackers: PeriodTrackerProvider,
        consent: ConsentProvider,
        symptom_window: int = DEFAULT_SYMPTOM_WINDOW,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._cycles = cycles
        self._symptoms = symptoms
        self._trackers = trackers
        self._consent = consent
        self._symptom_window = symptom_window
        self._clock = clock
        self._logger = get_logger(self.__class__.__name__)

    def aggregate(self, user_id: str) -> Context:
        with ThreadPoolExecutor(max_workers=4, thread_name_prefix="context-read") as pool:
            futures: Dict[str, Future] = {
                "consent": pool.submit(self._consent.ai_consent, user_id),
                "cycle": pool.submit(self._cycles.latest_cycle, user_id),
                "symptoms": pool.submit(self._symptoms.recent_symptoms, user_id, self._symptom_window),
                "periodTracker": pool.submit(self._trackers.active_tracker, user_id),
            }
            results: Dict[str, Any] = {}
            for source, future in futures.items():
                try:
                    results[source] = future.result()
                except Exception as exc:
                    self._logger.error("Reading %s for user %s failed: %s", source, user_id, exc)
                    raise DataAccessError(f"Failed to read {source} records for user {user_id}") from exc

        ai_consent = results["consent"] is True
        cycle = _plain(results["cycle"]) if results["cycle"] else None
        symptoms = [_plain(entry) for entry in (results["symptoms"] or [])][: self._symptom_window]
        tracker = _plain(results["periodTracker"]) if results["periodTracker"] else None

        context: Context = {
            "user": {"id": user_id, "aiConsent": ai_consent},
            "cycle": _redact(cycle, "cycle", ai_consent) if cycle is not None else None,
            "symptoms": [_redact(entry, "symptoms", ai_consent) for entry in symptoms],
            "periodTracker": self._tracker_view(tracker, ai_consent) if tracker is not None else None,
            "meta": {
                "aiConsent": ai_consent,
                "disclaimer": CONSENT_DISCLAIMER if ai_consent else NO_CONSENT_DISCLAIMER,
            },
        }
        self._logger.debug(
            "Aggregated context for %s (consent=%s, cycle=%s, symptoms=%d, tracker=%s)",
            user_id,
            ai_consent,
            cycle is not None,
            len(symptoms),
            tracker is not None,
        )
        return context

    def _tracker_view(self, tracker: Dict[str, Any], ai_consent: bool) -> Dict[str, Any]:
        view = _redact(tracker, "periodTracker", ai_consent)
        cycle_info = tracker.get("cycleInfo") if isinstance(tracker.get("cycleInfo"), dict) else {}

        if not view.get("cycleAnalysis"):
            view["cycleAnalysis"] = cycle_length_category(cycle_info.get("cycleDuration"))
        if not view.get("periodAnalysis"):
            view["periodAnalysis"] = period_length_category(cycle_info.get("lastPeriodDuration"))
        if not _is_number(view.get("daysUntilNextPeriod")):
            view["daysUntilNextPeriod"] = days_until(cycle_info.get("nextPeriodPrediction"), self._clock())
        return view


def cycle_length_category(duration: Any) -> Optional[str]:
    if not _is_number(duration):
        return None
    if duration < 21:
        return "short"
    if duration > 35:
        return "long"
    return "normal"


def period_length_category(duration: Any) -> Optional[str]:
    if not _is_number(duration):
        return None
    if duration < 3:
        return "short"
    if duration > 7:
        return "long"
    return "normal"


def _redact(record: Dict[str, Any], section: str, ai_consent: bool) -> Dict[str, Any]:
    if ai_consent:
        return dict(record)
    hidden = SENSITIVE_FIELDS[section]
    return {key: value for key, value in record.items() if key not in hidden}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _plain(value: Any) -> Any:
    """Copy ``value`` into JSON-safe builtins so a stored snapshot round-trips exactly."""
    if isinstance(value, Mapping):
        return {str(key): _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value
