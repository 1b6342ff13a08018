"""Turn cycle statistics into a short, neutral natural-language summary."""

from __future__ import annotations

import json
from typing import Any, Mapping, Optional, Protocol

from ..core.logger import get_logger
from .memory_records import CycleStats

SUMMARY_TEMPERATURE = 0.3
SUMMARY_MAX_OUTPUT_TOKENS = 180
SUMMARY_MAX_CHARS = 2500
EMPTY_SUMMARY = "No recent cycle or symptom data was recorded."

_PROMPT_HEADER = (
    "You are an assistant generating a concise human-readable summary of a user's menstrual health context.\n"
    "Write 2-3 sentences. Avoid medical diagnosis. Keep it supportive and neutral.\n"
    "Structured data:\n"
)


class TextGenerator(Protocol):
    def generate_text(
        self,
        prompt: str,
        *,
        temperature: float = ...,
        max_output_tokens: Optional[int] = ...,
        timeout: Optional[float] = ...,
    ) -> Any: ...


def build_prompt(stats: CycleStats) -> str:
    return _PROMPT_HEADER + json.dumps(stats.as_dict(), indent=2, ensure_ascii=False)


def fallback_summary(stats: CycleStats) -> str:
    """Compose the summary from whichever stats are present, in a fixed order.

    Performs no I/O and tolerates odd values, so it cannot fail.
    """
    parts: list[str] = []

    avg = stats.avg_cycle_length
    if isinstance(avg, (int, float)) and not isinstance(avg, bool) and avg:
        parts.append(f"average cycle length is about {_format_number(avg)} days")

    if isinstance(stats.irregular_cycle, bool):
        parts.append("cycles appear irregular" if stats.irregular_cycle else "cycles appear regular")

    frequency = stats.symptom_frequency if isinstance(stats.symptom_frequency, Mapping) else {}
    counted = [
        (str(name), count)
        for name, count in frequency.items()
        if isinstance(count, (int, float)) and not isinstance(count, bool)
    ]
    if counted:
        top = sorted(counted, key=lambda item: item[1], reverse=True)[:2]
        listed = ", ".join(f"{name.lower()} ({_format_number(count)})" for name, count in top)
        parts.append(f"recent symptoms include {listed}")

    days = stats.days_until_next_period
    if isinstance(days, (int, float)) and not isinstance(days, bool):
        parts.append(f"{_format_number(days)} day(s) until the next predicted period")

    if not parts:
        return EMPTY_SUMMARY
    text = "; ".join(parts) + "."
    return text[0].upper() + text[1:]


def _format_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class ContextSummarizer:
    """Summarise stats with a text generation backend, falling back to a fixed template.

    The backend is optional; when it is missing, raises, times out or answers
    with nothing usable, :func:`fallback_summary` is returned instead.
    """

    def __init__(
        self,
        backend: Optional[TextGenerator] = None,
        *,
        max_output_tokens: int = SUMMARY_MAX_OUTPUT_TOKENS,
        max_chars: int = SUMMARY_MAX_CHARS,
        timeout: Optional[float] = None,
    ) -> None:
        self._backend = backend
        self._max_output_tokens = max_output_tokens
        self._max_chars = max_chars
        self._timeout = timeout
        self._logger = get_logger(self.__class__.__name__)

    def summarize(self, stats: CycleStats) -> str:
        if self._backend is None:
            return self._bounded(fallback_summary(stats))

        try:
            response = self._backend.generate_text(
                build_prompt(stats),
                temperature=SUMMARY_TEMPERATURE,
                max_output_tokens=self._max_output_tokens,
                timeout=self._timeout,
            )
        except Exception as exc:
            self._logger.warning("Summary backend failed, using fallback summary: %s", exc)
            return self._bounded(fallback_summary(stats))

        text = getattr(response, "text", response)
        if not isinstance(text, str) or not text.strip():
            self._logger.warning("Summary backend returned no text, using fallback summary")
            return self._bounded(fallback_summary(stats))
        return self._bounded(text.strip())

    def _bounded(self, text: str) -> str:
        if len(text) <= self._max_chars:
            return text
        return text[: self._max_chars].rstrip()
