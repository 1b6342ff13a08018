"""
health_context/core/utils.py
Shared date and time helpers.
"""
from __future__ import annotations

import math
from datetime import date, datetime, timezone
from typing import Any, Optional

_DAY_SECONDS = 24 * 60 * 60


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Interpret ``value`` as a point in time.

    Accepts datetimes, dates (midnight UTC) and ISO-8601 strings. Naive values
    are treated as UTC. Anything unparseable yields ``None``.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def days_until(target: Any, now: datetime) -> Optional[int]:
    """Whole days from ``now`` until ``target``, rounded up and floored at zero."""
    moment = parse_timestamp(target)
    if moment is None:
        return None
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    diff = math.ceil((moment - now).total_seconds() / _DAY_SECONDS)
    return max(diff, 0)
