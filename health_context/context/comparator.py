"""Deterministic canonicalization, hashing and change detection for contexts."""

from __future__ import annotations

import hashlib
import json
import math
from collections.abc import Mapping, Set
from datetime import date, datetime
from typing import Any, Optional

CIRCULAR_SENTINEL = '"[Circular]"'


def stable_stringify(value: Any) -> str:
    """Serialise ``value`` so that mapping key order never affects the output.

    Mappings are emitted with keys sorted lexicographically, sequences keep
    their order, and scalars use JSON encoding. A composite value that
    reappears inside itself is written as a fixed sentinel.
    """
    return _stringify(value, set())


def hash_context(value: Any) -> str:
    """Return the hex SHA-256 digest of the canonical form of ``value``."""
    canonical = stable_stringify(value)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def has_significant_change(prev_hash: Optional[str], next_hash: str) -> bool:
    """A missing previous hash always counts as a change."""
    if not prev_hash:
        return True
    return prev_hash != next_hash


def _stringify(value: Any, active: set[int]) -> str:
    if isinstance(value, (Mapping, list, tuple, Set)):
        marker = id(value)
        if marker in active:
            return CIRCULAR_SENTINEL
        active.add(marker)
        try:
            if isinstance(value, Mapping):
                keys = sorted(value.keys(), key=str)
                body = ",".join(f"{_scalar(str(key))}:{_stringify(value[key], active)}" for key in keys)
                return "{" + body + "}"
            if isinstance(value, Set):
                items = sorted(_stringify(item, active) for item in value)
                return "[" + ",".join(items) + "]"
            return "[" + ",".join(_stringify(item, active) for item in value) + "]"
        finally:
            active.discard(marker)
    return _scalar(value)


def _scalar(value: Any) -> str:
    if isinstance(value, float) and not math.isfinite(value):
        return "null"
    if isinstance(value, (datetime, date)):
        return json.dumps(value.isoformat())
    if value is None or isinstance(value, (str, int, float, bool)):
        return json.dumps(value, ensure_ascii=False)
    return json.dumps(str(value), ensure_ascii=False)
