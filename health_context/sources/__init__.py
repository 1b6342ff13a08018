"""Record providers feeding the context aggregator."""

from .base import (
    ConsentProvider,
    CycleRecordProvider,
    PeriodTrackerProvider,
    RawRecord,
    SymptomEntryProvider,
)
from .sqlite_records import SqliteHealthRecords

__all__ = [
    "ConsentProvider",
    "CycleRecordProvider",
    "PeriodTrackerProvider",
    "RawRecord",
    "SqliteHealthRecords",
    "SymptomEntryProvider",
]
