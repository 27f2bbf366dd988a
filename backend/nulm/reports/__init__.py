"""Report/ban accumulator: per-address abuse counters stored in DuckDB."""

from .reasons import normalize_reason, normalize_reasons
from .schemas import ReportEntry, ReportOutcome, ReportRecord
from .store import ReportStore, ReportStoreError, incident_key

__all__ = [
    "ReportEntry",
    "ReportOutcome",
    "ReportRecord",
    "ReportStore",
    "ReportStoreError",
    "incident_key",
    "normalize_reason",
    "normalize_reasons",
]
