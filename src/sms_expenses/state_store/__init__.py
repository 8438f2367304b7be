"""
State Store (SQLite-based).

Keyed persistent store for:
- Expense candidates detected from SMS alerts
- Completed backfill scans

Enforces uniqueness on candidate id and dedupe key.
"""

from .sqlite_store import CandidateStore, ScanRecord, candidate_from_row

__all__ = [
    "CandidateStore",
    "ScanRecord",
    "candidate_from_row",
]
