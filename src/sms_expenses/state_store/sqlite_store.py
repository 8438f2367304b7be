"""
SQLite-based candidate store implementation.

Tables:
- expense_candidates: Detected expenses keyed by id, unique on dedupe_key
- scan_runs: Completed backfill scans
- schema_version: Version of the schema created by _init_db
"""

import logging
import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from ..schemas.expense_candidate import (
    CandidateStatus,
    Category,
    ExpenseCandidate,
    PaymentMethod,
)
from ..services.merge import MergeResult, merge_with_report

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class ScanRecord:
    """Record of a completed backfill scan."""

    id: int
    started_at: datetime
    completed_at: datetime
    window_days: int
    messages_read: int
    candidates_detected: int
    candidates_added: int

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "ScanRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            started_at=_from_iso(row["started_at"]),
            completed_at=_from_iso(row["completed_at"]),
            window_days=row["window_days"],
            messages_read=row["messages_read"],
            candidates_detected=row["candidates_detected"],
            candidates_added=row["candidates_added"],
        )


def candidate_from_row(row: sqlite3.Row) -> ExpenseCandidate:
    """Create an ExpenseCandidate from a database row."""
    return ExpenseCandidate(
        id=row["id"],
        amount=Decimal(row["amount"]),
        merchant=row["merchant"],
        category=Category(row["category"]),
        payment_method=PaymentMethod(row["payment_method"]),
        transaction_date=date.fromisoformat(row["transaction_date"]),
        description=row["description"],
        confidence=row["confidence"],
        original_text=row["original_text"],
        source_sender=row["source_sender"],
        source_timestamp=_from_iso(row["source_timestamp"]),
        status=CandidateStatus(row["status"]),
        created_at=_from_iso(row["created_at"]),
    )


def _candidate_params(candidate: ExpenseCandidate, now: str) -> tuple:
    return (
        candidate.id,
        candidate.dedupe_key,
        f"{candidate.amount:.2f}",
        candidate.merchant,
        candidate.category.value,
        candidate.payment_method.value,
        candidate.transaction_date.isoformat(),
        candidate.description,
        candidate.confidence,
        int(candidate.needs_review),
        candidate.original_text,
        candidate.source_sender,
        _to_iso(candidate.source_timestamp),
        candidate.status.value,
        _to_iso(candidate.created_at) or now,
        now,
    )


_INSERT_COLUMNS = """
    (id, dedupe_key, amount, merchant, category, payment_method, transaction_date,
     description, confidence, needs_review, original_text, source_sender,
     source_timestamp, status, created_at, updated_at)
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""


class CandidateStore:
    """
    SQLite-based store for expense candidates.

    Keyed by candidate id, with a UNIQUE dedupe_key so the same real-world
    payment can never be stored twice, whichever writer gets there first.

    Writers never replace the whole collection: merges insert only new rows
    inside a single IMMEDIATE transaction, and status changes are
    conditional updates.
    """

    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path | str):
        """
        Initialize candidate store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(str(self.db_path), timeout=30)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self, immediate: bool = False) -> Iterator[sqlite3.Connection]:
        """
        Context manager for database transactions.

        With immediate=True the write lock is taken up front, so a
        read-compare-insert sequence cannot interleave with another writer.
        """
        conn = self._get_connection()
        try:
            if immediate:
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS expense_candidates (
                    id TEXT PRIMARY KEY,
                    dedupe_key TEXT NOT NULL UNIQUE,
                    amount TEXT NOT NULL,  -- Decimal as string, 2 places
                    merchant TEXT NOT NULL,
                    category TEXT NOT NULL,
                    payment_method TEXT NOT NULL,
                    transaction_date TEXT NOT NULL,  -- YYYY-MM-DD
                    description TEXT NOT NULL,
                    confidence REAL NOT NULL,
                    needs_review INTEGER NOT NULL,
                    original_text TEXT NOT NULL,
                    source_sender TEXT NOT NULL,
                    source_timestamp TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_candidates_status ON expense_candidates(status)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_candidates_date "
                "ON expense_candidates(transaction_date)"
            )

            # One row per completed backfill scan
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS scan_runs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    started_at TEXT NOT NULL,
                    completed_at TEXT NOT NULL,
                    window_days INTEGER NOT NULL,
                    messages_read INTEGER NOT NULL DEFAULT 0,
                    candidates_detected INTEGER NOT NULL DEFAULT 0,
                    candidates_added INTEGER NOT NULL DEFAULT 0
                )
            """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_scan_runs_completed ON scan_runs(completed_at)"
            )

            conn.execute(
                "INSERT OR REPLACE INTO schema_version (version) VALUES (?)", (self.SCHEMA_VERSION,)
            )

    # Candidate collection

    def load_all(self) -> list[ExpenseCandidate]:
        """All candidates, oldest first."""
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM expense_candidates ORDER BY created_at, rowid"
            ).fetchall()
            return [candidate_from_row(row) for row in rows]

    def save_all(self, candidates: Iterable[ExpenseCandidate]) -> int:
        """
        Keyed upsert of candidates by id.

        Rows not mentioned are left alone. A candidate whose dedupe key is
        already held by a different id is skipped and logged.

        Returns:
            Number of rows written
        """
        now = _now_iso()
        written = 0
        with self._transaction(immediate=True) as conn:
            for candidate in candidates:
                if not candidate.id:
                    raise ValueError("Cannot save a candidate without an id")
                try:
                    conn.execute(
                        f"""
                        INSERT INTO expense_candidates {_INSERT_COLUMNS}
                        ON CONFLICT(id) DO UPDATE SET
                            dedupe_key = excluded.dedupe_key,
                            amount = excluded.amount,
                            merchant = excluded.merchant,
                            category = excluded.category,
                            payment_method = excluded.payment_method,
                            transaction_date = excluded.transaction_date,
                            description = excluded.description,
                            confidence = excluded.confidence,
                            needs_review = excluded.needs_review,
                            status = excluded.status,
                            updated_at = excluded.updated_at
                    """,
                        _candidate_params(candidate, now),
                    )
                    written += 1
                except sqlite3.IntegrityError:
                    logger.warning(
                        f"Skipped candidate {candidate.id}: dedupe key already stored"
                    )
        return written

    def merge_new(
        self,
        candidates: Iterable[ExpenseCandidate],
        now: Optional[datetime] = None,
    ) -> MergeResult:
        """
        Merge freshly assembled candidates into the store atomically.

        Loads the existing collection, runs the pure merge and inserts only
        the added candidates, all under one write lock.

        Args:
            candidates: Freshly assembled candidates
            now: created_at for added candidates (defaults to current UTC time)
        """
        written_at = _now_iso()
        with self._transaction(immediate=True) as conn:
            rows = conn.execute(
                "SELECT * FROM expense_candidates ORDER BY created_at, rowid"
            ).fetchall()
            existing = [candidate_from_row(row) for row in rows]

            result = merge_with_report(existing, candidates, now=now)

            inserted = []
            for candidate in result.added:
                cursor = conn.execute(
                    f"INSERT OR IGNORE INTO expense_candidates {_INSERT_COLUMNS}",
                    _candidate_params(candidate, written_at),
                )
                if cursor.rowcount > 0:
                    inserted.append(candidate)
                else:
                    result.duplicates.append(candidate)

            if len(inserted) != len(result.added):
                result.merged = [c for c in result.merged if c not in result.duplicates]
                result.added = inserted

        return result

    def get_candidate(self, candidate_id: str) -> ExpenseCandidate | None:
        """Get a candidate by id."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM expense_candidates WHERE id = ?", (candidate_id,)
            ).fetchone()
            return candidate_from_row(row) if row else None

    def list_candidates(self, status: CandidateStatus | None = None) -> list[ExpenseCandidate]:
        """List candidates, optionally filtered by status, newest transaction first."""
        with self._transaction() as conn:
            if status is None:
                rows = conn.execute(
                    "SELECT * FROM expense_candidates ORDER BY transaction_date DESC, created_at DESC"
                ).fetchall()
            else:
                rows = conn.execute(
                    """
                    SELECT * FROM expense_candidates
                    WHERE status = ?
                    ORDER BY transaction_date DESC, created_at DESC
                """,
                    (status.value,),
                ).fetchall()
            return [candidate_from_row(row) for row in rows]

    def transition_status(
        self,
        candidate_id: str,
        from_status: CandidateStatus,
        to_status: CandidateStatus,
    ) -> bool:
        """
        Move a candidate from one status to another.

        The update only applies while the row is still in from_status.

        Returns:
            True if updated, False if not found or not in from_status.
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE expense_candidates
                SET status = ?, updated_at = ?
                WHERE id = ? AND status = ?
            """,
                (to_status.value, _now_iso(), candidate_id, from_status.value),
            )
            return cursor.rowcount > 0

    def delete_candidate(self, candidate_id: str) -> bool:
        """Administrative delete. Returns True if a row was removed."""
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM expense_candidates WHERE id = ?", (candidate_id,))
            return cursor.rowcount > 0

    def clear_candidates(self) -> int:
        """Administrative wipe of all candidates. Returns rows removed."""
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM expense_candidates")
            return cursor.rowcount

    # Scan runs

    def record_scan(
        self,
        started_at: datetime,
        completed_at: datetime,
        window_days: int,
        messages_read: int = 0,
        candidates_detected: int = 0,
        candidates_added: int = 0,
    ) -> int:
        """Record a completed scan. Returns the scan ID."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO scan_runs
                (started_at, completed_at, window_days, messages_read,
                 candidates_detected, candidates_added)
                VALUES (?, ?, ?, ?, ?, ?)
            """,
                (
                    _to_iso(started_at),
                    _to_iso(completed_at),
                    window_days,
                    messages_read,
                    candidates_detected,
                    candidates_added,
                ),
            )
            return cursor.lastrowid or 0

    def get_last_scan(self) -> ScanRecord | None:
        """Most recently completed scan."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM scan_runs ORDER BY completed_at DESC, id DESC LIMIT 1"
            ).fetchone()
            return ScanRecord.from_row(row) if row else None

    def get_stats(self) -> dict[str, Any]:
        """Get store statistics."""
        with self._transaction() as conn:
            counts = {
                row["status"]: row["count"]
                for row in conn.execute(
                    "SELECT status, COUNT(*) as count FROM expense_candidates GROUP BY status"
                ).fetchall()
            }
            needs_review = conn.execute(
                "SELECT COUNT(*) as count FROM expense_candidates WHERE status = ? AND needs_review = 1",
                (CandidateStatus.PENDING.value,),
            ).fetchone()
            scans = conn.execute("SELECT COUNT(*) as count FROM scan_runs").fetchone()

            return {
                "candidates_total": sum(counts.values()),
                "pending": counts.get(CandidateStatus.PENDING.value, 0),
                "confirmed": counts.get(CandidateStatus.CONFIRMED.value, 0),
                "rejected": counts.get(CandidateStatus.REJECTED.value, 0),
                "pending_needs_review": needs_review["count"] if needs_review else 0,
                "scans_total": scans["count"] if scans else 0,
            }
