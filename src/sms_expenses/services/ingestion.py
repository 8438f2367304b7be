"""
Ingestion orchestrator.

Drives the assemble-and-merge pipeline from two triggers:
- backfill: bulk scan of a trailing window of the inbox
- on_message: one live message from a subscription

Both triggers write through the same lock and the store's atomic merge, so
a live message landing mid-backfill is never lost.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from ..extractors.assembler import CandidateAssembler
from ..notifications import CANDIDATE_DETECTED, NotificationBus
from ..schemas.expense_candidate import ExpenseCandidate, RawMessage, utc_now
from ..sources.base import MessageSource, Subscription
from ..state_store import CandidateStore
from .merge import MergeResult

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 30
DEFAULT_MAX_MESSAGES = 500


@dataclass
class ScanResult:
    """Outcome of one backfill."""

    started_at: datetime
    completed_at: Optional[datetime] = None
    window_days: int = DEFAULT_WINDOW_DAYS
    permission_granted: bool = True
    source_error: Optional[str] = None
    messages_read: int = 0
    candidates_detected: int = 0
    duplicates_skipped: int = 0
    added: list[ExpenseCandidate] = field(default_factory=list)

    @property
    def candidates_added(self) -> int:
        return len(self.added)

    @property
    def completed(self) -> bool:
        return self.completed_at is not None


class IngestionOrchestrator:
    """
    Composes a message source, the assembler, the store and a notifier.

    Every public entry point is fail-open: collaborator failures are logged
    and turned into "nothing found" rather than raised.
    """

    def __init__(
        self,
        source: MessageSource,
        store: CandidateStore,
        notifier: NotificationBus,
        assembler: Optional[CandidateAssembler] = None,
        clock: Optional[Callable[[], datetime]] = None,
        max_messages: int = DEFAULT_MAX_MESSAGES,
        window_days: int = DEFAULT_WINDOW_DAYS,
    ):
        self.source = source
        self.store = store
        self.notifier = notifier
        self.assembler = assembler or CandidateAssembler()
        self.clock = clock or utc_now
        self.max_messages = max_messages
        self.window_days = window_days
        # Single writer for every merge issued by this process
        self._merge_lock = threading.Lock()

    def _merge(self, candidates: list[ExpenseCandidate]) -> MergeResult:
        if not candidates:
            return MergeResult()
        with self._merge_lock:
            try:
                return self.store.merge_new(candidates, now=self.clock())
            except Exception:
                logger.exception(f"Failed to store {len(candidates)} candidate(s)")
                return MergeResult()

    def _has_permission(self) -> bool:
        try:
            return self.source.has_read_permission()
        except Exception:
            logger.exception("SMS permission check failed")
            return False

    def backfill(self, window_days: Optional[int] = None) -> ScanResult:
        """
        Scan the trailing window of the inbox for expenses.

        The scan is recorded in the store only when the inbox was actually
        read. Never raises.
        """
        window = window_days if window_days is not None else self.window_days
        started_at = self.clock()
        result = ScanResult(started_at=started_at, window_days=window)

        if not self._has_permission():
            logger.warning("SMS read permission not granted; skipping backfill")
            result.permission_granted = False
            return result

        since = started_at - timedelta(days=window)
        try:
            messages = self.source.list_messages(since=since, max_count=self.max_messages)
        except Exception as e:
            logger.exception("Failed to read SMS inbox; treating as no messages")
            result.source_error = str(e)
            messages = []

        result.messages_read = len(messages)
        logger.info(f"Backfill read {len(messages)} message(s) from the last {window} day(s)")

        candidates = self.assembler.assemble_batch(messages)
        result.candidates_detected = len(candidates)

        merge = self._merge(candidates)
        result.added = merge.added
        result.duplicates_skipped = len(merge.duplicates)
        result.completed_at = self.clock()

        logger.info(
            f"Backfill detected {result.candidates_detected} expense(s), "
            f"added {result.candidates_added}, skipped {result.duplicates_skipped} duplicate(s)"
        )

        if result.source_error is None:
            self._record_scan(result)

        return result

    def _record_scan(self, result: ScanResult) -> None:
        try:
            self.store.record_scan(
                started_at=result.started_at,
                completed_at=result.completed_at,
                window_days=result.window_days,
                messages_read=result.messages_read,
                candidates_detected=result.candidates_detected,
                candidates_added=result.candidates_added,
            )
        except Exception:
            logger.exception("Failed to record backfill completion")

    def on_message(self, raw: RawMessage) -> ExpenseCandidate | None:
        """
        Handle one live message.

        Returns:
            The stored candidate when a new expense was added, else None.
            A duplicate of a stored candidate is not re-announced.
        """
        try:
            candidate = self.assembler.assemble(raw)
        except Exception:
            logger.exception(f"Failed to process incoming SMS from {raw.sender!r}")
            return None

        if candidate is None:
            return None

        merge = self._merge([candidate])
        if not merge.added:
            logger.debug(f"Incoming SMS from {raw.sender!r} duplicates a stored candidate")
            return None

        stored = merge.added[0]
        logger.info(f"Expense detected from SMS: {stored.merchant} {stored.amount:.2f}")

        try:
            self.notifier.emit(CANDIDATE_DETECTED, stored)
        except Exception:
            logger.exception(f"Failed to emit {CANDIDATE_DETECTED} for {stored.id}")

        return stored

    def start_listener(self) -> Subscription | None:
        """
        Subscribe on_message to the source.

        Returns:
            Subscription owned by the caller, or None without permission or
            when the source cannot subscribe.
        """
        if not self._has_permission():
            logger.warning("SMS read permission required for listener")
            return None

        try:
            subscription = self.source.subscribe(self.on_message)
        except Exception:
            logger.exception("Failed to start SMS listener")
            return None

        logger.info("SMS listener started")
        return subscription

    def get_last_scan_time(self) -> datetime | None:
        """Completion time of the most recent recorded backfill."""
        try:
            record = self.store.get_last_scan()
        except Exception:
            logger.exception("Failed to read last scan time")
            return None
        return record.completed_at if record else None
