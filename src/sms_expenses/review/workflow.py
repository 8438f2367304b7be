"""
Candidate lifecycle management.

pending -> confirmed, pending -> rejected. Both targets are terminal.
"""

import logging
from enum import Enum

from ..schemas.expense_candidate import CandidateStatus, ExpenseCandidate
from ..state_store import CandidateStore

logger = logging.getLogger(__name__)


class ReviewDecision(str, Enum):
    """User's decision on a pending candidate."""

    CONFIRMED = "confirmed"  # Already submitted to the ledger by the caller
    REJECTED = "rejected"  # Not an expense, or not wanted

    @property
    def target_status(self) -> CandidateStatus:
        return CandidateStatus(self.value)


class CandidateLifecycle:
    """
    Advances stored candidates through review.

    Responsibilities:
    - List the pending queue
    - Record confirm/reject decisions

    The ledger is never called from here. A caller confirms only after it has
    submitted the expense itself.

    Unknown ids and candidates already in a terminal state are ignored: the
    call returns False and logs a warning, it never raises.
    """

    def __init__(self, store: CandidateStore):
        """Initialize with candidate store."""
        self.store = store

    def get_pending(self) -> list[ExpenseCandidate]:
        """Candidates awaiting a decision. Empty on store failure."""
        try:
            return self.store.list_candidates(status=CandidateStatus.PENDING)
        except Exception:
            logger.exception("Failed to load pending candidates")
            return []

    def get_needs_review(self) -> list[ExpenseCandidate]:
        """Pending candidates with low category confidence."""
        return [c for c in self.get_pending() if c.needs_review]

    def get_candidate(self, candidate_id: str) -> ExpenseCandidate | None:
        """Load candidate by ID. None if missing or on store failure."""
        try:
            return self.store.get_candidate(candidate_id)
        except Exception:
            logger.exception(f"Failed to load candidate {candidate_id}")
            return None

    def record_decision(self, candidate_id: str, decision: ReviewDecision) -> bool:
        """
        Record a review decision.

        Args:
            candidate_id: ID of the candidate
            decision: User's decision

        Returns:
            True if the candidate moved out of pending, False otherwise
        """
        try:
            updated = self.store.transition_status(
                candidate_id,
                from_status=CandidateStatus.PENDING,
                to_status=decision.target_status,
            )
        except Exception:
            logger.exception(f"Failed to record {decision.value} for candidate {candidate_id}")
            return False

        if updated:
            logger.info(f"Candidate {candidate_id} {decision.value}")
            return True

        current = self.get_candidate(candidate_id)
        if current is None:
            logger.warning(f"Cannot mark {candidate_id} {decision.value}: no such candidate")
        elif current.status == decision.target_status:
            logger.debug(f"Candidate {candidate_id} already {decision.value}")
        else:
            logger.warning(
                f"Cannot mark {candidate_id} {decision.value}: "
                f"already {current.status.value}"
            )
        return False

    def confirm(self, candidate_id: str) -> bool:
        """Mark a pending candidate confirmed."""
        return self.record_decision(candidate_id, ReviewDecision.CONFIRMED)

    def reject(self, candidate_id: str) -> bool:
        """Mark a pending candidate rejected. The row stays for audit."""
        return self.record_decision(candidate_id, ReviewDecision.REJECTED)
