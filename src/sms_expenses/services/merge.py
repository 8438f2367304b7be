"""
Dedup/merge engine.

Reconciles freshly assembled candidates against the ones already stored.
Pure: no I/O, no state. The store runs it inside a write transaction.
"""

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional

from ..schemas.dedupe import generate_candidate_id
from ..schemas.expense_candidate import CandidateStatus, ExpenseCandidate, utc_now

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    """Outcome of one merge call."""

    merged: list[ExpenseCandidate] = field(default_factory=list)
    added: list[ExpenseCandidate] = field(default_factory=list)
    duplicates: list[ExpenseCandidate] = field(default_factory=list)


def merge_with_report(
    existing: Sequence[ExpenseCandidate],
    new: Iterable[ExpenseCandidate],
    now: Optional[datetime] = None,
    id_factory: Optional[Callable[[], str]] = None,
) -> MergeResult:
    """
    Merge new candidates into existing ones and report what happened.

    New candidates are processed in input order. A candidate is discarded
    when an existing candidate, or one already merged in this call, has the
    same dedupe key (amount, merchant, calendar day). Survivors get a fresh
    id, status PENDING and created_at = now, and are appended.

    Args:
        existing: Candidates already in the store (left untouched)
        new: Freshly assembled candidates
        now: Timestamp for created_at (defaults to current UTC time)
        id_factory: ID generator (defaults to generate_candidate_id)

    Returns:
        MergeResult with the full merged list, the added and the discarded
    """
    now = now or utc_now()
    id_factory = id_factory or generate_candidate_id

    result = MergeResult(merged=list(existing))
    seen_keys = {candidate.dedupe_key for candidate in existing}

    for candidate in new:
        key = candidate.dedupe_key
        if key in seen_keys:
            result.duplicates.append(candidate)
            continue

        stored = replace(
            candidate,
            id=id_factory(),
            status=CandidateStatus.PENDING,
            created_at=now,
        )
        seen_keys.add(key)
        result.merged.append(stored)
        result.added.append(stored)

    if result.duplicates:
        logger.debug(f"Merge skipped {len(result.duplicates)} duplicate candidate(s)")

    return result


def merge_candidates(
    existing: Sequence[ExpenseCandidate],
    new: Iterable[ExpenseCandidate],
    now: Optional[datetime] = None,
    id_factory: Optional[Callable[[], str]] = None,
) -> list[ExpenseCandidate]:
    """
    Merge new candidates into existing ones. Never raises.

    On unexpected failure the existing collection is returned unchanged.
    """
    try:
        return merge_with_report(existing, new, now=now, id_factory=id_factory).merged
    except Exception:
        logger.exception("Candidate merge failed; keeping existing candidates")
        return list(existing)
