"""
SSOT (Single Source of Truth) schemas for the pipeline.

These canonical schemas are the ONLY models used across all modules.
No duplicated "near-same" models allowed.
"""

from .dedupe import (
    CANDIDATE_ID_PREFIX,
    DEDUPE_KEY_LENGTH,
    compute_dedupe_key,
    generate_candidate_id,
    is_candidate_id,
    is_duplicate,
)
from .expense_candidate import (
    DESCRIPTION_PREFIX,
    UNKNOWN_MERCHANT,
    CandidateStatus,
    Category,
    ExpenseCandidate,
    PaymentMethod,
    RawMessage,
    local_day,
    utc_now,
)

__all__ = [
    # Expense candidate (canonical schema)
    "ExpenseCandidate",
    "RawMessage",
    "Category",
    "PaymentMethod",
    "CandidateStatus",
    "UNKNOWN_MERCHANT",
    "DESCRIPTION_PREFIX",
    "local_day",
    "utc_now",
    # Dedupe
    "compute_dedupe_key",
    "is_duplicate",
    "generate_candidate_id",
    "is_candidate_id",
    "CANDIDATE_ID_PREFIX",
    "DEDUPE_KEY_LENGTH",
]
