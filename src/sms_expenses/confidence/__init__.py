"""
Confidence scoring module.

Scores messages against category keywords and bands the result into a
category confidence. Determines the needs-review flag.
"""

from .scorer import (
    REVIEW_THRESHOLD,
    CategoryResult,
    CategoryScorer,
    ConfidenceBands,
    categorize,
    needs_review,
)

__all__ = [
    "CategoryScorer",
    "CategoryResult",
    "ConfidenceBands",
    "REVIEW_THRESHOLD",
    "categorize",
    "needs_review",
]
