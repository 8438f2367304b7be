"""
Keyword category scoring and confidence banding.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..patterns import CATEGORY_KEYWORDS
from ..schemas.expense_candidate import Category

logger = logging.getLogger(__name__)

# Below this, a candidate is flagged for manual review
REVIEW_THRESHOLD = 0.7


@dataclass
class ConfidenceBands:
    """
    Confidence as a step function of the best keyword match count.

    Only four values are ever produced.
    """

    no_match: float = 0.30
    one_match: float = 0.60
    two_matches: float = 0.80
    three_or_more: float = 0.95

    def for_count(self, max_matches: int) -> float:
        if max_matches <= 0:
            return self.no_match
        if max_matches == 1:
            return self.one_match
        if max_matches == 2:
            return self.two_matches
        return self.three_or_more

    @property
    def values(self) -> tuple[float, ...]:
        return (self.no_match, self.one_match, self.two_matches, self.three_or_more)


@dataclass
class CategoryResult:
    """Category chosen for a message plus how sure we are."""

    category: Category
    confidence: float
    match_counts: dict[Category, int] = field(default_factory=dict)

    @property
    def max_matches(self) -> int:
        return max(self.match_counts.values(), default=0)


def needs_review(confidence: float, threshold: float = REVIEW_THRESHOLD) -> bool:
    """Whether a candidate with this confidence must be reviewed by hand."""
    return confidence < threshold


class CategoryScorer:
    """
    Scores text against the category keyword table.

    Rules:
    - Each keyword present (as a substring of the case-folded text) counts once
    - Strictly highest count wins; ties keep the earlier declared category
    - No matches at all: Other
    - Confidence comes from the highest count across all categories
    """

    def __init__(
        self,
        keywords: Optional[dict[Category, list[str]]] = None,
        bands: Optional[ConfidenceBands] = None,
    ):
        """Initialize scorer with keyword table and bands."""
        self.keywords = keywords or CATEGORY_KEYWORDS
        self.bands = bands or ConfidenceBands()

    def count_matches(self, text: str) -> dict[Category, int]:
        """Number of distinct keywords of each category found in text."""
        search_text = text.casefold()
        counts: dict[Category, int] = {}
        for category, keywords in self.keywords.items():
            counts[category] = sum(
                1 for keyword in dict.fromkeys(keywords) if keyword.casefold() in search_text
            )
        return counts

    def categorize(self, merchant: Optional[str], message: Optional[str]) -> CategoryResult:
        """Pick a category and confidence for a merchant/message pair."""
        if not merchant and not message:
            return CategoryResult(category=Category.OTHER, confidence=self.bands.no_match)

        counts = self.count_matches(f"{merchant or ''} {message or ''}")

        best_category = Category.OTHER
        best_score = 0
        for category, score in counts.items():
            # Strict comparison: an equal later score never overrides
            if score > best_score:
                best_score = score
                best_category = category

        max_matches = max(counts.values(), default=0)
        return CategoryResult(
            category=best_category,
            confidence=self.bands.for_count(max_matches),
            match_counts=counts,
        )


def categorize(merchant: Optional[str], message: Optional[str]) -> CategoryResult:
    """Categorize with the default rule table. Never raises."""
    try:
        return CategoryScorer().categorize(merchant, message)
    except Exception:
        logger.exception("Categorization failed")
        return CategoryResult(category=Category.OTHER, confidence=ConfidenceBands().no_match)
