"""
Candidate assembler - runs classify, extract and categorize for one message.
"""

import logging
from collections.abc import Iterable
from typing import Optional

from ..confidence.scorer import CategoryScorer
from ..schemas.expense_candidate import (
    CandidateStatus,
    ExpenseCandidate,
    RawMessage,
    local_day,
    utc_now,
)
from .base import BaseExtractor
from .classifier import classify
from .sms_extractor import SMSTextExtractor

logger = logging.getLogger(__name__)


class CandidateAssembler:
    """
    Turns a raw SMS into an unmerged ExpenseCandidate.

    Stages:
    1. Classifier - drop anything that is not an outgoing transaction alert
    2. Extractor - amount (mandatory), merchant, date, payment method
    3. Categorizer - category and confidence

    The produced candidate has no id yet; identity is assigned at merge time.
    """

    VERSION = "0.1.0"

    def __init__(
        self,
        extractor: Optional[BaseExtractor] = None,
        scorer: Optional[CategoryScorer] = None,
    ):
        """Initialize with default extractor and scorer."""
        self.extractor = extractor or SMSTextExtractor()
        self.scorer = scorer or CategoryScorer()

    def assemble(self, message: RawMessage) -> ExpenseCandidate | None:
        """
        Build a candidate from one message.

        Returns:
            ExpenseCandidate, or None when the message is not an expense alert
            or no positive amount can be recovered. Never raises.
        """
        try:
            return self._assemble(message)
        except Exception:
            logger.exception(f"Failed to assemble candidate from sender {message.sender!r}")
            return None

    def _assemble(self, message: RawMessage) -> ExpenseCandidate | None:
        body = message.body or ""

        classification = classify(body, message.sender)
        if not classification.accepted:
            return None

        extraction = self.extractor.extract(body, message.received_at)
        if not extraction.has_amount:
            logger.debug(f"No amount recovered from message by {message.sender!r}")
            return None

        category = self.scorer.categorize(extraction.merchant, body)

        return ExpenseCandidate(
            amount=extraction.amount,
            merchant=extraction.merchant,
            category=category.category,
            payment_method=extraction.payment_method,
            transaction_date=extraction.date or local_day(message.received_at),
            confidence=category.confidence,
            original_text=body,
            source_sender=message.sender,
            source_timestamp=message.received_at,
            status=CandidateStatus.PENDING,
            created_at=utc_now(),
        )

    def assemble_batch(self, messages: Iterable[RawMessage]) -> list[ExpenseCandidate]:
        """Assemble many messages, keeping input order and dropping misses."""
        candidates = []
        for message in messages:
            candidate = self.assemble(message)
            if candidate is not None:
                candidates.append(candidate)
        return candidates
