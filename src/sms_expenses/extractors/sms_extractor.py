"""
SMS text heuristics extractor.

Extracts expense fields from bank and wallet SMS alerts using ordered
fallback patterns. Each field is tried independently; only the amount is
mandatory for the caller.
"""

import logging
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from ..schemas.expense_candidate import UNKNOWN_MERCHANT, PaymentMethod, local_day, utc_now
from ..patterns import (
    AMOUNT_PATTERNS,
    DATE_PATTERN,
    DEFAULT_PAYMENT_METHOD,
    MERCHANT_MAX_LENGTH,
    MERCHANT_MIN_LENGTH,
    MERCHANT_PATTERNS,
    PAYMENT_METHOD_KEYWORDS,
)
from .base import BaseExtractor, ExtractionResult

logger = logging.getLogger(__name__)


def parse_amount(amount_str: str) -> Decimal:
    """Parse an Indian-format amount (1,23,456.78 or 2,499.00) to Decimal."""
    # Remove thousands/lakh separators
    cleaned = amount_str.replace(",", "")
    return Decimal(cleaned)


def parse_date_match(match: re.Match) -> date | None:
    """Parse a DD-MM-YY[YY] match; two-digit years are 20YY."""
    try:
        day = int(match.group(1))
        month = int(match.group(2))
        year_str = match.group(3)
        year = 2000 + int(year_str) if len(year_str) == 2 else int(year_str)
        return date(year, month, day)
    except (ValueError, IndexError):
        return None


class SMSTextExtractor(BaseExtractor):
    """
    Extract expense fields from SMS text using pattern matching.

    Field strategies:
    - Amount: currency prefix, then currency suffix, then verb-adjacent
    - Merchant: "at/to <name>", "merchant <name>", "UPI/<vpa>"
    - Date: DD-MM-YY in the text, else the message's received date
    - Payment method: keyword precedence UPI > Card > Cash > Net Banking
    """

    @property
    def name(self) -> str:
        return "sms_heuristic"

    def extract(self, message: str, received_at: Optional[datetime] = None) -> ExtractionResult:
        """Extract expense fields using pattern matching."""
        result = ExtractionResult(extraction_strategy=self.name)
        content = (message or "").strip()

        amount_result = self._extract_amount(content)
        if amount_result:
            result.amount = amount_result["amount"]
            result.raw_matches["amount"] = amount_result

        merchant_result = self._extract_merchant(content)
        if merchant_result:
            result.merchant = merchant_result["merchant"]
            result.raw_matches["merchant"] = merchant_result

        date_result = self._extract_date(content)
        if date_result:
            result.date = date_result["date"]
            result.date_from_text = True
            result.raw_matches["date"] = date_result
        else:
            fallback = received_at or utc_now()
            result.date = local_day(fallback)

        result.payment_method = self._extract_payment_method(content)

        return result

    def _extract_amount(self, content: str) -> dict[str, Any] | None:
        """Return the first amount found, trying patterns in priority order."""
        for pattern, pattern_type in AMOUNT_PATTERNS:
            match = pattern.search(content)
            if not match:
                continue
            try:
                amount = parse_amount(match.group(1))
            except (InvalidOperation, ValueError):
                logger.debug(f"Unparseable amount {match.group(1)!r} ({pattern_type})")
                continue
            return {
                "amount": amount,
                "match": match.group(0),
                "position": match.start(),
                "pattern_type": pattern_type,
            }
        return None

    def _extract_merchant(self, content: str) -> dict[str, Any] | None:
        """Return the first merchant whose trimmed length is within bounds."""
        for pattern, pattern_type in MERCHANT_PATTERNS:
            match = pattern.search(content)
            if not match:
                continue
            merchant = match.group(1).strip()
            if MERCHANT_MIN_LENGTH < len(merchant) < MERCHANT_MAX_LENGTH:
                return {
                    "merchant": merchant,
                    "match": match.group(0),
                    "pattern_type": pattern_type,
                }
        return None

    def _extract_date(self, content: str) -> dict[str, Any] | None:
        """Return the first date in the text, or None."""
        match = DATE_PATTERN.search(content)
        if not match:
            return None
        parsed = parse_date_match(match)
        if parsed is None:
            return None
        return {"date": parsed, "match": match.group(0), "position": match.start()}

    def _extract_payment_method(self, content: str) -> PaymentMethod:
        """Always returns exactly one method (Card when nothing matches)."""
        msg_lower = content.lower()
        for method, keywords in PAYMENT_METHOD_KEYWORDS:
            if any(keyword in msg_lower for keyword in keywords):
                return method
        return DEFAULT_PAYMENT_METHOD


def extract(message: str, received_at: Optional[datetime] = None) -> ExtractionResult:
    """Extract with the default SMS extractor. Never raises."""
    try:
        return SMSTextExtractor().extract(message, received_at)
    except Exception:
        logger.exception("Field extraction failed")
        fallback = received_at or utc_now()
        return ExtractionResult(
            merchant=UNKNOWN_MERCHANT,
            date=local_day(fallback),
            payment_method=DEFAULT_PAYMENT_METHOD,
            extraction_strategy="fallback",
        )
