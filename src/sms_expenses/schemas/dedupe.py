"""
Dedupe key generation (CRITICAL).

This module defines THE deterministic natural key for expense candidates.
This is the ONLY way to decide whether two candidates describe the same
real-world payment.

Dedupe key:
    SHA256(amount|merchant|date)[:32]
    - amount = normalized to 2 decimal places
    - merchant = exact merchant string (case and spacing preserved)
    - date = calendar day, YYYY-MM-DD

The key must be:
- Stable: Same inputs always produce same output
- Exact: Merchant strings are compared as-is; "Zomato" and "ZOMATO" are
  different merchants
- Day-granular: Two alerts for the same payment on the same day collapse
"""

import hashlib
import uuid
from datetime import date, datetime
from decimal import Decimal

# ============================================================================
# SSOT Constants for Dedupe Keys and Candidate IDs
# ============================================================================

# Separator between key components
DEDUPE_KEY_SEPARATOR = "|"

# Length of the hex digest kept as the key
DEDUPE_KEY_LENGTH = 32

# Prefix for candidate IDs
CANDIDATE_ID_PREFIX = "sms_"


def _normalize_amount(amount: Decimal | str | float) -> str:
    """
    Normalize amount to consistent format for hashing.

    Args:
        amount: Amount in various formats

    Returns:
        Normalized amount string with 2 decimal places
    """
    if isinstance(amount, str):
        amount = Decimal(amount.replace(",", ""))
    elif isinstance(amount, float):
        amount = Decimal(str(amount))
    elif not isinstance(amount, Decimal):
        raise ValueError(f"amount must be Decimal, str, or float, got: {type(amount)}")

    return f"{amount:.2f}"


def _normalize_day(value: date | datetime | str) -> str:
    """Reduce a date, datetime or ISO string to its calendar day (local time)."""
    if isinstance(value, datetime):
        return value.astimezone().date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str) and len(value) >= 10:
        return value[:10]
    raise ValueError(f"date must be a date, datetime or YYYY-MM-DD string, got: {value!r}")


def compute_dedupe_key(
    amount: Decimal | str | float,
    merchant: str,
    transaction_date: date | datetime | str,
) -> str:
    """
    Compute the dedupe key for a candidate.

    Args:
        amount: Transaction amount
        merchant: Merchant string exactly as extracted
        transaction_date: Transaction date (any granularity; reduced to the day)

    Returns:
        32-character lowercase hex key

    Examples:
        >>> compute_dedupe_key(Decimal("450"), "Zomato", date(2024, 12, 26)) == \\
        ...     compute_dedupe_key("450.00", "Zomato", "2024-12-26")
        True
    """
    canonical = DEDUPE_KEY_SEPARATOR.join(
        [
            _normalize_amount(amount),
            merchant or "",
            _normalize_day(transaction_date),
        ]
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:DEDUPE_KEY_LENGTH]


def is_duplicate(first, second) -> bool:
    """
    Check whether two candidates describe the same real-world payment.

    Equal amount, identical merchant string, same calendar day.
    """
    return (
        first.amount == second.amount
        and first.merchant == second.merchant
        and _normalize_day(first.transaction_date) == _normalize_day(second.transaction_date)
    )


def generate_candidate_id() -> str:
    """Generate a fresh opaque candidate ID."""
    return f"{CANDIDATE_ID_PREFIX}{uuid.uuid4().hex}"


def is_candidate_id(value: str | None) -> bool:
    """Check if a string looks like an ID produced by generate_candidate_id."""
    if not value or not value.startswith(CANDIDATE_ID_PREFIX):
        return False
    suffix = value[len(CANDIDATE_ID_PREFIX) :]
    return len(suffix) == 32 and all(c in "0123456789abcdef" for c in suffix)
