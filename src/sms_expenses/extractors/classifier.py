"""
Message classifier.

Decides whether an SMS is a transaction alert and whether it records money
leaving the account. Misses are not errors: the caller simply drops the
message.
"""

import logging
from dataclasses import dataclass

from ..patterns import (
    CREDIT_KEYWORDS,
    CURRENCY_AMOUNT_PATTERNS,
    EXPENSE_KEYWORDS,
    TRANSACTION_KEYWORDS,
    TRUSTED_SENDERS,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MessageClassification:
    """Outcome of classifying one message."""

    is_transaction: bool
    is_expense: bool

    @property
    def accepted(self) -> bool:
        """True when the message should continue down the pipeline."""
        return self.is_transaction and self.is_expense


def is_trusted_sender(sender: str) -> bool:
    """Check the sender ID against the bank/wallet allowlist."""
    sender_upper = (sender or "").upper()
    return any(token in sender_upper for token in TRUSTED_SENDERS)


def has_currency_amount(message: str) -> bool:
    """Check for an amount with an explicit currency marker."""
    return any(pattern.search(message or "") for pattern in CURRENCY_AMOUNT_PATTERNS)


def is_transaction_message(message: str, sender: str) -> bool:
    """
    Check if a message is a transaction alert.

    Rules:
    - Sender is a trusted bank/wallet OR the body has a transaction keyword
    - AND the body contains a currency amount (always required)
    """
    if not message or not sender:
        return False

    msg_lower = message.lower()
    from_bank = is_trusted_sender(sender)
    has_keyword = any(keyword in msg_lower for keyword in TRANSACTION_KEYWORDS)

    return (from_bank or has_keyword) and has_currency_amount(message)


def is_expense_message(message: str) -> bool:
    """
    Check if a transaction alert is an outgoing payment.

    A credit keyword always vetoes, even when expense keywords are present.
    """
    if not message:
        return False

    msg_lower = message.lower()
    if any(keyword in msg_lower for keyword in CREDIT_KEYWORDS):
        return False

    return any(keyword in msg_lower for keyword in EXPENSE_KEYWORDS)


def classify(message: str, sender: str) -> MessageClassification:
    """Classify a message. Never raises."""
    try:
        result = MessageClassification(
            is_transaction=is_transaction_message(message, sender),
            is_expense=is_expense_message(message),
        )
    except Exception:
        logger.exception("Failed to classify message")
        return MessageClassification(is_transaction=False, is_expense=False)

    if not result.accepted:
        logger.debug(
            f"Message from {sender!r} dropped "
            f"(transaction={result.is_transaction}, expense={result.is_expense})"
        )
    return result
