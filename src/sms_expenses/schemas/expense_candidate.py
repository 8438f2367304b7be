"""
Canonical expense candidate object (SSOT).

This is THE single source of truth for an expense detected from an SMS.
Every stage after extraction (merge, store, review, notifications) works
with this schema exclusively.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from .dedupe import compute_dedupe_key

UNKNOWN_MERCHANT = "Unknown Merchant"
DESCRIPTION_PREFIX = "Auto-detected from SMS: "


class Category(str, Enum):
    """Closed set of expense categories.

    Declaration order matters: the categorizer breaks ties in favour of the
    category declared first.
    """

    FOOD = "Food"
    TRANSPORT = "Transport"
    SHOPPING = "Shopping"
    BILLS = "Bills"
    ENTERTAINMENT = "Entertainment"
    HEALTH = "Health"
    OTHER = "Other"


class PaymentMethod(str, Enum):
    """How the expense was paid."""

    CASH = "Cash"
    CARD = "Card"
    UPI = "UPI"
    NET_BANKING = "Net Banking"


class CandidateStatus(str, Enum):
    """
    Lifecycle state of a candidate.

    PENDING: Detected, waiting for a user decision
    CONFIRMED: User accepted it (and pushed it to the ledger)
    REJECTED: User discarded it; kept for audit
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not CandidateStatus.PENDING


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def local_day(value: datetime) -> date:
    """Calendar day of a timestamp in the local timezone of this machine."""
    return value.astimezone().date()


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class RawMessage:
    """An inbound SMS as delivered by a message source. Never persisted."""

    body: str
    sender: str
    received_at: datetime

    @classmethod
    def from_android(
        cls, data: dict[str, Any], default_received_at: Optional[datetime] = None
    ) -> "RawMessage":
        """
        Build from the Android inbox export shape.

        Android reports ``address`` for the sender and ``date`` as epoch
        milliseconds. A missing date falls back to ``default_received_at``,
        or to now when none is given.
        """
        millis = data.get("date")
        if millis in (None, ""):
            received_at = default_received_at or utc_now()
        else:
            received_at = datetime.fromtimestamp(int(millis) / 1000, tz=timezone.utc)
        return cls(
            body=data.get("body") or "",
            sender=data.get("address") or "",
            received_at=received_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "body": self.body,
            "sender": self.sender,
            "received_at": _format_timestamp(self.received_at),
        }


@dataclass(frozen=True)
class ExpenseCandidate:
    """
    CANONICAL expense candidate (SSOT).

    Immutable: lifecycle changes produce a new instance via ``with_status``.
    ``id`` is empty until the merge engine assigns one.
    """

    # Required: extracted fields
    amount: Decimal  # Always positive
    merchant: str
    category: Category
    payment_method: PaymentMethod
    transaction_date: date

    # Required: categorization confidence (not a truth probability)
    confidence: float

    # Provenance
    original_text: str
    source_sender: str
    source_timestamp: datetime

    # Identity and lifecycle (assigned at merge)
    id: str = ""
    status: CandidateStatus = CandidateStatus.PENDING
    created_at: Optional[datetime] = None

    description: str = field(default="")

    def __post_init__(self):
        if not self.description:
            object.__setattr__(self, "description", f"{DESCRIPTION_PREFIX}{self.merchant}")

    @property
    def needs_review(self) -> bool:
        """Low-confidence flag surfaced to the user."""
        from ..confidence.scorer import needs_review

        return needs_review(self.confidence)

    @property
    def dedupe_key(self) -> str:
        """Natural key: amount, merchant and calendar day."""
        return compute_dedupe_key(self.amount, self.merchant, self.transaction_date)

    def with_status(self, status: CandidateStatus) -> "ExpenseCandidate":
        return replace(self, status=status)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output and notifications."""
        return {
            "id": self.id,
            "amount": f"{self.amount:.2f}",
            "merchant": self.merchant,
            "category": self.category.value,
            "payment_method": self.payment_method.value,
            "transaction_date": self.transaction_date.isoformat(),
            "description": self.description,
            "confidence": self.confidence,
            "needs_review": self.needs_review,
            "original_text": self.original_text,
            "source_sender": self.source_sender,
            "source_timestamp": _format_timestamp(self.source_timestamp),
            "status": self.status.value,
            "created_at": _format_timestamp(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExpenseCandidate":
        """Deserialize from dictionary."""
        return cls(
            id=data.get("id", ""),
            amount=Decimal(data["amount"]),
            merchant=data["merchant"],
            category=Category(data["category"]),
            payment_method=PaymentMethod(data["payment_method"]),
            transaction_date=date.fromisoformat(data["transaction_date"]),
            description=data.get("description", ""),
            confidence=float(data["confidence"]),
            original_text=data.get("original_text", ""),
            source_sender=data.get("source_sender", ""),
            source_timestamp=_parse_timestamp(data.get("source_timestamp")) or utc_now(),
            status=CandidateStatus(data.get("status", CandidateStatus.PENDING.value)),
            created_at=_parse_timestamp(data.get("created_at")),
        )
