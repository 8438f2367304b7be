"""
Base extractor interface and common types.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from ..schemas.expense_candidate import UNKNOWN_MERCHANT, PaymentMethod


@dataclass
class ExtractionResult:
    """Result from an extraction attempt."""

    # Extracted values
    amount: Optional[Decimal] = None
    merchant: str = UNKNOWN_MERCHANT
    date: Optional[date] = None
    payment_method: Optional[PaymentMethod] = None

    # True when the date came from the message text rather than the
    # received timestamp
    date_from_text: bool = False

    # Metadata
    extraction_strategy: str = ""
    raw_matches: dict[str, Any] = field(default_factory=dict)  # Debug info

    @property
    def has_amount(self) -> bool:
        return self.amount is not None and self.amount > 0


class BaseExtractor(ABC):
    """
    Base class for message extractors.

    Each extractor implements one strategy for one family of message texts
    (bank SMS alerts today).
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Extractor name for logging and provenance."""
        pass

    @abstractmethod
    def extract(self, message: str, received_at: Optional[datetime] = None) -> ExtractionResult:
        """
        Extract expense fields from a message body.

        Args:
            message: SMS body
            received_at: When the message arrived (date fallback)

        Returns:
            ExtractionResult; fields that could not be found are left empty
        """
        pass
