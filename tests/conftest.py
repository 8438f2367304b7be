"""Test fixtures and utilities."""

import os
import time
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest

from sms_expenses.schemas.expense_candidate import (
    Category,
    ExpenseCandidate,
    PaymentMethod,
    RawMessage,
)

# Sample bank alerts
SMS_UPI_ZOMATO = "Rs.450 debited from A/c XX1234 to Zomato via UPI"
SMS_CARD_METRO = "INR 120.00 debited from Card XX5678 at Metro Card Recharge"
SMS_CARD_AMAZON = "Rs 2499.00 spent on Amazon India using Card XX9012"
SMS_UPI_ZOMATO_DATED = "Rs.450 debited from A/c XX1234 on 26-12-24 to Zomato via UPI"
SMS_CREDIT = "Rs.500 credited to A/c XX1234 on 26-12-24 by NEFT"
SMS_REFUND = "Refund of Rs.299 debited amount processed to your Card XX9012"
SMS_OTP = "Your OTP is 4521"
SMS_ATM = "Rs.2,000.00 withdrawn at ATM SBI Koramangala on 02/01/2025"

# Fixed "now" for deterministic tests
FIXED_NOW = datetime(2025, 1, 15, 9, 30, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def local_timezone():
    """Pin the process timezone to UTC. Yields a setter for other zones."""
    previous = os.environ.get("TZ")

    def _set(name: str) -> None:
        os.environ["TZ"] = name
        time.tzset()

    _set("UTC")
    yield _set
    if previous is None:
        os.environ.pop("TZ", None)
    else:
        os.environ["TZ"] = previous
    time.tzset()


@pytest.fixture
def fixed_now() -> datetime:
    """Fixed UTC timestamp."""
    return FIXED_NOW


@pytest.fixture
def raw_message():
    """Factory for RawMessage objects received at FIXED_NOW by default."""

    def _make(body: str, sender: str = "HDFCBK", received_at: datetime = FIXED_NOW) -> RawMessage:
        return RawMessage(body=body, sender=sender, received_at=received_at)

    return _make


@pytest.fixture
def make_candidate():
    """Factory for unmerged ExpenseCandidate objects."""

    def _make(
        amount: str = "450.00",
        merchant: str = "Zomato",
        transaction_date: date = date(2025, 1, 15),
        category: Category = Category.FOOD,
        confidence: float = 0.6,
        **kwargs,
    ) -> ExpenseCandidate:
        return ExpenseCandidate(
            amount=Decimal(amount),
            merchant=merchant,
            category=category,
            payment_method=kwargs.pop("payment_method", PaymentMethod.UPI),
            transaction_date=transaction_date,
            confidence=confidence,
            original_text=kwargs.pop("original_text", SMS_UPI_ZOMATO),
            source_sender=kwargs.pop("source_sender", "SBIINB"),
            source_timestamp=kwargs.pop("source_timestamp", FIXED_NOW),
            **kwargs,
        )

    return _make


@pytest.fixture
def android_export_rows() -> list[dict]:
    """Inbox rows in the Android export shape (date in epoch ms)."""
    base = int(FIXED_NOW.timestamp() * 1000)
    day = 86_400_000
    return [
        {"address": "SBIINB", "body": SMS_UPI_ZOMATO, "date": base - day},
        {"address": "HDFCBK", "body": SMS_CARD_METRO, "date": base - 2 * day},
        {"address": "ICICIB", "body": SMS_CARD_AMAZON, "date": base - 40 * day},
        {"address": "VM-OTPSRV", "body": SMS_OTP, "date": base - day},
    ]


@pytest.fixture
def temp_db(tmp_path) -> Path:
    """Temporary database path for testing."""
    return tmp_path / "test_state.db"
