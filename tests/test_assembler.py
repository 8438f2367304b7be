"""Tests for the candidate assembler (classify -> extract -> categorize)."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from sms_expenses.confidence.scorer import ConfidenceBands
from sms_expenses.extractors import CandidateAssembler
from sms_expenses.schemas.expense_candidate import (
    CandidateStatus,
    Category,
    PaymentMethod,
    RawMessage,
)
from sms_expenses.schemas.dedupe import compute_dedupe_key

from .conftest import (
    FIXED_NOW,
    SMS_ATM,
    SMS_CARD_AMAZON,
    SMS_CARD_METRO,
    SMS_CREDIT,
    SMS_OTP,
    SMS_REFUND,
    SMS_UPI_ZOMATO,
    SMS_UPI_ZOMATO_DATED,
)


class TestSampleAlerts:
    """End-to-end behaviour on the sample bank alerts."""

    @pytest.fixture
    def assembler(self):
        return CandidateAssembler()

    def test_upi_zomato(self, assembler, raw_message):
        candidate = assembler.assemble(raw_message(SMS_UPI_ZOMATO, sender="SBIINB"))

        assert candidate is not None
        assert candidate.amount == Decimal("450.00")
        assert candidate.merchant == "Zomato"
        assert candidate.payment_method == PaymentMethod.UPI
        assert candidate.category == Category.FOOD
        assert candidate.confidence >= 0.60

    def test_card_metro(self, assembler, raw_message):
        candidate = assembler.assemble(raw_message(SMS_CARD_METRO, sender="HDFCBK"))

        assert candidate is not None
        assert candidate.amount == Decimal("120.00")
        assert "Metro" in candidate.merchant
        assert candidate.payment_method == PaymentMethod.CARD
        assert candidate.category == Category.TRANSPORT

    def test_card_amazon(self, assembler, raw_message):
        candidate = assembler.assemble(raw_message(SMS_CARD_AMAZON, sender="ICICIB"))

        assert candidate is not None
        assert candidate.amount == Decimal("2499.00")
        assert candidate.category == Category.SHOPPING
        assert candidate.payment_method == PaymentMethod.CARD

    def test_atm_withdrawal_is_low_confidence(self, assembler, raw_message):
        candidate = assembler.assemble(raw_message(SMS_ATM))

        assert candidate is not None
        assert candidate.amount == Decimal("2000.00")
        assert candidate.payment_method == PaymentMethod.CASH
        assert candidate.category == Category.OTHER
        assert candidate.confidence == 0.30
        assert candidate.needs_review is True


class TestCandidateFields:
    """Tests for the fields the assembler fills in."""

    @pytest.fixture
    def assembler(self):
        return CandidateAssembler()

    def test_description_and_provenance(self, assembler, raw_message):
        candidate = assembler.assemble(raw_message(SMS_UPI_ZOMATO, sender="SBIINB"))

        assert candidate.description == "Auto-detected from SMS: Zomato"
        assert candidate.original_text == SMS_UPI_ZOMATO
        assert candidate.source_sender == "SBIINB"
        assert candidate.source_timestamp == FIXED_NOW

    def test_unmerged_candidate_has_no_id(self, assembler, raw_message):
        candidate = assembler.assemble(raw_message(SMS_UPI_ZOMATO))

        assert candidate.id == ""
        assert candidate.status == CandidateStatus.PENDING

    def test_date_from_text(self, assembler, raw_message):
        candidate = assembler.assemble(raw_message(SMS_UPI_ZOMATO_DATED))
        assert candidate.transaction_date == date(2024, 12, 26)

    def test_date_from_received_time(self, assembler, raw_message):
        candidate = assembler.assemble(raw_message(SMS_UPI_ZOMATO))
        assert candidate.transaction_date == FIXED_NOW.date()

    def test_received_after_local_midnight(self, assembler, local_timezone):
        """An alert at 01:00 IST is dated that day, and so is its dedupe key."""
        local_timezone("IST-5:30")
        millis = int(datetime(2024, 12, 25, 19, 30, tzinfo=timezone.utc).timestamp() * 1000)
        message = RawMessage.from_android({"address": "SBIINB", "body": SMS_UPI_ZOMATO, "date": millis})

        candidate = assembler.assemble(message)

        assert candidate.transaction_date == date(2024, 12, 26)
        assert candidate.dedupe_key == compute_dedupe_key("450.00", "Zomato", "2024-12-26")

    def test_needs_review_follows_confidence(self, assembler, raw_message):
        candidate = assembler.assemble(raw_message(SMS_UPI_ZOMATO))
        assert candidate.needs_review is (candidate.confidence < 0.7)


class TestDroppedMessages:
    """Messages that produce no candidate."""

    @pytest.fixture
    def assembler(self):
        return CandidateAssembler()

    @pytest.mark.parametrize("body", [SMS_OTP, SMS_CREDIT, SMS_REFUND, "", "Hello from HDFC Bank"])
    def test_no_candidate(self, assembler, raw_message, body):
        assert assembler.assemble(raw_message(body, sender="HDFCBK")) is None

    def test_zero_amount_dropped(self, assembler, raw_message):
        assert assembler.assemble(raw_message("Rs.0.00 debited for card verification")) is None

    def test_failing_extractor_is_absorbed(self, raw_message):
        class BrokenExtractor:
            name = "broken"

            def extract(self, message, received_at=None):
                raise RuntimeError("boom")

        assembler = CandidateAssembler(extractor=BrokenExtractor())
        assert assembler.assemble(raw_message(SMS_UPI_ZOMATO)) is None


class TestBatch:
    """Tests for assemble_batch."""

    def test_keeps_order_and_drops_misses(self, raw_message):
        messages = [
            raw_message(SMS_CARD_AMAZON),
            raw_message(SMS_OTP),
            raw_message(SMS_UPI_ZOMATO),
            raw_message(SMS_CREDIT),
        ]
        candidates = CandidateAssembler().assemble_batch(messages)

        assert [c.amount for c in candidates] == [Decimal("2499.00"), Decimal("450")]
        bands = ConfidenceBands().values
        for candidate in candidates:
            assert candidate.amount > 0
            assert candidate.confidence in bands
