"""
Tests for message sources.

The gateway source is tested with the responses library to mock HTTP
requests, without a phone on the network.
"""

import json
import os
import threading
from datetime import datetime, timedelta, timezone

import pytest
import responses

from sms_expenses.schemas.expense_candidate import RawMessage
from sms_expenses.sources import (
    SAMPLE_MESSAGES,
    FixtureMessageSource,
    GatewayAPIError,
    GatewayConnectionError,
    GatewayMessageSource,
    JsonExportMessageSource,
    MessageSourceError,
    PollingSubscription,
    Subscription,
)

from .conftest import FIXED_NOW, SMS_CARD_AMAZON, SMS_CARD_METRO, SMS_UPI_ZOMATO


class TestSubscription:
    """Tests for the caller-owned subscription handle."""

    def test_close_runs_callback_once(self):
        calls = []
        sub = Subscription(on_close=lambda: calls.append(1))

        assert sub.active is True
        sub.close()
        sub.close()

        assert sub.active is False
        assert calls == [1]

    def test_context_manager(self):
        with Subscription() as sub:
            assert sub.active
        assert not sub.active


class TestPollingSubscription:
    """Tests for the polling thread."""

    def test_delivers_new_messages_in_order(self):
        start = FIXED_NOW
        batches = [
            [
                RawMessage("second", "A", start + timedelta(seconds=2)),
                RawMessage("first", "A", start + timedelta(seconds=1)),
                RawMessage("old", "A", start - timedelta(seconds=1)),
            ],
            [],
        ]
        received = []
        delivered = threading.Event()

        def poll(since):
            return batches.pop(0) if batches else []

        def callback(message):
            received.append(message.body)
            if len(received) == 2:
                delivered.set()

        sub = PollingSubscription(poll, callback, since=start, interval_seconds=0.05)
        try:
            assert delivered.wait(timeout=5)
        finally:
            sub.close()

        assert received == ["first", "second"]
        assert sub.active is False

    def test_failing_poll_keeps_running(self):
        attempts = []
        second_attempt = threading.Event()

        def poll(since):
            attempts.append(since)
            if len(attempts) >= 2:
                second_attempt.set()
            raise MessageSourceError("gateway down")

        sub = PollingSubscription(poll, lambda m: None, since=FIXED_NOW, interval_seconds=0.05)
        try:
            assert second_attempt.wait(timeout=5)
            assert sub.active is True
        finally:
            sub.close()


    def test_messages_sharing_a_timestamp(self):
        """Alerts stamped with the same instant are each delivered once."""
        stamp = FIXED_NOW + timedelta(seconds=1)
        inbox = [
            RawMessage(SMS_UPI_ZOMATO, "SBIINB", stamp),
            RawMessage(SMS_CARD_METRO, "HDFCBK", stamp),
        ]
        received = []

        sub = PollingSubscription(
            lambda since: list(inbox), received.append, since=FIXED_NOW, interval_seconds=60
        )
        sub.close()
        sub.poll_once()

        assert sorted(m.sender for m in received) == ["HDFCBK", "SBIINB"]

        inbox.append(RawMessage(SMS_CARD_AMAZON, "ICICIB", stamp))
        assert sub.poll_once() == 1
        assert sub.poll_once() == 0
        assert len(received) == 3


class TestFixtureMessageSource:
    """Tests for the in-memory source."""

    def test_with_samples(self):
        source = FixtureMessageSource.with_samples(now=FIXED_NOW)

        messages = source.list_messages(FIXED_NOW - timedelta(days=30), 500)

        assert len(messages) == len(SAMPLE_MESSAGES)
        assert [m.sender for m in messages] == ["SBIINB", "HDFCBK", "ICICIB"]

    def test_window_and_limit(self):
        source = FixtureMessageSource(
            [RawMessage(f"m{i}", "X", FIXED_NOW - timedelta(days=i)) for i in range(5)]
        )

        recent = source.list_messages(FIXED_NOW - timedelta(days=2), 500)
        assert [m.body for m in recent] == ["m0", "m1", "m2"]

        limited = source.list_messages(FIXED_NOW - timedelta(days=10), 2)
        assert [m.body for m in limited] == ["m0", "m1"]

    def test_permission_flag(self):
        assert FixtureMessageSource().has_read_permission() is True
        assert FixtureMessageSource(permission_granted=False).has_read_permission() is False

    def test_deliver_to_subscribers(self):
        source = FixtureMessageSource()
        received = []
        sub = source.subscribe(received.append)

        message = RawMessage(SMS_UPI_ZOMATO, "SBIINB", FIXED_NOW)
        assert source.deliver(message) == 1
        assert received == [message]
        assert message in source.messages

        sub.close()
        assert source.subscriber_count == 0
        assert source.deliver(message) == 0
        assert received == [message]

    def test_failing_subscriber_isolated(self):
        source = FixtureMessageSource()
        received = []

        def broken(message):
            raise RuntimeError("boom")

        source.subscribe(broken)
        source.subscribe(received.append)

        assert source.deliver(RawMessage("x", "y", FIXED_NOW)) == 1
        assert len(received) == 1


class TestJsonExportMessageSource:
    """Tests for the exported inbox file source."""

    @pytest.fixture
    def export_file(self, tmp_path, android_export_rows):
        path = tmp_path / "inbox.json"
        path.write_text(json.dumps(android_export_rows), encoding="utf-8")
        return path

    def test_permission_requires_file(self, tmp_path, export_file):
        assert JsonExportMessageSource(export_file).has_read_permission() is True
        assert JsonExportMessageSource(tmp_path / "missing.json").has_read_permission() is False

    def test_list_messages_window(self, export_file):
        source = JsonExportMessageSource(export_file)

        messages = source.list_messages(FIXED_NOW - timedelta(days=30), 500)

        assert len(messages) == 3
        assert messages[0].received_at >= messages[-1].received_at
        assert {m.sender for m in messages} == {"SBIINB", "HDFCBK", "VM-OTPSRV"}

    def test_wrapped_shape(self, tmp_path, android_export_rows):
        path = tmp_path / "wrapped.json"
        path.write_text(json.dumps({"messages": android_export_rows}), encoding="utf-8")

        assert len(JsonExportMessageSource(path).load()) == 4

    def test_malformed_rows_skipped(self, tmp_path):
        path = tmp_path / "bad_rows.json"
        rows = [
            "not an object",
            {"address": "SBIINB", "body": SMS_CARD_METRO, "date": "yesterday"},
            {"address": "SBIINB", "body": SMS_UPI_ZOMATO, "date": 1736900000000},
        ]
        path.write_text(json.dumps(rows), encoding="utf-8")

        messages = JsonExportMessageSource(path).load()
        assert [m.body for m in messages] == [SMS_UPI_ZOMATO]

    def test_undated_rows_use_file_mtime(self, tmp_path):
        path = tmp_path / "undated.json"
        rows = [{"address": "SBIINB", "body": SMS_UPI_ZOMATO}]
        path.write_text(json.dumps(rows), encoding="utf-8")
        os.utime(path, (FIXED_NOW.timestamp(), FIXED_NOW.timestamp()))
        source = JsonExportMessageSource(path)

        first = source.list_messages(FIXED_NOW - timedelta(days=1), 10)
        second = source.list_messages(FIXED_NOW - timedelta(days=1), 10)

        assert [m.received_at for m in first] == [FIXED_NOW]
        assert first == second

    def test_polling_unchanged_file_delivers_nothing_twice(self, tmp_path):
        """Re-reading the same export never replays rows."""
        future = int((datetime.now(timezone.utc) + timedelta(hours=1)).timestamp() * 1000)
        path = tmp_path / "inbox.json"
        rows = [
            {"address": "SBIINB", "body": SMS_UPI_ZOMATO},
            {"address": "HDFCBK", "body": SMS_CARD_METRO, "date": future},
        ]
        path.write_text(json.dumps(rows), encoding="utf-8")
        received = []

        sub = JsonExportMessageSource(path, poll_interval_seconds=60).subscribe(received.append)
        sub.close()
        for _ in range(3):
            sub.poll_once()

        assert [m.sender for m in received] == ["HDFCBK"]

    def test_invalid_json_raises(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(MessageSourceError):
            JsonExportMessageSource(path).load()

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(MessageSourceError):
            JsonExportMessageSource(tmp_path / "missing.json").list_messages(FIXED_NOW, 10)


class TestGatewayMessageSource:
    """Test the SMS gateway client."""

    BASE_URL = "http://phone.test:8080"
    TOKEN = "gateway-token"

    @responses.activate
    def test_permission_granted(self):
        responses.add(
            responses.GET,
            f"{self.BASE_URL}/api/permissions",
            json={"read_sms": True},
            status=200,
        )

        source = GatewayMessageSource(self.BASE_URL, self.TOKEN)
        assert source.has_read_permission() is True
        assert responses.calls[0].request.headers["Authorization"] == f"Bearer {self.TOKEN}"

    @responses.activate
    def test_permission_denied(self):
        responses.add(
            responses.GET,
            f"{self.BASE_URL}/api/permissions",
            json={"read_sms": False},
            status=200,
        )

        assert GatewayMessageSource(self.BASE_URL).has_read_permission() is False

    @responses.activate
    def test_permission_on_auth_error(self):
        responses.add(
            responses.GET,
            f"{self.BASE_URL}/api/permissions",
            json={"detail": "Invalid token"},
            status=401,
        )

        assert GatewayMessageSource(self.BASE_URL, "wrong").has_read_permission() is False

    @responses.activate
    def test_list_messages(self, android_export_rows):
        responses.add(
            responses.GET,
            f"{self.BASE_URL}/api/messages",
            json={"messages": android_export_rows},
            status=200,
        )

        source = GatewayMessageSource(self.BASE_URL, self.TOKEN)
        since = datetime(2025, 1, 1, tzinfo=timezone.utc)
        messages = source.list_messages(since, 3)

        assert len(messages) == 3
        assert messages[0].sender == "SBIINB"
        assert messages[0].body == SMS_UPI_ZOMATO

        request = responses.calls[0].request
        assert f"since={int(since.timestamp() * 1000)}" in request.url
        assert "limit=3" in request.url

    @responses.activate
    def test_list_messages_api_error(self):
        responses.add(
            responses.GET,
            f"{self.BASE_URL}/api/messages",
            json={"detail": "Permission denied"},
            status=403,
        )

        with pytest.raises(GatewayAPIError) as exc_info:
            GatewayMessageSource(self.BASE_URL).list_messages(FIXED_NOW, 10)

        assert exc_info.value.status_code == 403

    @responses.activate
    def test_list_messages_connection_error(self):
        import requests

        responses.add(
            responses.GET,
            f"{self.BASE_URL}/api/messages",
            body=requests.exceptions.ConnectionError("refused"),
        )

        with pytest.raises(GatewayConnectionError):
            GatewayMessageSource(self.BASE_URL).list_messages(FIXED_NOW, 10)

    @responses.activate
    def test_list_messages_bad_shape(self):
        responses.add(
            responses.GET,
            f"{self.BASE_URL}/api/messages",
            json={"messages": "nope"},
            status=200,
        )

        with pytest.raises(MessageSourceError):
            GatewayMessageSource(self.BASE_URL).list_messages(FIXED_NOW, 10)
