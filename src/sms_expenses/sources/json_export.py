"""
Message source reading an exported SMS inbox (JSON).

Accepted file shapes:
- A list of Android inbox rows: [{"address": ..., "body": ..., "date": <epoch ms>}, ...]
- An object wrapping that list: {"messages": [...]}

Rows without a date are stamped with the file's modification time, which
stays stable across reads. They are listed by scans but never delivered to
live subscribers.
"""

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..schemas.expense_candidate import RawMessage, utc_now
from .base import MessageCallback, MessageSource, MessageSourceError, PollingSubscription

logger = logging.getLogger(__name__)


class JsonExportMessageSource(MessageSource):
    """
    Inbox export on disk.

    Permission means the file exists and is readable. Subscriptions poll the
    file and deliver rows newer than the newest one seen so far.
    """

    def __init__(self, path: Path | str, poll_interval_seconds: float = 30.0):
        self.path = Path(path)
        self.poll_interval_seconds = poll_interval_seconds

    def has_read_permission(self) -> bool:
        return self.path.is_file() and os.access(self.path, os.R_OK)

    def load(self, include_undated: bool = True) -> list[RawMessage]:
        """
        Parse every row of the export.

        Args:
            include_undated: Keep rows that carry no ``date``

        Raises:
            MessageSourceError: File unreadable or not a valid export
        """
        try:
            modified_at = datetime.fromtimestamp(self.path.stat().st_mtime, tz=timezone.utc)
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise MessageSourceError(f"Cannot read SMS export {self.path}: {e}") from e
        except json.JSONDecodeError as e:
            raise MessageSourceError(f"Invalid JSON in SMS export {self.path}: {e}") from e

        rows = data.get("messages", []) if isinstance(data, dict) else data
        if not isinstance(rows, list):
            raise MessageSourceError(f"SMS export {self.path} does not contain a message list")

        messages = []
        for row in rows:
            if not include_undated and isinstance(row, dict) and row.get("date") in (None, ""):
                continue
            message = self._parse_row(row, modified_at)
            if message is not None:
                messages.append(message)
        return messages

    def _parse_row(self, row: Any, modified_at: datetime) -> RawMessage | None:
        if not isinstance(row, dict):
            logger.warning(f"Skipping non-object row in {self.path}")
            return None
        try:
            return RawMessage.from_android(row, default_received_at=modified_at)
        except (TypeError, ValueError, OverflowError) as e:
            logger.warning(f"Skipping malformed row in {self.path}: {e}")
            return None

    def list_messages(self, since: datetime, max_count: int) -> list[RawMessage]:
        matching = [m for m in self.load() if m.received_at >= since]
        matching.sort(key=lambda m: m.received_at, reverse=True)
        return matching[:max_count]

    def _poll(self, since: datetime) -> list[RawMessage]:
        return [m for m in self.load(include_undated=False) if m.received_at >= since]

    def subscribe(self, callback: MessageCallback) -> PollingSubscription:
        return PollingSubscription(
            poll=self._poll,
            callback=callback,
            since=utc_now(),
            interval_seconds=self.poll_interval_seconds,
            name="sms-export-poller",
        )
