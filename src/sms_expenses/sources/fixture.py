"""
In-memory message source for tests, demos and machines without an inbox.
"""

import logging
import threading
from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Optional

from ..schemas.expense_candidate import RawMessage, utc_now
from .base import MessageCallback, MessageSource, Subscription

logger = logging.getLogger(__name__)

# Typical alerts from three banks: UPI, card and card-spend formats
SAMPLE_MESSAGES = [
    ("SBIINB", "Rs.450 debited from A/c XX1234 on 26-12-24 to Zomato via UPI", 0),
    ("HDFCBK", "INR 120.00 debited from Card XX5678 at Metro Card Recharge on 25-12-24", 1),
    (
        "ICICIB",
        "Rs 2499.00 spent on Amazon India using Card XX9012. Available bal: Rs XXXXX",
        2,
    ),
]


class FixtureMessageSource(MessageSource):
    """
    Message source backed by a list held in memory.

    ``deliver`` simulates an incoming SMS: the message is stored and pushed
    to every open subscription on the calling thread.
    """

    def __init__(
        self,
        messages: Optional[Iterable[RawMessage]] = None,
        permission_granted: bool = True,
    ):
        self.messages: list[RawMessage] = list(messages or [])
        self.permission_granted = permission_granted
        self._subscribers: list[MessageCallback] = []
        self._lock = threading.Lock()

    @classmethod
    def with_samples(cls, now: Optional[datetime] = None, **kwargs) -> "FixtureMessageSource":
        """Source seeded with the sample bank alerts, one per day back from now."""
        now = now or utc_now()
        messages = [
            RawMessage(body=body, sender=sender, received_at=now - timedelta(days=days_ago))
            for sender, body, days_ago in SAMPLE_MESSAGES
        ]
        return cls(messages=messages, **kwargs)

    def has_read_permission(self) -> bool:
        return self.permission_granted

    def list_messages(self, since: datetime, max_count: int) -> list[RawMessage]:
        with self._lock:
            matching = [m for m in self.messages if m.received_at >= since]
        matching.sort(key=lambda m: m.received_at, reverse=True)
        return matching[:max_count]

    def subscribe(self, callback: MessageCallback) -> Subscription:
        with self._lock:
            self._subscribers.append(callback)

        def _remove() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return Subscription(on_close=_remove)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def deliver(self, message: RawMessage) -> int:
        """
        Store a new message and push it to subscribers.

        Returns:
            Number of subscribers that handled it without error
        """
        with self._lock:
            self.messages.append(message)
            subscribers = list(self._subscribers)

        handled = 0
        for callback in subscribers:
            try:
                callback(message)
                handled += 1
            except Exception:
                logger.exception(f"Subscriber failed on message from {message.sender!r}")
        return handled
