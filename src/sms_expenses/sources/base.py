"""
Message source interface and subscriptions.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from typing import Optional

from ..schemas.expense_candidate import RawMessage

logger = logging.getLogger(__name__)

MessageCallback = Callable[[RawMessage], None]


class MessageSourceError(Exception):
    """Base exception for message source errors."""

    pass


class GatewayAPIError(MessageSourceError):
    """SMS gateway returned an error response."""

    def __init__(self, status_code: int, message: str, response_body: Optional[str] = None):
        self.status_code = status_code
        self.message = message
        self.response_body = response_body
        super().__init__(f"SMS gateway error {status_code}: {message}")


class GatewayConnectionError(MessageSourceError):
    """Failed to connect to the SMS gateway."""

    pass


class Subscription:
    """
    Handle for a live message subscription.

    Owned by whoever called ``subscribe``. Closing it stops delivery;
    closing twice is harmless.
    """

    def __init__(self, on_close: Optional[Callable[[], None]] = None):
        self._on_close = on_close
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def close(self) -> None:
        if not self._active:
            return
        self._active = False
        if self._on_close is not None:
            self._on_close()

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class PollingSubscription(Subscription):
    """
    Subscription backed by a daemon thread that polls for new messages.

    ``poll(since)`` returns messages received at or after ``since``; each new
    one is handed to the callback in order. Messages sharing the newest
    timestamp are remembered so a later poll does not repeat or drop them.
    A failing poll or callback is logged and the loop carries on.
    """

    def __init__(
        self,
        poll: Callable[[datetime], list[RawMessage]],
        callback: MessageCallback,
        since: datetime,
        interval_seconds: float = 30.0,
        name: str = "sms-poller",
    ):
        super().__init__()
        self._poll = poll
        self._callback = callback
        self._since = since
        self._seen_at_since: set[tuple[datetime, str, str]] = set()
        self._interval = interval_seconds
        self._shutdown = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    @property
    def active(self) -> bool:
        return self._active and self._thread.is_alive()

    def close(self) -> None:
        if not self._active:
            return
        self._active = False
        self._shutdown.set()
        if threading.current_thread() is not self._thread:
            self._thread.join(timeout=self._interval + 5)

    def poll_once(self) -> int:
        """Run one poll cycle. Returns the number of messages delivered."""
        try:
            messages = self._poll(self._since)
        except Exception:
            logger.exception("Polling for new messages failed")
            return 0

        delivered = 0
        for message in sorted(messages, key=lambda m: m.received_at):
            key = (message.received_at, message.sender, message.body)
            if message.received_at < self._since or key in self._seen_at_since:
                continue
            if message.received_at > self._since:
                self._since = message.received_at
                self._seen_at_since = set()
            self._seen_at_since.add(key)
            try:
                self._callback(message)
                delivered += 1
            except Exception:
                logger.exception(f"Message callback failed for sender {message.sender!r}")
        return delivered

    def _run(self) -> None:
        logger.info(f"Polling for new messages every {self._interval}s")
        while not self._shutdown.is_set():
            self.poll_once()
            self._shutdown.wait(self._interval)
        logger.info("Message polling stopped")


class MessageSource(ABC):
    """
    Read access to an SMS inbox.

    The pipeline only lists and subscribes. Permission is reported here but
    enforced by the caller.
    """

    @abstractmethod
    def has_read_permission(self) -> bool:
        """Whether the inbox may be read."""
        pass

    @abstractmethod
    def list_messages(self, since: datetime, max_count: int) -> list[RawMessage]:
        """
        Messages received at or after ``since``, newest first.

        Args:
            since: Lower bound on received time
            max_count: Maximum messages returned
        """
        pass

    @abstractmethod
    def subscribe(self, callback: MessageCallback) -> Subscription:
        """Deliver each newly received message to ``callback``."""
        pass
