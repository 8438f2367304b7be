"""
Notification bus for detected candidates.

Delivery is fire-and-forget: emit never raises and returns nothing the
pipeline depends on.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from collections.abc import Callable
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..schemas.expense_candidate import ExpenseCandidate

logger = logging.getLogger(__name__)

CANDIDATE_DETECTED = "candidateDetected"

NotificationHandler = Callable[[ExpenseCandidate], None]


class NotificationBus(ABC):
    """Outbound channel for pipeline events."""

    @abstractmethod
    def emit(self, event: str, payload: ExpenseCandidate) -> None:
        """Publish an event. Must not raise."""
        pass


class InMemoryNotificationBus(NotificationBus):
    """
    Dispatches events to handlers registered in-process.

    A failing handler is logged and does not stop the others. The most
    recent ``history_size`` events are kept in ``emitted``.
    """

    DEFAULT_HISTORY_SIZE = 100

    def __init__(self, history_size: int = DEFAULT_HISTORY_SIZE):
        self._handlers: dict[str, list[NotificationHandler]] = defaultdict(list)
        self._lock = threading.Lock()
        self.emitted: deque[tuple[str, ExpenseCandidate]] = deque(maxlen=history_size)

    def subscribe(self, event: str, handler: NotificationHandler) -> Callable[[], None]:
        """Register a handler. Returns a function that unregisters it."""
        with self._lock:
            self._handlers[event].append(handler)

        def _unsubscribe() -> None:
            with self._lock:
                if handler in self._handlers[event]:
                    self._handlers[event].remove(handler)

        return _unsubscribe

    def emit(self, event: str, payload: ExpenseCandidate) -> None:
        with self._lock:
            self.emitted.append((event, payload))
            handlers = list(self._handlers.get(event, []))

        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                logger.exception(f"Notification handler failed for {event}")


class WebhookNotifier(NotificationBus):
    """
    Posts events as JSON to a webhook URL.

    Body: {"event": <name>, "candidate": <ExpenseCandidate.to_dict()>}
    """

    DEFAULT_TIMEOUT = 10

    def __init__(
        self,
        url: str,
        timeout: int = DEFAULT_TIMEOUT,
        max_retries: int = 2,
        backoff_factor: float = 0.5,
        headers: Optional[dict[str, str]] = None,
    ):
        self.url = url
        self.timeout = timeout

        self.session = requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        if headers:
            self.session.headers.update(headers)

        retry_strategy = Retry(
            total=max_retries,
            backoff_factor=backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["POST"],
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def emit(self, event: str, payload: ExpenseCandidate) -> None:
        body = {"event": event, "candidate": payload.to_dict()}
        try:
            response = self.session.post(self.url, json=body, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.warning(f"Webhook delivery of {event} failed: {e}")
            return

        if not response.ok:
            logger.warning(
                f"Webhook rejected {event} for {payload.id}: "
                f"{response.status_code} {response.reason}"
            )
            return

        logger.debug(f"Webhook delivered {event} for {payload.id}")


class NullNotificationBus(NotificationBus):
    """Drops every event."""

    def emit(self, event: str, payload: ExpenseCandidate) -> None:
        logger.debug(f"Dropped {event} for {payload.id}: no notifier configured")
