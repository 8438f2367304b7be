"""
Message source for an HTTP SMS gateway app running on the phone.

Endpoints:
- GET /api/permissions -> {"read_sms": bool}
- GET /api/messages?since=<epoch ms>&limit=<n> -> {"messages": [{address, body, date}]}
"""

import logging
from datetime import datetime
from typing import Any, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..schemas.expense_candidate import RawMessage, utc_now
from .base import (
    GatewayAPIError,
    GatewayConnectionError,
    MessageCallback,
    MessageSource,
    MessageSourceError,
    PollingSubscription,
)

logger = logging.getLogger(__name__)


def _to_epoch_millis(value: datetime) -> int:
    return int(value.timestamp() * 1000)


class GatewayMessageSource(MessageSource):
    """
    Client for the on-device SMS gateway.

    Features:
    - Permission probe
    - Inbox listing with a lower time bound
    - Polling subscription for new messages
    - Automatic retry with backoff
    """

    DEFAULT_TIMEOUT = 15
    POLL_PAGE_SIZE = 100

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: int = DEFAULT_TIMEOUT,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
        poll_interval_seconds: float = 30.0,
    ):
        """
        Initialize gateway client.

        Args:
            base_url: Gateway URL (e.g., "http://192.168.1.50:8080")
            token: Optional bearer token
            timeout: Request timeout in seconds
            max_retries: Maximum retry attempts for transient failures
            backoff_factor: Backoff factor for retries
            poll_interval_seconds: Delay between subscription polls
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.poll_interval_seconds = poll_interval_seconds

        self.session = requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

        retry_strategy = Retry(
            total=max_retries,
            backoff_factor=backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def _request(self, endpoint: str, params: Optional[dict] = None) -> Any:
        """GET an endpoint and return its decoded JSON body."""
        url = f"{self.base_url}{endpoint}"

        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.exceptions.ConnectionError as e:
            raise GatewayConnectionError(f"Failed to connect to SMS gateway at {self.base_url}: {e}")
        except requests.exceptions.Timeout as e:
            raise GatewayConnectionError(f"Request to SMS gateway timed out: {e}")
        except requests.exceptions.RequestException as e:
            raise MessageSourceError(f"Request failed: {e}")

        if not response.ok:
            raise GatewayAPIError(
                status_code=response.status_code,
                message=response.reason,
                response_body=response.text,
            )

        try:
            return response.json()
        except ValueError as e:
            raise MessageSourceError(f"SMS gateway returned invalid JSON: {e}")

    def has_read_permission(self) -> bool:
        """Ask the gateway whether the app may read SMS. False if unreachable."""
        try:
            data = self._request("/api/permissions")
        except MessageSourceError as e:
            logger.warning(f"Could not query SMS permission: {e}")
            return False
        return bool(isinstance(data, dict) and data.get("read_sms"))

    def list_messages(self, since: datetime, max_count: int) -> list[RawMessage]:
        """
        List inbox messages received since a timestamp.

        Raises:
            MessageSourceError: Gateway unreachable or returned an error
        """
        return self._fetch(since, max_count)

    def _fetch(
        self, since: datetime, max_count: int, include_undated: bool = True
    ) -> list[RawMessage]:
        data = self._request(
            "/api/messages",
            params={"since": _to_epoch_millis(since), "limit": max_count},
        )
        rows = data.get("messages", []) if isinstance(data, dict) else data
        if not isinstance(rows, list):
            raise MessageSourceError("SMS gateway response has no message list")

        messages = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            if not include_undated and row.get("date") in (None, ""):
                continue
            try:
                messages.append(RawMessage.from_android(row))
            except (TypeError, ValueError, OverflowError) as e:
                logger.warning(f"Skipping malformed gateway message: {e}")

        logger.debug(f"Gateway returned {len(messages)} message(s)")
        return messages[:max_count]

    def _poll(self, since: datetime) -> list[RawMessage]:
        return [
            m
            for m in self._fetch(since, self.POLL_PAGE_SIZE, include_undated=False)
            if m.received_at >= since
        ]

    def subscribe(self, callback: MessageCallback) -> PollingSubscription:
        return PollingSubscription(
            poll=self._poll,
            callback=callback,
            since=utc_now(),
            interval_seconds=self.poll_interval_seconds,
            name="sms-gateway-poller",
        )
