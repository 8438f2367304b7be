"""
SMS message sources.

Provides:
- MessageSource interface and caller-owned Subscription handles
- FixtureMessageSource: in-memory messages (samples, tests)
- JsonExportMessageSource: exported inbox file
- GatewayMessageSource: HTTP SMS gateway on the phone
"""

from .base import (
    GatewayAPIError,
    GatewayConnectionError,
    MessageSource,
    MessageSourceError,
    PollingSubscription,
    Subscription,
)
from .fixture import SAMPLE_MESSAGES, FixtureMessageSource
from .gateway import GatewayMessageSource
from .json_export import JsonExportMessageSource

__all__ = [
    "MessageSource",
    "Subscription",
    "PollingSubscription",
    "MessageSourceError",
    "GatewayAPIError",
    "GatewayConnectionError",
    "FixtureMessageSource",
    "JsonExportMessageSource",
    "GatewayMessageSource",
    "SAMPLE_MESSAGES",
]
