"""
Notifications for newly detected expense candidates.
"""

from .bus import (
    CANDIDATE_DETECTED,
    InMemoryNotificationBus,
    NotificationBus,
    NullNotificationBus,
    WebhookNotifier,
)

__all__ = [
    "CANDIDATE_DETECTED",
    "NotificationBus",
    "InMemoryNotificationBus",
    "NullNotificationBus",
    "WebhookNotifier",
]
