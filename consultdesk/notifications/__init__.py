from .base import (
    LoggingNotifier,
    MessageHandle,
    NotificationError,
    NotificationEvent,
    NotificationOperation,
    Notifier,
)
from .webhook import WebhookNotifier

__all__ = [
    "LoggingNotifier",
    "MessageHandle",
    "NotificationError",
    "NotificationEvent",
    "NotificationOperation",
    "Notifier",
    "WebhookNotifier",
]
