"""Notification boundary between the lifecycle core and the chat platform."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from ..consults.models import Channel, IdName, Request


class NotificationOperation(str, Enum):
    CREATED = "created"
    ASSIGNED = "assigned"
    REASSIGN_REQUESTED = "reassign-requested"
    COMPLETED = "completed"


class NotificationError(RuntimeError):
    """Delivery of a notification failed."""


class MessageHandle(BaseModel):
    """Identifies a sent message so later events can update it in place."""

    conversation_id: str
    activity_id: str | None = None


class NotificationEvent(BaseModel):
    operation: NotificationOperation
    request: Request
    channel: Channel | None = None
    actor: IdName | None = None
    assignee: IdName | None = None
    comment: str | None = None
    mentions: list[IdName] = Field(default_factory=list)
    locale: str | None = None

    @property
    def handle(self) -> MessageHandle | None:
        if not self.request.conversation_id:
            return None
        return MessageHandle(
            conversation_id=self.request.conversation_id,
            activity_id=self.request.activity_id,
        )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class Notifier(ABC):
    """Delivers lifecycle events to whatever renders them."""

    @abstractmethod
    async def notify(self, event: NotificationEvent) -> MessageHandle | None:
        """Send or update the message for ``event``.

        Returns the handle of a newly posted message, or ``None`` when an
        existing message was updated or nothing was posted.
        """

    async def aclose(self) -> None:
        return None


class LoggingNotifier(Notifier):
    """Writes events to the log instead of delivering them."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger(__name__)

    async def notify(self, event: NotificationEvent) -> MessageHandle | None:
        self.logger.info(
            "consult %s: %s (channel=%s, locale=%s)",
            event.request.id,
            event.operation.value,
            event.channel.channel_id if event.channel else None,
            event.locale,
        )
        return None


__all__ = [
    "LoggingNotifier",
    "MessageHandle",
    "NotificationError",
    "NotificationEvent",
    "NotificationOperation",
    "Notifier",
]
