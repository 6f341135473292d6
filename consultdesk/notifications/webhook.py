"""Notifier that posts events to an HTTP webhook."""

from __future__ import annotations

import logging

import httpx

from .base import MessageHandle, NotificationError, NotificationEvent, Notifier


class WebhookNotifier(Notifier):
    """POST each event as JSON; the receiver may answer with a message handle.

    A response body of ``{"conversation_id": ..., "activity_id": ...}`` is
    read back as the handle of a newly posted message. Any other 2xx body
    means the event was accepted without a new message.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.url = url
        self.logger = logger or logging.getLogger(__name__)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds), transport=transport
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def notify(self, event: NotificationEvent) -> MessageHandle | None:
        try:
            response = await self._client.post(self.url, json=event.to_payload())
        except httpx.HTTPError as exc:
            raise NotificationError(f"Webhook delivery failed: {exc}") from exc
        if response.is_error:
            raise NotificationError(
                f"Webhook returned {response.status_code} for {event.operation.value}"
            )
        if not response.content:
            return None
        try:
            body = response.json()
        except ValueError:
            self.logger.debug("Webhook answered with a non-JSON body")
            return None
        if isinstance(body, dict) and body.get("conversation_id"):
            return MessageHandle.model_validate(body)
        return None


__all__ = ["WebhookNotifier"]
