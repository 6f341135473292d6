"""Construction of the service graph from settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .bookings import BookingsClient, HttpBookingsClient
from .consults.agents import AgentDirectory
from .consults.repositories import (
    AgentRepository,
    ChannelMappingRepository,
    ChannelRepository,
    RequestRepository,
)
from .consults.routing import RoutingService
from .consults.service import ConsultService
from .core.settings import Settings
from .notifications import LoggingNotifier, Notifier, WebhookNotifier
from .storage import DocumentClient, InMemoryDocumentClient

logger = logging.getLogger(__name__)


@dataclass
class Services:
    consults: ConsultService
    routing: RoutingService
    agents: AgentDirectory
    bookings: BookingsClient
    notifier: Notifier

    async def aclose(self) -> None:
        close = getattr(self.bookings, "aclose", None)
        if close is not None:
            await close()
        await self.notifier.aclose()


def build_document_client(settings: Settings) -> DocumentClient:
    if settings.document_store_backend == "postgres":
        from .storage.postgres import PostgresDocumentClient

        logger.info("Using postgres document store (schema %s)", settings.document_store_schema)
        return PostgresDocumentClient(
            settings.database_url, schema=settings.document_store_schema
        )
    logger.warning("Using in-memory document store; data is lost on restart")
    return InMemoryDocumentClient()


def build_notifier(settings: Settings) -> Notifier:
    if settings.notify_webhook_url:
        return WebhookNotifier(
            settings.notify_webhook_url, timeout_seconds=settings.notify_timeout_seconds
        )
    return LoggingNotifier()


def build_services(
    settings: Settings,
    *,
    document_client: DocumentClient | None = None,
    bookings: BookingsClient | None = None,
    notifier: Notifier | None = None,
) -> Services:
    client = document_client or build_document_client(settings)
    page_size = settings.document_query_page_size
    requests = RequestRepository(client, page_size=page_size)
    agents = AgentRepository(client, page_size=page_size)
    channels = ChannelRepository(client, page_size=page_size)
    mappings = ChannelMappingRepository(client, page_size=page_size)

    bookings = bookings or HttpBookingsClient(
        settings.bookings_api_url,
        token=settings.bookings_api_token,
        timeout_seconds=settings.bookings_timeout_seconds,
    )
    notifier = notifier or build_notifier(settings)

    return Services(
        consults=ConsultService(
            requests=requests,
            agents=agents,
            channels=channels,
            mappings=mappings,
            bookings=bookings,
            notifier=notifier,
        ),
        routing=RoutingService(mappings=mappings, channels=channels),
        agents=AgentDirectory(agents),
        bookings=bookings,
        notifier=notifier,
    )


__all__ = ["Services", "build_document_client", "build_notifier", "build_services"]
