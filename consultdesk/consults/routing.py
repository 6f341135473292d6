"""Administration of categories, channels and channel mappings."""

from __future__ import annotations

import logging

from ..storage import ConflictError as StoreConflictError
from ..storage import ItemKey
from .errors import ConflictError, InvalidInputError, NotFoundError
from .models import Channel, ChannelMapping
from .repositories import ChannelMappingRepository, ChannelRepository
from .schemas import ChannelMappingCreate, ChannelMappingUpdate

logger = logging.getLogger(__name__)

CATEGORY_IN_USE = "Category already in use"
MAPPING_NOT_FOUND = "Channel mapping not found"
CHANNEL_NOT_REGISTERED = "Channel is not registered"


class RoutingService:
    def __init__(
        self, *, mappings: ChannelMappingRepository, channels: ChannelRepository
    ) -> None:
        self.mappings = mappings
        self.channels = channels

    async def list_categories(self) -> list[str]:
        mappings = await self.mappings.get_all()
        return sorted({m.category for m in mappings})

    async def list_channels(self) -> list[Channel]:
        return await self.channels.get_all()

    async def list_mappings(self) -> list[ChannelMapping]:
        return await self.mappings.get_all()

    async def mappings_for_team(self, team_id: str) -> list[ChannelMapping]:
        channels = await self.channels.get_by_team_id(team_id)
        return await self.mappings.get_by_channel_ids(c.channel_id for c in channels)

    async def _require_channel(self, channel_id: str) -> None:
        if await self.channels.get_by_channel_id(channel_id) is None:
            raise InvalidInputError(CHANNEL_NOT_REGISTERED)

    async def create_mapping(self, payload: ChannelMappingCreate) -> ChannelMapping:
        if await self.mappings.get_by_category(payload.category) is not None:
            logger.warning("Rejected mapping for category %s: already in use", payload.category)
            raise ConflictError(CATEGORY_IN_USE)
        await self._require_channel(payload.channel_id)
        mapping = ChannelMapping(**payload.model_dump())
        try:
            await self.mappings.add(mapping)
        except StoreConflictError as exc:
            raise ConflictError(CATEGORY_IN_USE) from exc
        logger.info("Category %s routed to channel %s", mapping.category, mapping.channel_id)
        return mapping

    async def update_mapping(
        self, mapping_id: str, payload: ChannelMappingUpdate
    ) -> ChannelMapping:
        existing = await self.mappings.get_by_id(mapping_id)
        if existing is None:
            raise NotFoundError(MAPPING_NOT_FOUND)
        if payload.category != existing.category:
            other = await self.mappings.get_by_category(payload.category)
            if other is not None and other.id != mapping_id:
                raise ConflictError(CATEGORY_IN_USE)
        if payload.channel_id != existing.channel_id:
            await self._require_channel(payload.channel_id)

        updated = ChannelMapping.model_validate(
            {**existing.model_dump(exclude={"etag"}), **payload.model_dump()}
        )
        try:
            return await self.mappings.upsert(updated, if_match=existing.etag)
        except StoreConflictError as exc:
            raise ConflictError("The channel mapping was changed by someone else") from exc

    async def delete_mapping(self, mapping_id: str) -> None:
        await self.mappings.delete(ItemKey(mapping_id, mapping_id))

    async def register_channel(self, channel: Channel) -> Channel:
        """Create or refresh a channel, keeping the identity of an existing record."""

        existing = await self.channels.get_by_channel_id(channel.channel_id)
        if existing is not None:
            channel = channel.model_copy(
                update={"id": existing.id, "created_date_time": existing.created_date_time}
            )
        return await self.channels.upsert(channel)


__all__ = ["RoutingService"]
