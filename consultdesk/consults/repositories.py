"""Entity repositories and their container layout."""

from __future__ import annotations

from collections.abc import Iterable

from ..storage import DocumentRepository, ItemKey
from .models import Agent, Channel, ChannelMapping, Request, RequestStatus


class ContainerNames:
    AGENTS = "agents"
    AGENT_PARTITION = "/aad_object_id"
    REQUESTS = "consult_requests"
    REQUEST_PARTITION = "/id"
    CHANNEL_MAPPINGS = "channel_mappings"
    CHANNEL_MAPPING_PARTITION = "/id"
    CHANNELS = "channels"
    CHANNEL_PARTITION = "/channel_id"


class RequestRepository(DocumentRepository[Request]):
    model = Request
    container_name = ContainerNames.REQUESTS
    partition_key_path = ContainerNames.REQUEST_PARTITION

    def resolve_partition_key(self, entity: Request) -> str:
        return entity.id

    async def get_by_id(self, request_id: str) -> Request | None:
        return await self.get(ItemKey(request_id, request_id))

    async def get_by_assigned_to_id(self, assigned_to_id: str) -> list[Request]:
        return await self.query({"assigned_to_id": assigned_to_id})

    async def get_by_conversation_id(self, conversation_id: str) -> Request | None:
        matches = await self.query(
            predicate=lambda r: bool(r.join_uri) and conversation_id in r.join_uri
        )
        return matches[0] if matches else None

    async def get_filtered(
        self,
        categories: Iterable[str] | None = None,
        statuses: Iterable[RequestStatus] | None = None,
    ) -> list[Request]:
        where: dict[str, object] = {}
        categories = list(categories or [])
        statuses = list(statuses or [])
        if categories:
            where["category"] = categories
        if statuses:
            where["status"] = statuses
        return await self.query(where)


class AgentRepository(DocumentRepository[Agent]):
    model = Agent
    container_name = ContainerNames.AGENTS
    partition_key_path = ContainerNames.AGENT_PARTITION

    def resolve_partition_key(self, entity: Agent) -> str:
        return entity.aad_object_id

    async def get_by_object_id(self, object_id: str) -> Agent | None:
        matches = await self.query({"aad_object_id": object_id})
        return matches[0] if matches else None


class ChannelRepository(DocumentRepository[Channel]):
    model = Channel
    container_name = ContainerNames.CHANNELS
    partition_key_path = ContainerNames.CHANNEL_PARTITION

    def resolve_partition_key(self, entity: Channel) -> str:
        return entity.channel_id

    async def get_by_channel_id(self, channel_id: str) -> Channel | None:
        matches = await self.query({"channel_id": channel_id})
        return matches[0] if matches else None

    async def get_by_team_id(self, team_id: str) -> list[Channel]:
        return await self.query({"team_id": team_id})

    async def get_all(self) -> list[Channel]:
        return await self.query()


class ChannelMappingRepository(DocumentRepository[ChannelMapping]):
    model = ChannelMapping
    container_name = ContainerNames.CHANNEL_MAPPINGS
    partition_key_path = ContainerNames.CHANNEL_MAPPING_PARTITION

    def resolve_partition_key(self, entity: ChannelMapping) -> str:
        return entity.id

    async def get_by_id(self, mapping_id: str) -> ChannelMapping | None:
        return await self.get(ItemKey(mapping_id, mapping_id))

    async def get_by_category(self, category: str) -> ChannelMapping | None:
        matches = await self.query({"category": category})
        return matches[0] if matches else None

    async def get_by_channel_ids(self, channel_ids: Iterable[str]) -> list[ChannelMapping]:
        channel_ids = list(channel_ids)
        if not channel_ids:
            return []
        return await self.query({"channel_id": channel_ids})

    async def get_all(self) -> list[ChannelMapping]:
        return await self.query()


__all__ = [
    "AgentRepository",
    "ChannelMappingRepository",
    "ChannelRepository",
    "ContainerNames",
    "RequestRepository",
]
