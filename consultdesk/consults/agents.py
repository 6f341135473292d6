"""Directory of agents known to the consult service."""

from __future__ import annotations

import logging

from ..core.identity import ActorIdentity
from ..storage import ConflictError as StoreConflictError
from .errors import ConflictError, NotFoundError, UnauthorizedError
from .models import Agent
from .repositories import AgentRepository
from .schemas import AgentRegistration

logger = logging.getLogger(__name__)

AGENT_NOT_FOUND = "Agent not found"
CANNOT_UPDATE_AGENT = "Insufficient permissions to update agent"


class AgentDirectory:
    def __init__(self, agents: AgentRepository) -> None:
        self.agents = agents

    async def register_agent(self, payload: AgentRegistration) -> Agent:
        """Create or refresh an agent seen on the chat platform.

        The cached staff-member id survives re-registration, and the stored
        locale is only replaced when a new one is supplied.
        """

        existing = await self.agents.get_by_object_id(payload.aad_object_id)
        if existing is None:
            agent = Agent(**payload.model_dump())
            logger.info("Registered agent %s", agent.aad_object_id)
        else:
            changes = payload.model_dump(exclude_none=True)
            agent = existing.model_copy(update=changes)
        return await self.agents.upsert(agent)

    async def get_agent(self, object_id: str) -> Agent:
        agent = await self.agents.get_by_object_id(object_id)
        if agent is None:
            raise NotFoundError(AGENT_NOT_FOUND)
        return agent

    async def update_locale(
        self, object_id: str, actor: ActorIdentity, locale: str
    ) -> Agent:
        if actor.object_id != object_id:
            logger.warning("%s tried to update agent %s", actor.object_id, object_id)
            raise UnauthorizedError(CANNOT_UPDATE_AGENT, authenticated=True)
        agent = await self.get_agent(object_id)
        updated = agent.model_copy(update={"locale": locale})
        try:
            return await self.agents.upsert(updated, if_match=agent.etag)
        except StoreConflictError as exc:
            raise ConflictError("The agent was changed by someone else") from exc


__all__ = ["AgentDirectory"]
