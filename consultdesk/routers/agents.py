"""Agent directory API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ..consults import schemas
from ..consults.models import Agent
from ..core.auth import get_current_actor
from ..core.identity import ActorIdentity
from ..services import Services
from .common import get_services, translate_errors

router = APIRouter(prefix="/api/agents", tags=["agents"])


@router.put("", response_model=Agent)
async def register_agent(
    payload: schemas.AgentRegistration,
    actor: ActorIdentity = Depends(get_current_actor),
    services: Services = Depends(get_services),
) -> Agent:
    with translate_errors():
        return await services.agents.register_agent(payload)


@router.get("/me", response_model=Agent)
async def get_me(
    actor: ActorIdentity = Depends(get_current_actor),
    services: Services = Depends(get_services),
) -> Agent:
    with translate_errors():
        return await services.agents.get_agent(actor.object_id)


@router.get("/{object_id}", response_model=Agent)
async def get_agent(
    object_id: str,
    actor: ActorIdentity = Depends(get_current_actor),
    services: Services = Depends(get_services),
) -> Agent:
    with translate_errors():
        return await services.agents.get_agent(object_id)


@router.patch("/{object_id}", response_model=Agent)
async def update_agent(
    object_id: str,
    payload: schemas.AgentUpdate,
    actor: ActorIdentity = Depends(get_current_actor),
    services: Services = Depends(get_services),
) -> Agent:
    with translate_errors():
        return await services.agents.update_locale(object_id, actor, payload.locale)
