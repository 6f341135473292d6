"""Routing administration API: categories, channels and channel mappings."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status

from ..consults import schemas
from ..consults.models import Channel, ChannelMapping
from ..core.auth import get_current_actor
from ..core.identity import ActorIdentity
from ..services import Services
from .common import get_services, translate_errors

router = APIRouter(prefix="/api/routing", tags=["routing"])


@router.get("/categories", response_model=list[str])
async def list_categories(
    actor: ActorIdentity = Depends(get_current_actor),
    services: Services = Depends(get_services),
) -> list[str]:
    return await services.routing.list_categories()


@router.get("/channels", response_model=list[Channel])
async def list_channels(
    actor: ActorIdentity = Depends(get_current_actor),
    services: Services = Depends(get_services),
) -> list[Channel]:
    return await services.routing.list_channels()


@router.put("/channels", response_model=Channel)
async def register_channel(
    payload: Channel,
    actor: ActorIdentity = Depends(get_current_actor),
    services: Services = Depends(get_services),
) -> Channel:
    return await services.routing.register_channel(payload)


@router.get("/mappings", response_model=list[ChannelMapping])
async def list_mappings(
    team_id: str | None = Query(default=None),
    actor: ActorIdentity = Depends(get_current_actor),
    services: Services = Depends(get_services),
) -> list[ChannelMapping]:
    if team_id:
        return await services.routing.mappings_for_team(team_id)
    return await services.routing.list_mappings()


@router.post(
    "/mappings", response_model=ChannelMapping, status_code=status.HTTP_201_CREATED
)
async def create_mapping(
    payload: schemas.ChannelMappingCreate,
    actor: ActorIdentity = Depends(get_current_actor),
    services: Services = Depends(get_services),
) -> ChannelMapping:
    with translate_errors():
        return await services.routing.create_mapping(payload)


@router.put("/mappings/{mapping_id}", response_model=ChannelMapping)
async def update_mapping(
    mapping_id: str,
    payload: schemas.ChannelMappingUpdate,
    actor: ActorIdentity = Depends(get_current_actor),
    services: Services = Depends(get_services),
) -> ChannelMapping:
    with translate_errors():
        return await services.routing.update_mapping(mapping_id, payload)


@router.delete("/mappings/{mapping_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_mapping(
    mapping_id: str,
    actor: ActorIdentity = Depends(get_current_actor),
    services: Services = Depends(get_services),
) -> Response:
    await services.routing.delete_mapping(mapping_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
