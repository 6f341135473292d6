"""Consult request API routes."""

from fastapi import APIRouter, Depends, Query, Request, status

from ..consults import schemas
from ..consults.models import Attachment, Channel, Note, RequestStatus
from ..consults.models import Request as ConsultRequest
from ..core.auth import get_current_actor, get_optional_actor
from ..core.identity import ActorIdentity
from ..core.settings import get_settings
from ..services import Services
from .common import get_services, limiter, translate_errors

router = APIRouter(prefix="/api/requests", tags=["requests"])


def _create_limit() -> str:
    return get_settings().create_request_rate_limit


@router.post("", response_model=ConsultRequest, status_code=status.HTTP_201_CREATED)
@limiter.limit(_create_limit)
async def create_request(
    request: Request,
    payload: schemas.CreateConsultRequest,
    services: Services = Depends(get_services),
) -> ConsultRequest:
    """Submit a new consult request. No sign-in is required."""

    with translate_errors():
        return await services.consults.create_request(payload)


@router.get("", response_model=list[ConsultRequest])
async def list_requests(
    categories: list[str] = Query(default=[]),
    statuses: list[RequestStatus] = Query(default=[]),
    actor: ActorIdentity = Depends(get_current_actor),
    services: Services = Depends(get_services),
) -> list[ConsultRequest]:
    with translate_errors():
        return await services.consults.list_filtered(categories, statuses)


@router.get("/assigned", response_model=list[ConsultRequest])
async def list_assigned(
    actor: ActorIdentity | None = Depends(get_optional_actor),
    services: Services = Depends(get_services),
) -> list[ConsultRequest]:
    with translate_errors():
        return await services.consults.list_assigned_to(actor)


@router.get("/by-conversation/{conversation_id}", response_model=ConsultRequest)
async def get_by_conversation(
    conversation_id: str,
    actor: ActorIdentity = Depends(get_current_actor),
    services: Services = Depends(get_services),
) -> ConsultRequest:
    with translate_errors():
        return await services.consults.get_by_conversation(conversation_id)


@router.get("/{request_id}", response_model=ConsultRequest)
async def get_request(
    request_id: str,
    actor: ActorIdentity = Depends(get_current_actor),
    services: Services = Depends(get_services),
) -> ConsultRequest:
    with translate_errors():
        return await services.consults.get_request(request_id)


@router.get("/{request_id}/channel", response_model=Channel)
async def get_request_channel(
    request_id: str,
    actor: ActorIdentity = Depends(get_current_actor),
    services: Services = Depends(get_services),
) -> Channel:
    with translate_errors():
        return await services.consults.get_request_channel(request_id)


@router.get("/{request_id}/supervisor", response_model=schemas.SupervisorCheck)
async def check_supervisor(
    request_id: str,
    actor: ActorIdentity | None = Depends(get_optional_actor),
    services: Services = Depends(get_services),
) -> schemas.SupervisorCheck:
    with translate_errors():
        allowed = await services.consults.is_supervisor(request_id, actor)
    return schemas.SupervisorCheck(is_supervisor=allowed)


@router.post("/{request_id}/assign", response_model=ConsultRequest)
async def assign_request(
    request_id: str,
    payload: schemas.AssignConsultRequestBody,
    actor: ActorIdentity | None = Depends(get_optional_actor),
    services: Services = Depends(get_services),
) -> ConsultRequest:
    with translate_errors():
        return await services.consults.assign(
            request_id,
            actor,
            time_block=payload.selected_time_block,
            comment=payload.comments,
            agent=payload.agent,
        )


@router.post("/{request_id}/reassign", response_model=ConsultRequest)
async def request_reassignment(
    request_id: str,
    payload: schemas.ReassignConsultRequestBody,
    actor: ActorIdentity | None = Depends(get_optional_actor),
    services: Services = Depends(get_services),
) -> ConsultRequest:
    with translate_errors():
        return await services.consults.request_reassignment(
            request_id, actor, agents=payload.agents, comment=payload.comments
        )


@router.post("/{request_id}/complete", response_model=ConsultRequest)
async def complete_request(
    request_id: str,
    payload: schemas.CompleteConsultRequestBody | None = None,
    actor: ActorIdentity | None = Depends(get_optional_actor),
    services: Services = Depends(get_services),
) -> ConsultRequest:
    with translate_errors():
        return await services.consults.complete(
            request_id, actor, comment=payload.comments if payload else None
        )


@router.post(
    "/{request_id}/notes", response_model=Note, status_code=status.HTTP_201_CREATED
)
async def add_note(
    request_id: str,
    payload: schemas.NoteCreate,
    actor: ActorIdentity | None = Depends(get_optional_actor),
    services: Services = Depends(get_services),
) -> Note:
    with translate_errors():
        return await services.consults.add_note(request_id, actor, payload.text)


@router.post(
    "/{request_id}/attachments",
    response_model=Attachment,
    status_code=status.HTTP_201_CREATED,
)
async def add_attachment(
    request_id: str,
    payload: schemas.AttachmentCreate,
    actor: ActorIdentity | None = Depends(get_optional_actor),
    services: Services = Depends(get_services),
) -> Attachment:
    with translate_errors():
        return await services.consults.add_attachment(
            request_id,
            actor,
            filename=payload.filename,
            uri=payload.uri,
            title=payload.title,
        )
