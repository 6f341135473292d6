"""Request and response bodies for the consult API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from .errors import ErrorKind
from .models import IdName, RequestStatus, TimeBlock


class CreateConsultRequest(BaseModel):
    customer_name: str = Field(min_length=1)
    customer_phone: str = Field(min_length=1)
    customer_email: str = Field(min_length=3)
    query: str = Field(min_length=1)
    category: str = Field(min_length=1)
    preferred_times: list[TimeBlock] = Field(default_factory=list)


class AssignConsultRequestBody(BaseModel):
    selected_time_block: TimeBlock
    comments: str | None = None
    agent: IdName | None = None


class ReassignConsultRequestBody(BaseModel):
    agents: list[IdName] = Field(default_factory=list)
    comments: str | None = None


class CompleteConsultRequestBody(BaseModel):
    comments: str | None = None


class RequestFilter(BaseModel):
    categories: list[str] = Field(default_factory=list)
    statuses: list[RequestStatus] = Field(default_factory=list)


class NoteCreate(BaseModel):
    text: str


class AttachmentCreate(BaseModel):
    filename: str = Field(min_length=1)
    uri: str = Field(min_length=1)
    title: str = ""


class AgentRegistration(BaseModel):
    aad_object_id: str = Field(min_length=1)
    user_principal_name: str = Field(min_length=1)
    name: str | None = None
    teams_id: str | None = None
    service_url: str | None = None
    locale: str | None = None


class AgentUpdate(BaseModel):
    locale: str = Field(min_length=1)


class ChannelMappingCreate(BaseModel):
    channel_id: str = Field(min_length=1)
    category: str = Field(min_length=1)
    bookings_business: IdName | None = None
    bookings_service: IdName | None = None
    supervisors: list[IdName] = Field(default_factory=list)


class ChannelMappingUpdate(ChannelMappingCreate):
    pass


class SupervisorCheck(BaseModel):
    is_supervisor: bool


class OperationFailure(BaseModel):
    """Structured failure returned for every rejected command."""

    kind: ErrorKind
    reason: str
    retryable: bool = False


class Message(BaseModel):
    message: str


__all__ = [
    "AgentRegistration",
    "AgentUpdate",
    "AssignConsultRequestBody",
    "AttachmentCreate",
    "ChannelMappingCreate",
    "ChannelMappingUpdate",
    "CompleteConsultRequestBody",
    "CreateConsultRequest",
    "Message",
    "NoteCreate",
    "OperationFailure",
    "ReassignConsultRequestBody",
    "RequestFilter",
    "SupervisorCheck",
]
