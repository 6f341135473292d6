"""Persisted entities: consult requests, agents and routing configuration."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class RequestStatus(str, Enum):
    UNASSIGNED = "Unassigned"
    ASSIGNED = "Assigned"
    REASSIGN_REQUESTED = "ReassignRequested"
    COMPLETED = "Completed"


class ActivityType(str, Enum):
    ASSIGNED = "Assigned"
    REASSIGN_REQUESTED = "ReassignRequested"
    COMPLETED = "Completed"


class BaseDocument(BaseModel):
    """Fields shared by every stored document."""

    id: str = Field(default_factory=new_id)
    created_date_time: datetime = Field(default_factory=utcnow)
    etag: str | None = None


class CreatedByUserDocument(BaseDocument):
    created_by_id: str
    created_by_name: str | None = None


class IdName(BaseModel):
    id: str
    display_name: str


class TimeBlock(BaseModel):
    start_date_time: datetime
    end_date_time: datetime

    @model_validator(mode="after")
    def _check_order(self) -> "TimeBlock":
        if self.end_date_time <= self.start_date_time:
            raise ValueError("end_date_time must be after start_date_time")
        return self


class Activity(CreatedByUserDocument):
    """Immutable audit entry appended on every lifecycle transition."""

    type: ActivityType
    activity_for_user_id: str | None = None
    activity_for_user_name: str | None = None
    comment: str | None = None


class Note(CreatedByUserDocument):
    text: str


class Attachment(CreatedByUserDocument):
    filename: str
    uri: str
    title: str


class Request(BaseDocument):
    """A customer's consult request and its lifecycle history."""

    customer_name: str
    customer_phone: str
    customer_email: str
    query: str
    preferred_times: list[TimeBlock] = Field(default_factory=list)
    friendly_id: str | None = None
    category: str
    status: RequestStatus = RequestStatus.UNASSIGNED
    assigned_to_id: str | None = None
    assigned_to_name: str | None = None
    assigned_time_block: TimeBlock | None = None
    bookings_business_id: str | None = None
    bookings_service_id: str | None = None
    bookings_appointment_id: str | None = None
    join_uri: str | None = None
    activities: list[Activity] = Field(default_factory=list)
    activity_id: str | None = None
    conversation_id: str | None = None
    notes: list[Note] = Field(default_factory=list)
    attachments: list[Attachment] = Field(default_factory=list)


class Agent(BaseDocument):
    """Agent identity keyed by its directory object id."""

    aad_object_id: str
    user_principal_name: str
    name: str | None = None
    teams_id: str | None = None
    service_url: str | None = None
    bookings_staff_member_id: str | None = None
    locale: str | None = None


class Channel(BaseDocument):
    """Messaging-channel coordinates used to address notifications."""

    tenant_id: str
    service_url: str
    team_id: str
    team_aad_object_id: str
    team_name: str
    channel_id: str
    channel_name: str


class ChannelMapping(BaseDocument):
    """Routes a category to a channel and a booking business/service."""

    channel_id: str
    category: str
    bookings_business: IdName | None = None
    bookings_service: IdName | None = None
    supervisors: list[IdName] = Field(default_factory=list)


__all__ = [
    "Activity",
    "ActivityType",
    "Agent",
    "Attachment",
    "BaseDocument",
    "Channel",
    "ChannelMapping",
    "CreatedByUserDocument",
    "IdName",
    "Note",
    "Request",
    "RequestStatus",
    "TimeBlock",
    "new_id",
    "utcnow",
]
