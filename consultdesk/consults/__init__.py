"""Consult request domain: entities, lifecycle and services."""

from .errors import (
    ConflictError,
    ConsultError,
    ErrorKind,
    ExternalServiceFailure,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
)
from .models import (
    Activity,
    ActivityType,
    Agent,
    Attachment,
    Channel,
    ChannelMapping,
    IdName,
    Note,
    Request,
    RequestStatus,
    TimeBlock,
)

__all__ = [
    "Activity",
    "ActivityType",
    "Agent",
    "Attachment",
    "Channel",
    "ChannelMapping",
    "ConflictError",
    "ConsultError",
    "ErrorKind",
    "ExternalServiceFailure",
    "IdName",
    "InvalidInputError",
    "InvalidStateError",
    "Note",
    "NotFoundError",
    "Request",
    "RequestStatus",
    "TimeBlock",
    "UnauthorizedError",
]
