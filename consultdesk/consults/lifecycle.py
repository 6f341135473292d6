"""Request state machine.

The functions here are pure: each takes a freshly loaded :class:`Request`,
checks the transition guard and returns a new copy carrying both the status
change and the matching :class:`Activity`. The input is never mutated, so a
rejected or later-abandoned transition cannot leak into persisted state.
"""

from __future__ import annotations

from datetime import datetime

from .errors import InvalidStateError
from .models import (
    Activity,
    ActivityType,
    Attachment,
    Note,
    Request,
    RequestStatus,
    TimeBlock,
    utcnow,
)

ALLOWED_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.UNASSIGNED: frozenset({RequestStatus.ASSIGNED}),
    RequestStatus.ASSIGNED: frozenset(
        {RequestStatus.REASSIGN_REQUESTED, RequestStatus.COMPLETED}
    ),
    RequestStatus.REASSIGN_REQUESTED: frozenset(
        {RequestStatus.ASSIGNED, RequestStatus.COMPLETED}
    ),
    RequestStatus.COMPLETED: frozenset(),
}

_ACTIVITY_STATUS = {
    ActivityType.ASSIGNED: RequestStatus.ASSIGNED,
    ActivityType.REASSIGN_REQUESTED: RequestStatus.REASSIGN_REQUESTED,
    ActivityType.COMPLETED: RequestStatus.COMPLETED,
}

ALREADY_ASSIGNED = "The consult is already assigned"
ALREADY_COMPLETED = "The consult is already completed."
CANNOT_REASSIGN = "The consult cannot be reassigned."
CANNOT_COMPLETE = "The consult cannot be completed."


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def implied_status(request: Request) -> RequestStatus:
    """Status implied by the most recent activity, ``Unassigned`` if none."""

    if not request.activities:
        return RequestStatus.UNASSIGNED
    return _ACTIVITY_STATUS[request.activities[-1].type]


def check_assignable(request: Request) -> None:
    if request.status == RequestStatus.ASSIGNED:
        raise InvalidStateError(ALREADY_ASSIGNED)
    if not can_transition(request.status, RequestStatus.ASSIGNED):
        raise InvalidStateError(ALREADY_COMPLETED)


def check_reassignable(request: Request) -> None:
    if not can_transition(request.status, RequestStatus.REASSIGN_REQUESTED):
        raise InvalidStateError(CANNOT_REASSIGN)


def check_completable(request: Request) -> None:
    if not can_transition(request.status, RequestStatus.COMPLETED):
        raise InvalidStateError(CANNOT_COMPLETE)


def _activity(
    kind: ActivityType,
    *,
    actor_id: str,
    actor_name: str | None,
    target_id: str | None,
    target_name: str | None,
    comment: str | None,
    now: datetime | None,
) -> Activity:
    return Activity(
        type=kind,
        created_by_id=actor_id,
        created_by_name=actor_name,
        created_date_time=now or utcnow(),
        activity_for_user_id=target_id,
        activity_for_user_name=target_name,
        comment=comment or None,
    )


def apply_assignment(
    request: Request,
    *,
    actor_id: str,
    actor_name: str | None,
    assignee_id: str,
    assignee_name: str | None,
    time_block: TimeBlock,
    comment: str | None = None,
    now: datetime | None = None,
) -> Request:
    check_assignable(request)
    updated = request.model_copy(deep=True)
    updated.status = RequestStatus.ASSIGNED
    updated.assigned_to_id = assignee_id
    updated.assigned_to_name = assignee_name
    updated.assigned_time_block = time_block.model_copy()
    updated.activities.append(
        _activity(
            ActivityType.ASSIGNED,
            actor_id=actor_id,
            actor_name=actor_name,
            target_id=assignee_id,
            target_name=assignee_name,
            comment=comment,
            now=now,
        )
    )
    return updated


def apply_reassign_request(
    request: Request,
    *,
    actor_id: str,
    actor_name: str | None,
    comment: str | None = None,
    now: datetime | None = None,
) -> Request:
    check_reassignable(request)
    updated = request.model_copy(deep=True)
    updated.status = RequestStatus.REASSIGN_REQUESTED
    # The activity targets the agent giving the consult up.
    updated.activities.append(
        _activity(
            ActivityType.REASSIGN_REQUESTED,
            actor_id=actor_id,
            actor_name=actor_name,
            target_id=request.assigned_to_id,
            target_name=request.assigned_to_name,
            comment=comment,
            now=now,
        )
    )
    return updated


def apply_completion(
    request: Request,
    *,
    actor_id: str,
    actor_name: str | None,
    comment: str | None = None,
    now: datetime | None = None,
) -> Request:
    check_completable(request)
    updated = request.model_copy(deep=True)
    updated.status = RequestStatus.COMPLETED
    updated.activities.append(
        _activity(
            ActivityType.COMPLETED,
            actor_id=actor_id,
            actor_name=actor_name,
            target_id=None,
            target_name=None,
            comment=comment,
            now=now,
        )
    )
    return updated


def append_note(
    request: Request,
    *,
    actor_id: str,
    actor_name: str | None,
    text: str,
    now: datetime | None = None,
) -> tuple[Request, Note]:
    note = Note(
        text=text,
        created_by_id=actor_id,
        created_by_name=actor_name,
        created_date_time=now or utcnow(),
    )
    updated = request.model_copy(deep=True)
    updated.notes.append(note)
    return updated, note


def append_attachment(
    request: Request,
    *,
    actor_id: str,
    actor_name: str | None,
    filename: str,
    uri: str,
    title: str,
    now: datetime | None = None,
) -> tuple[Request, Attachment]:
    attachment = Attachment(
        filename=filename,
        uri=uri,
        title=title,
        created_by_id=actor_id,
        created_by_name=actor_name,
        created_date_time=now or utcnow(),
    )
    updated = request.model_copy(deep=True)
    updated.attachments.append(attachment)
    return updated, attachment


__all__ = [
    "ALLOWED_TRANSITIONS",
    "ALREADY_ASSIGNED",
    "ALREADY_COMPLETED",
    "CANNOT_COMPLETE",
    "CANNOT_REASSIGN",
    "append_attachment",
    "append_note",
    "apply_assignment",
    "apply_completion",
    "apply_reassign_request",
    "can_transition",
    "check_assignable",
    "check_completable",
    "check_reassignable",
    "implied_status",
]
