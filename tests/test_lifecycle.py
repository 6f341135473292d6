import pytest

from consultdesk.consults import lifecycle
from consultdesk.consults.errors import InvalidStateError
from consultdesk.consults.models import ActivityType, Request, RequestStatus

from conftest import time_block

ALL_STATUSES = list(RequestStatus)
LEGAL_EDGES = {
    (RequestStatus.UNASSIGNED, RequestStatus.ASSIGNED),
    (RequestStatus.ASSIGNED, RequestStatus.REASSIGN_REQUESTED),
    (RequestStatus.ASSIGNED, RequestStatus.COMPLETED),
    (RequestStatus.REASSIGN_REQUESTED, RequestStatus.ASSIGNED),
    (RequestStatus.REASSIGN_REQUESTED, RequestStatus.COMPLETED),
}


def _request(status: RequestStatus = RequestStatus.UNASSIGNED) -> Request:
    request = Request(
        customer_name="Casey",
        customer_phone="555",
        customer_email="casey@example.com",
        query="Need help",
        category="Tax",
        status=status,
    )
    if status != RequestStatus.UNASSIGNED:
        request.assigned_to_id = "agent-1"
        request.assigned_to_name = "Agent One"
    return request


def _assign(request: Request) -> Request:
    return lifecycle.apply_assignment(
        request,
        actor_id="agent-1",
        actor_name="Agent One",
        assignee_id="agent-1",
        assignee_name="Agent One",
        time_block=time_block(),
    )


def _reassign(request: Request) -> Request:
    return lifecycle.apply_reassign_request(
        request, actor_id="agent-1", actor_name="Agent One", comment="Out sick"
    )


def _complete(request: Request) -> Request:
    return lifecycle.apply_completion(request, actor_id="agent-1", actor_name="Agent One")


TRANSITIONS = {
    RequestStatus.ASSIGNED: _assign,
    RequestStatus.REASSIGN_REQUESTED: _reassign,
    RequestStatus.COMPLETED: _complete,
}


@pytest.mark.parametrize("current", ALL_STATUSES)
@pytest.mark.parametrize("target", ALL_STATUSES)
def test_transition_table(current, target):
    assert lifecycle.can_transition(current, target) == ((current, target) in LEGAL_EDGES)


@pytest.mark.parametrize("current", ALL_STATUSES)
@pytest.mark.parametrize("target", list(TRANSITIONS))
def test_apply_follows_only_legal_edges(current, target):
    request = _request(current)
    snapshot = request.model_copy(deep=True)

    if (current, target) in LEGAL_EDGES:
        updated = TRANSITIONS[target](request)
        assert updated.status == target
        assert len(updated.activities) == len(request.activities) + 1
        assert updated.activities[-1].type.value == target.value
        assert lifecycle.implied_status(updated) == updated.status
    else:
        with pytest.raises(InvalidStateError):
            TRANSITIONS[target](request)

    assert request == snapshot


def test_assign_guard_reasons():
    with pytest.raises(InvalidStateError) as assigned:
        _assign(_request(RequestStatus.ASSIGNED))
    with pytest.raises(InvalidStateError) as completed:
        _assign(_request(RequestStatus.COMPLETED))

    assert assigned.value.reason == lifecycle.ALREADY_ASSIGNED
    assert completed.value.reason == lifecycle.ALREADY_COMPLETED


def test_reassign_and_complete_guard_reasons():
    with pytest.raises(InvalidStateError) as reassign:
        _reassign(_request(RequestStatus.UNASSIGNED))
    with pytest.raises(InvalidStateError) as complete:
        _complete(_request(RequestStatus.UNASSIGNED))

    assert reassign.value.reason == lifecycle.CANNOT_REASSIGN
    assert complete.value.reason == lifecycle.CANNOT_COMPLETE


def test_assignment_records_assignee_and_time_block():
    block = time_block(72)
    updated = lifecycle.apply_assignment(
        _request(),
        actor_id="sup-1",
        actor_name="Sue",
        assignee_id="agent-2",
        assignee_name="Agent Two",
        time_block=block,
        comment="Please take this one",
    )

    activity = updated.activities[-1]
    assert updated.assigned_to_id == "agent-2"
    assert updated.assigned_time_block == block
    assert activity.type == ActivityType.ASSIGNED
    assert activity.created_by_id == "sup-1"
    assert activity.activity_for_user_id == "agent-2"
    assert activity.comment == "Please take this one"


def test_reassign_activity_targets_previous_assignee():
    updated = _reassign(_assign(_request()))

    activity = updated.activities[-1]
    assert activity.type == ActivityType.REASSIGN_REQUESTED
    assert activity.activity_for_user_id == "agent-1"
    assert activity.comment == "Out sick"
    assert updated.assigned_to_id == "agent-1"


def test_full_lifecycle_keeps_activity_order():
    request = _complete(_reassign(_assign(_request())))

    assert [a.type for a in request.activities] == [
        ActivityType.ASSIGNED,
        ActivityType.REASSIGN_REQUESTED,
        ActivityType.COMPLETED,
    ]
    assert lifecycle.implied_status(request) == RequestStatus.COMPLETED


@pytest.mark.parametrize("status", ALL_STATUSES)
def test_notes_and_attachments_do_not_change_status(status):
    request = _request(status)

    with_note, note = lifecycle.append_note(
        request, actor_id="agent-1", actor_name="Agent One", text="Called back"
    )
    with_file, attachment = lifecycle.append_attachment(
        with_note,
        actor_id="agent-1",
        actor_name="Agent One",
        filename="w2.pdf",
        uri="https://files.example/w2.pdf",
        title="W-2",
    )

    assert with_file.status == status
    assert with_file.activities == request.activities
    assert with_file.notes == [note]
    assert with_file.attachments == [attachment]
    assert request.notes == [] and request.attachments == []


def test_implied_status_without_activities_is_unassigned():
    assert lifecycle.implied_status(_request()) == RequestStatus.UNASSIGNED
