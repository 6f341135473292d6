import asyncio
import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from consultdesk.bookings import (
    BookingsResponseError,
    BookingsServiceError,
    CustomerInfo,
    HttpBookingsClient,
)
from consultdesk.consults.models import TimeBlock

from conftest import time_block

BASE = "https://bookings.example/v1.0/solutions/"


def _client(handler, **kwargs) -> HttpBookingsClient:
    return HttpBookingsClient(BASE, transport=httpx.MockTransport(handler), **kwargs)


def test_resolve_staff_id_filters_by_principal_name():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["filter"] = request.url.params["$filter"]
        return httpx.Response(200, json={"value": [{"id": "staff-42"}]})

    staff_id = asyncio.run(_client(handler).resolve_staff_id("B1", "o'neil@contoso.com"))

    assert staff_id == "staff-42"
    assert seen["path"] == "/v1.0/solutions/bookingBusinesses/B1/staffMembers"
    assert seen["filter"] == "emailAddress eq 'o''neil@contoso.com'"


@pytest.mark.parametrize("members", [[], [{"id": "a"}, {"id": "b"}]])
def test_resolve_staff_id_requires_exactly_one_match(members):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"value": members})

    assert asyncio.run(_client(handler).resolve_staff_id("B1", "x@contoso.com")) is None


def test_create_appointment_posts_booking():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["method"] = request.method
        captured["path"] = request.url.path
        captured["body"] = json.loads(request.content)
        return httpx.Response(
            201, json={"id": "appt-1", "joinWebUrl": "https://meet.example/join/abc"}
        )

    block = time_block()
    appointment = asyncio.run(
        _client(handler).create_appointment(
            "B1",
            "S1",
            "staff-42",
            block,
            CustomerInfo(name="Casey", email="casey@example.com", phone="555", notes="Taxes"),
        )
    )

    assert appointment.id == "appt-1"
    assert appointment.join_uri == "https://meet.example/join/abc"
    assert captured["method"] == "POST"
    assert captured["path"].endswith("/bookingBusinesses/B1/appointments")
    body = captured["body"]
    assert body["serviceId"] == "S1"
    assert body["staffMemberIds"] == ["staff-42"]
    assert body["customerEmailAddress"] == "casey@example.com"
    assert body["startDateTime"] == {"dateTime": "2030-01-02T09:00:00", "timeZone": "UTC"}
    assert body["endDateTime"]["dateTime"] == "2030-01-02T10:00:00"


def test_update_appointment_patches_staff():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["method"] = request.method
        captured["path"] = request.url.path
        captured["body"] = json.loads(request.content)
        return httpx.Response(204)

    asyncio.run(_client(handler).update_appointment("B1", "appt-9", "staff-7"))

    assert captured["method"] == "PATCH"
    assert captured["path"].endswith("/bookingBusinesses/B1/appointments/appt-9")
    assert captured["body"] == {"staffMemberIds": ["staff-7"]}


def test_error_status_raises_service_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": {"code": "ErrorItemNotFound"}})

    with pytest.raises(BookingsServiceError) as exc_info:
        asyncio.run(_client(handler).update_appointment("B1", "appt-9", "staff-7"))
    assert exc_info.value.status_code == 404


def test_token_is_sent_as_bearer():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"value": []})

    async def scenario():
        client = _client(handler, token="graph-token")
        try:
            await client.resolve_staff_id("B1", "x@contoso.com")
        finally:
            await client.aclose()

    asyncio.run(scenario())
    assert captured["auth"] == "Bearer graph-token"


def test_offset_times_are_sent_as_utc():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["body"] = json.loads(request.content)
        return httpx.Response(201, json={"id": "appt-1"})

    paris = timezone(timedelta(hours=2))
    start = datetime(2030, 6, 1, 11, 30, tzinfo=paris)
    block = TimeBlock(start_date_time=start, end_date_time=start + timedelta(minutes=30))
    customer = CustomerInfo(name="Casey", email="casey@example.com", phone="555")

    asyncio.run(_client(handler).create_appointment("B1", "S1", "staff-42", block, customer))

    body = captured["body"]
    assert body["startDateTime"] == {"dateTime": "2030-06-01T09:30:00", "timeZone": "UTC"}
    assert body["endDateTime"] == {"dateTime": "2030-06-01T10:00:00", "timeZone": "UTC"}


@pytest.mark.parametrize(
    "body",
    [
        {"text": "<html>gateway</html>"},
        {"json": {}},
        {"json": {"joinWebUrl": "https://meet.example/join/abc"}},
        {"json": ["appt-1"]},
    ],
)
def test_create_appointment_rejects_unreadable_body(body):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, **body)

    customer = CustomerInfo(name="Casey", email="casey@example.com", phone="555")
    with pytest.raises(BookingsResponseError):
        asyncio.run(
            _client(handler).create_appointment("B1", "S1", "staff-42", time_block(), customer)
        )


@pytest.mark.parametrize(
    "body",
    [
        {"text": "not json"},
        {"json": ["staff-42"]},
        {"json": {"value": {"id": "staff-42"}}},
        {"json": {"value": [{"displayName": "No id"}]}},
    ],
)
def test_resolve_staff_id_rejects_unreadable_body(body):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, **body)

    with pytest.raises(BookingsServiceError):
        asyncio.run(_client(handler).resolve_staff_id("B1", "x@contoso.com"))
