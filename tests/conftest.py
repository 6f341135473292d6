import asyncio
import pathlib
import sys
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import jwt
import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
from consultdesk.bookings import Appointment, BookingsServiceError
from consultdesk.consults.models import Agent, Channel, ChannelMapping, IdName, TimeBlock
from consultdesk.consults.schemas import CreateConsultRequest
from consultdesk.core.identity import ActorIdentity
from consultdesk.core.settings import Settings, reset_settings_cache
from consultdesk.notifications import (
    MessageHandle,
    NotificationError,
    NotificationEvent,
    NotificationOperation,
    Notifier,
)
from consultdesk.services import Services, build_services
from consultdesk.storage import InMemoryDocumentClient

AGENT_ONE = ActorIdentity("agent-1", "Agent One")
AGENT_TWO = ActorIdentity("agent-2", "Agent Two")
SUPERVISOR = ActorIdentity("sup-1", "Sue Pervisor")

TOKEN_SECRET = "secret-key"
TOKEN_AUDIENCE = "consultdesk"
TOKEN_ISSUER = "auth.consultdesk"


class Gate:
    """Holds callers until ``parties`` of them have arrived."""

    def __init__(self, parties: int) -> None:
        self.parties = parties
        self.arrived = 0
        self.event = asyncio.Event()

    async def wait(self) -> None:
        self.arrived += 1
        if self.arrived >= self.parties:
            self.event.set()
        await self.event.wait()


class FakeBookings:
    """In-process booking service.

    ``directory`` maps principal names to the staff id a lookup returns;
    appointments are only accepted for ids in ``valid_staff``.
    """

    def __init__(self) -> None:
        self.directory: dict[str, str] = {}
        self.valid_staff: set[str] = set()
        self.forced_failures = 0
        self.lookup_error: Exception | None = None
        self.booking_error: Exception | None = None
        self.gate: Gate | None = None
        self.calls: list[tuple] = []
        self._created = 0

    async def resolve_staff_id(self, business_id, principal_name):
        self.calls.append(("resolve", business_id, principal_name))
        if self.lookup_error is not None:
            raise self.lookup_error
        return self.directory.get(principal_name)

    async def _accept(self, staff_id):
        if self.gate is not None:
            await self.gate.wait()
        if self.booking_error is not None:
            raise self.booking_error
        if self.forced_failures:
            self.forced_failures -= 1
            raise BookingsServiceError("rejected", status_code=400)
        if staff_id not in self.valid_staff:
            raise BookingsServiceError("unknown staff member", status_code=404)

    async def create_appointment(self, business_id, service_id, staff_id, time_block, customer):
        self.calls.append(("create", business_id, service_id, staff_id))
        await self._accept(staff_id)
        self._created += 1
        return Appointment(
            id=f"appt-{self._created}",
            join_uri=f"https://meet.example/join/conv-{self._created}",
        )

    async def update_appointment(self, business_id, appointment_id, staff_id):
        self.calls.append(("update", business_id, appointment_id, staff_id))
        await self._accept(staff_id)

    def count(self, kind: str) -> int:
        return sum(1 for call in self.calls if call[0] == kind)


class RecordingNotifier(Notifier):
    def __init__(self) -> None:
        self.events: list[NotificationEvent] = []
        self.fail = False

    async def notify(self, event):
        self.events.append(event)
        if self.fail:
            raise NotificationError("chat platform unavailable")
        if event.operation == NotificationOperation.CREATED:
            return MessageHandle(conversation_id=f"conv-{event.request.id}", activity_id="act-1")
        return None

    def operations(self) -> list[NotificationOperation]:
        return [event.operation for event in self.events]


@dataclass
class World:
    client: InMemoryDocumentClient
    bookings: FakeBookings
    notifier: RecordingNotifier
    services: Services
    mapping: ChannelMapping | None = None
    agents: dict[str, Agent] = field(default_factory=dict)

    @property
    def consults(self):
        return self.services.consults

    def run(self, coro):
        return asyncio.run(coro)

    async def create(self, category: str = "Tax"):
        return await self.consults.create_request(consult_payload(category))

    async def set_supervisors(self, *actors: ActorIdentity) -> None:
        mapping = await self.services.routing.mappings.get_by_category("Tax")
        mapping.supervisors = [a.as_id_name() for a in actors]
        await self.services.routing.mappings.upsert(mapping)


def time_block(hours_from_now: int = 24, length: int = 1) -> TimeBlock:
    start = datetime(2030, 1, 1, 9, tzinfo=timezone.utc) + timedelta(hours=hours_from_now)
    return TimeBlock(start_date_time=start, end_date_time=start + timedelta(hours=length))


def consult_payload(category: str = "Tax") -> CreateConsultRequest:
    return CreateConsultRequest(
        customer_name="Casey Customer",
        customer_phone="+1 555 0100",
        customer_email="casey@example.com",
        query="Help with my tax return",
        category=category,
        preferred_times=[time_block(24), time_block(48)],
    )


async def _seed(world: World) -> None:
    routing = world.services.routing
    await routing.register_channel(
        Channel(
            tenant_id="tenant-1",
            service_url="https://chat.example/api",
            team_id="team-1",
            team_aad_object_id="team-aad-1",
            team_name="Advisors",
            channel_id="chan-tax",
            channel_name="Tax consults",
        )
    )
    mapping = ChannelMapping(
        channel_id="chan-tax",
        category="Tax",
        bookings_business=IdName(id="B1", display_name="Tax Advisors"),
        bookings_service=IdName(id="S1", display_name="Tax consult"),
    )
    await routing.mappings.add(mapping)
    world.mapping = mapping
    for actor, upn in (
        (AGENT_ONE, "agent1@contoso.com"),
        (AGENT_TWO, "agent2@contoso.com"),
        (SUPERVISOR, "sup1@contoso.com"),
    ):
        agent = Agent(aad_object_id=actor.object_id, user_principal_name=upn, name=actor.display_name)
        await world.services.agents.agents.upsert(agent)
        world.agents[actor.object_id] = agent


@pytest.fixture
def world() -> World:
    client = InMemoryDocumentClient()
    bookings = FakeBookings()
    notifier = RecordingNotifier()
    services = build_services(
        Settings(), document_client=client, bookings=bookings, notifier=notifier
    )
    world = World(client=client, bookings=bookings, notifier=notifier, services=services)
    asyncio.run(_seed(world))
    return world


@pytest.fixture
def token_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("AUTH_TOKEN_SECRET", TOKEN_SECRET)
    monkeypatch.setenv("AUTH_TOKEN_AUDIENCE", TOKEN_AUDIENCE)
    monkeypatch.setenv("AUTH_TOKEN_ISSUER", TOKEN_ISSUER)
    monkeypatch.setenv("AUTH_TOKEN_ALGORITHM", "HS256")
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("DOCUMENT_STORE_BACKEND", raising=False)
    reset_settings_cache()
    yield
    reset_settings_cache()


def issue_token(
    oid: str | None = "agent-1",
    *,
    secret: str = TOKEN_SECRET,
    audience: str = TOKEN_AUDIENCE,
    issuer: str = TOKEN_ISSUER,
    expires_in: timedelta = timedelta(minutes=5),
    **extra_claims,
) -> str:
    payload: dict[str, object] = {
        "aud": audience,
        "iss": issuer,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    if oid is not None:
        payload["oid"] = oid
    payload.update(extra_claims)
    return jwt.encode(payload, secret, algorithm="HS256")


def auth_header(oid: str = "agent-1", **claims) -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_token(oid, **claims)}"}
