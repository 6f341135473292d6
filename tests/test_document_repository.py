import asyncio

import pytest

from consultdesk.consults.models import Agent, Channel, Request
from consultdesk.consults.repositories import (
    AgentRepository,
    ChannelRepository,
    RequestRepository,
)
from consultdesk.storage import ConflictError, InMemoryDocumentClient, ItemKey


def _channel(channel_id: str, team_id: str = "team-1") -> Channel:
    return Channel(
        tenant_id="tenant-1",
        service_url="https://chat.example/api",
        team_id=team_id,
        team_aad_object_id=f"aad-{team_id}",
        team_name="Advisors",
        channel_id=channel_id,
        channel_name=f"Channel {channel_id}",
    )


def _request(**overrides) -> Request:
    data = dict(
        customer_name="Casey",
        customer_phone="555",
        customer_email="casey@example.com",
        query="Need help",
        category="Tax",
    )
    data.update(overrides)
    return Request(**data)


class FlakyClient(InMemoryDocumentClient):
    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures

    async def create_container_if_not_exists(self, name, partition_key_path):
        if self.failures:
            self.failures -= 1
            self.bootstrap_calls += 1
            raise RuntimeError("store unavailable")
        return await super().create_container_if_not_exists(name, partition_key_path)


def test_bootstrap_is_lazy_and_shared_by_concurrent_callers():
    client = InMemoryDocumentClient()
    repo = ChannelRepository(client)
    assert client.bootstrap_calls == 0

    async def scenario():
        return await asyncio.gather(*(repo.get_by_channel_id("missing") for _ in range(5)))

    results = asyncio.run(scenario())

    assert results == [None] * 5
    assert client.bootstrap_calls == 1
    assert list(client.containers) == ["channels"]
    assert client.containers["channels"].partition_key_path == "/channel_id"


def test_failed_bootstrap_is_retried_on_next_call():
    client = FlakyClient(failures=1)
    repo = ChannelRepository(client)

    async def scenario():
        with pytest.raises(RuntimeError):
            await repo.get_all()
        return await repo.get_all()

    assert asyncio.run(scenario()) == []
    assert client.bootstrap_calls == 2


def test_add_conflicts_on_existing_key():
    repo = ChannelRepository(InMemoryDocumentClient())
    channel = _channel("c1")

    async def scenario():
        await repo.add(channel)
        with pytest.raises(ConflictError):
            await repo.add(channel.model_copy())

    asyncio.run(scenario())


def test_get_missing_returns_none():
    repo = RequestRepository(InMemoryDocumentClient())
    assert asyncio.run(repo.get_by_id("nope")) is None


def test_delete_is_idempotent():
    repo = ChannelRepository(InMemoryDocumentClient())
    channel = _channel("c1")
    key = ItemKey(channel.id, channel.channel_id)

    async def scenario():
        await repo.add(channel)
        await repo.delete(key)
        await repo.delete(key)
        await repo.delete(ItemKey("never", "existed"))
        return await repo.get(key)

    assert asyncio.run(scenario()) is None


def test_upsert_then_get_round_trips():
    repo = RequestRepository(InMemoryDocumentClient())
    request = _request(notes=[], friendly_id="123456")

    async def scenario():
        await repo.upsert(request)
        return await repo.get(repo.key_for(request))

    loaded = asyncio.run(scenario())
    assert loaded == request
    assert loaded.etag is not None


def test_partition_keys_follow_entity_type():
    client = InMemoryDocumentClient()
    request = _request()
    agent = Agent(aad_object_id="aad-7", user_principal_name="a@contoso.com")

    assert RequestRepository(client).key_for(request) == ItemKey(request.id, request.id)
    assert AgentRepository(client).key_for(agent) == ItemKey(agent.id, "aad-7")
    assert ChannelRepository(client).key_for(_channel("c9")).partition_key == "c9"


def test_query_drains_every_page():
    repo = ChannelRepository(InMemoryDocumentClient(), page_size=2)

    async def scenario():
        for i in range(5):
            await repo.add(_channel(f"c{i}", team_id="team-a" if i % 2 else "team-b"))
        return await repo.get_all(), await repo.get_by_team_id("team-a")

    everything, team_a = asyncio.run(scenario())
    assert len(everything) == 5
    assert sorted(c.channel_id for c in team_a) == ["c1", "c3"]


def test_filtered_query_treats_empty_lists_as_no_filter():
    repo = RequestRepository(InMemoryDocumentClient())

    async def scenario():
        await repo.add(_request(category="Tax"))
        await repo.add(_request(category="Legal"))
        return (
            await repo.get_filtered([], []),
            await repo.get_filtered(["Legal"], []),
        )

    unfiltered, legal = asyncio.run(scenario())
    assert len(unfiltered) == 2
    assert [r.category for r in legal] == ["Legal"]


def test_conditional_upsert_rejects_stale_etag():
    repo = RequestRepository(InMemoryDocumentClient())
    request = _request()

    async def scenario():
        await repo.add(request)
        first = await repo.get_by_id(request.id)
        second = await repo.get_by_id(request.id)
        first.query = "first writer"
        await repo.upsert(first, if_match=first.etag)
        second.query = "second writer"
        with pytest.raises(ConflictError):
            await repo.upsert(second, if_match=second.etag)
        return await repo.get_by_id(request.id)

    stored = asyncio.run(scenario())
    assert stored.query == "first writer"


def test_plain_upsert_is_last_write_wins():
    repo = RequestRepository(InMemoryDocumentClient())
    request = _request()

    async def scenario():
        await repo.add(request)
        first = await repo.get_by_id(request.id)
        second = await repo.get_by_id(request.id)
        first.query = "first writer"
        second.query = "second writer"
        await repo.upsert(first)
        await repo.upsert(second)
        return await repo.get_by_id(request.id)

    assert asyncio.run(scenario()).query == "second writer"


def test_upsert_refreshes_entity_etag():
    repo = ChannelRepository(InMemoryDocumentClient())
    channel = _channel("c1")

    async def scenario():
        await repo.add(channel)
        before = channel.etag
        await repo.upsert(channel, if_match=channel.etag)
        return before, channel.etag

    before, after = asyncio.run(scenario())
    assert before and after and before != after
