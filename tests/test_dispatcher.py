"""
Unit tests for request dispatching.

Tests verify the full round trip through a LocalTransport: replies to the
requesting client, protocol errors answered before any middleware runs,
middleware errors kept away from other clients, and isolation between
concurrent requests.
"""

import asyncio
import itertools
from typing import Any

import pytest

import syncbroker
from syncbroker import LocalClient


async def join_all(
    transport: syncbroker.LocalTransport, bucket_name: str, *clients: LocalClient
) -> None:
    for client in clients:
        await transport.join(bucket_name, client)


def setup_messages(dispatcher: syncbroker.Dispatcher) -> dict[int, Any]:
    """The messages bucket: ids assigned on create, removed on delete."""
    store: dict[int, Any] = {}
    ids = itertools.count(1)
    messages = dispatcher.bucket("messages")

    def save(request_, response, proceed) -> None:
        if "id" not in request_.data:
            request_.data["id"] = next(ids)
        store[request_.data["id"]] = request_.data
        response.send(request_.data)

    def remove(request_, response, proceed) -> None:
        response.send(store.pop(request_.data["id"]))

    messages.use(save, "create", "update")
    messages.use(remove, "delete")
    return store


@pytest.mark.asyncio
async def test_create_is_answered_and_broadcast(
    dispatcher: syncbroker.Dispatcher, transport: syncbroker.LocalTransport
) -> None:
    """Test the create scenario from request to broadcast."""
    store = setup_messages(dispatcher)
    syncs: list[syncbroker.Sync] = []
    dispatcher.bucket("messages").on("sync", syncs.append)

    c1, c2, c3 = LocalClient(), LocalClient(), LocalClient()
    await join_all(transport, "messages", c1, c2, c3)

    await transport.request(
        "messages", c1, {"action": "create", "data": {"text": "hi"}}
    )

    expected = {"id": 1, "text": "hi"}
    notification = {"bucket": "messages", "action": "create", "result": expected}

    assert c1.inbox == [{"result": expected}, notification]
    assert c2.inbox == [notification]
    assert c3.inbox == [notification]
    assert store == {1: expected}

    assert len(syncs) == 1
    assert syncs[0].action == "create"
    assert syncs[0].result == expected
    assert syncs[0].client is c1
    assert syncs[0].bucket is dispatcher.bucket("messages")


@pytest.mark.asyncio
async def test_delete_goes_through_its_own_layer(
    dispatcher: syncbroker.Dispatcher, transport: syncbroker.LocalTransport
) -> None:
    """Test that a delete only reaches the delete layer."""
    store = setup_messages(dispatcher)
    client = LocalClient()
    await transport.join("messages", client)

    await transport.request(
        "messages", client, {"action": "create", "data": {"text": "hi"}}
    )
    await transport.request("messages", client, {"action": "delete", "data": {"id": 1}})

    assert store == {}
    assert client.results()[-1] == {"id": 1, "text": "hi"}
    assert client.notifications()[-1]["action"] == "delete"


@pytest.mark.asyncio
async def test_unauthorized_request_is_not_broadcast(
    dispatcher: syncbroker.Dispatcher, transport: syncbroker.LocalTransport
) -> None:
    """Test that an auth layer rejecting a request only answers the sender."""
    messages = dispatcher.bucket("messages")
    syncs: list[syncbroker.Sync] = []

    def auth(request_, response, proceed) -> None:
        if request_.options.get("token") != "secret":
            proceed(Exception("Unauthorized"))
            return
        proceed()

    messages.use(auth, "create", "update", "delete")
    store = setup_messages(dispatcher)
    messages.on("sync", syncs.append)

    c1, c2 = LocalClient(), LocalClient()
    await join_all(transport, "messages", c1, c2)

    await transport.request(
        "messages", c1, {"action": "create", "data": {"text": "hi"}}
    )

    assert c1.inbox == [{"error": "Unauthorized"}]
    assert c2.inbox == []
    assert store == {}
    assert syncs == []

    await transport.request(
        "messages",
        c1,
        {"action": "create", "data": {"text": "hi"}, "options": {"token": "secret"}},
    )

    assert c1.results() == [{"id": 1, "text": "hi"}]
    assert len(c2.notifications()) == 1


@pytest.mark.asyncio
async def test_missing_action_never_enters_chain(
    dispatcher: syncbroker.Dispatcher, transport: syncbroker.LocalTransport
) -> None:
    """Test that malformed messages are answered before any layer runs."""
    calls: list[str] = []
    dispatcher.bucket("messages").use(
        lambda request_, response, proceed: calls.append(request_.action)
    )
    client = LocalClient()
    await transport.join("messages", client)

    await transport.request("messages", client, {"data": {"text": "hi"}})
    await transport.request("messages", client, "create")
    await transport.request("messages", client, {"action": "read", "options": [1]})

    assert calls == []
    assert client.errors() == [
        "Sync message is missing an action",
        "Sync message must be a mapping, got str",
        "Sync options must be a mapping, got list",
    ]


@pytest.mark.asyncio
async def test_strict_registry_rejects_unknown_bucket(
    transport: syncbroker.LocalTransport,
) -> None:
    """Test that a strict registry answers unknown buckets with an error."""
    registry = syncbroker.Registry(strict=True)
    dispatcher = syncbroker.Dispatcher(registry, transport)
    client = LocalClient()

    await dispatcher.dispatch("nope", {"action": "read"}, client)

    assert client.inbox == [{"error": "Unknown bucket 'nope'"}]
    assert not registry.exists("nope")


@pytest.mark.asyncio
async def test_lazy_registry_creates_bucket_on_dispatch(
    dispatcher: syncbroker.Dispatcher,
) -> None:
    """Test that dispatching to a new name creates an empty bucket."""
    client = LocalClient()

    await dispatcher.dispatch("fresh", {"action": "read"}, client)

    assert dispatcher.registry.exists("fresh")
    assert client.inbox == [{"error": "No layer answered 'read' on bucket 'fresh'"}]


@pytest.mark.asyncio
async def test_raising_layer_is_reported_to_client(
    dispatcher: syncbroker.Dispatcher, transport: syncbroker.LocalTransport
) -> None:
    """Test that an exception raised by a layer reaches only the sender."""

    def explode(request_, response, proceed) -> None:
        raise ValueError("boom")

    dispatcher.bucket("messages").use(explode)
    c1, c2 = LocalClient(), LocalClient()
    await join_all(transport, "messages", c1, c2)

    await transport.request("messages", c1, {"action": "create", "data": {}})

    assert c1.inbox == [{"error": "boom"}]
    assert c2.inbox == []


@pytest.mark.asyncio
async def test_request_fields_reach_middleware(
    dispatcher: syncbroker.Dispatcher, transport: syncbroker.LocalTransport
) -> None:
    """Test that action, data, options, bucket and client are all passed on."""
    seen: list[syncbroker.Request] = []

    def echo(request_, response, proceed) -> None:
        seen.append(request_)
        response.send(request_.options)

    dispatcher.bucket("messages").use(echo)
    client = LocalClient()

    await transport.request(
        "messages",
        client,
        {"action": "search", "data": [1, 2], "options": {"limit": 5}},
    )

    assert client.results() == [{"limit": 5}]
    assert seen[0].action == "search"
    assert seen[0].data == [1, 2]
    assert seen[0].bucket.name == "messages"
    assert seen[0].client is client
    assert seen[0].state == {}


@pytest.mark.asyncio
async def test_failing_request_does_not_affect_concurrent_request(
    dispatcher: syncbroker.Dispatcher, transport: syncbroker.LocalTransport
) -> None:
    """Test that in-flight requests are isolated from each other."""

    async def handle(request_, response, proceed) -> None:
        await asyncio.sleep(request_.data["delay"])
        if request_.data["fail"]:
            proceed(RuntimeError("failed"))
        else:
            response.send("ok")

    dispatcher.bucket("jobs").use(handle)
    good, bad = LocalClient(), LocalClient()

    await asyncio.gather(
        transport.request(
            "jobs", good, {"action": "run", "data": {"delay": 0.02, "fail": False}}
        ),
        transport.request(
            "jobs", bad, {"action": "run", "data": {"delay": 0, "fail": True}}
        ),
    )

    assert good.inbox == [{"result": "ok"}]
    assert bad.inbox == [{"error": "failed"}]


@pytest.mark.asyncio
async def test_dispatch_without_transport_raises() -> None:
    """Test that a dispatcher needs a transport to answer anyone."""
    dispatcher = syncbroker.Dispatcher()

    with pytest.raises(RuntimeError, match="not bound to a transport"):
        await dispatcher.dispatch("messages", {"action": "read"}, LocalClient())


def test_bind_attaches_both_sides() -> None:
    """Test that binding a transport wires it back to the dispatcher."""
    transport = syncbroker.LocalTransport()
    dispatcher = syncbroker.Dispatcher()

    dispatcher.bind(transport)

    assert dispatcher.transport is transport
    assert transport.dispatcher is dispatcher
    assert isinstance(transport, syncbroker.Transport)


@pytest.mark.asyncio
async def test_message_for_another_bucket_is_rejected(
    dispatcher: syncbroker.Dispatcher, transport: syncbroker.LocalTransport
) -> None:
    """Test that a bucket field naming a different bucket is a protocol error."""
    calls: list[str] = []
    dispatcher.bucket("messages").use(
        lambda request_, response, proceed: response.send(calls.append("ran"))
    )
    client = LocalClient()

    await transport.request(
        "messages", client, {"bucket": "jobs", "action": "create"}
    )
    await transport.request(
        "messages", client, {"bucket": "messages", "action": "create"}
    )

    assert client.errors() == [
        "Sync message for bucket 'jobs' was sent to bucket 'messages'"
    ]
    assert calls == ["ran"]
    assert not dispatcher.registry.exists("jobs")
