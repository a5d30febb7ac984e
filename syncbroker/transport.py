"""
The boundary between the dispatcher and the real-time transport.

The dispatcher never opens sockets itself. It relies on a Transport to deliver
inbound messages, reply to one client, enumerate the subscribers of a bucket,
enumerate the members of an arbitrary room, and push a message to many
clients at once.

LocalTransport is a single process implementation of that contract, useful for
local development and tests. Its LocalClient handles record every message they
receive in an inbox.
"""

import itertools
import logging
from dataclasses import dataclass
from dataclasses import field
from typing import Any
from typing import Iterable
from typing import Optional
from typing import Protocol
from typing import runtime_checkable


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Room(object):
    """A named group of clients, usable as a sync.notify() target."""

    name: str


@runtime_checkable
class Transport(Protocol):
    """What the dispatcher needs from a real-time transport."""

    def bind(self, dispatcher: Any) -> None:
        """Deliver inbound requests and (dis)connections to dispatcher."""
        ...

    async def send(self, client: Any, message: dict[str, Any]) -> None:
        """Send a message to one client. Gone clients are a no-op."""
        ...

    async def publish(self, clients: Iterable[Any], message: dict[str, Any]) -> None:
        """Send one message to many clients."""
        ...

    def subscribers(self, bucket_name: str) -> list[Any]:
        """Current subscribers of a bucket."""
        ...

    def members(self, room_name: str) -> list[Any]:
        """Current members of a room."""
        ...


_client_ids = itertools.count(1)


@dataclass(eq=False)
class LocalClient(object):
    """In-process client handle. Compares by identity."""

    id: str = field(default_factory=lambda: f"client-{next(_client_ids)}")
    inbox: list[dict[str, Any]] = field(default_factory=list)
    connected: bool = True

    def __repr__(self) -> str:
        return f"<LocalClient {self.id}>"

    def results(self) -> list[Any]:
        """Payloads of every {"result"} reply received so far."""
        return [message["result"] for message in self.inbox if _is_reply(message)]

    def errors(self) -> list[str]:
        """Messages of every {"error"} reply received so far."""
        return [message["error"] for message in self.inbox if "error" in message]

    def notifications(self) -> list[dict[str, Any]]:
        """Every pushed {"bucket", "action", "result"} notification."""
        return [message for message in self.inbox if "bucket" in message]


def _is_reply(message: dict[str, Any]) -> bool:
    return "result" in message and "bucket" not in message


class LocalTransport(object):
    """
    Single process Transport.

    Use join() and leave() to attach clients to buckets, request() to send a
    sync request on behalf of a client, and add_to_room() to group clients.
    """

    def __init__(self) -> None:
        self.dispatcher: Optional[Any] = None
        self._subscribers: dict[str, list[LocalClient]] = {}
        self._rooms: dict[str, list[LocalClient]] = {}

    def bind(self, dispatcher: Any) -> None:
        self.dispatcher = dispatcher

    def _require_dispatcher(self) -> Any:
        if self.dispatcher is None:
            raise RuntimeError("LocalTransport is not bound to a dispatcher")
        return self.dispatcher

    # -----Inbound-------------------------------------------------------------

    async def join(self, bucket_name: str, client: LocalClient) -> None:
        """Attach a client to a bucket and report the connection."""
        dispatcher = self._require_dispatcher()
        subscribers = self._subscribers.setdefault(bucket_name, [])
        if client in subscribers:
            return

        client.connected = True
        subscribers.append(client)
        await dispatcher.connect(bucket_name, client)

    async def leave(self, bucket_name: str, client: LocalClient) -> None:
        """Detach a client from a bucket and report the disconnection."""
        dispatcher = self._require_dispatcher()
        subscribers = self._subscribers.get(bucket_name, [])
        if client not in subscribers:
            return

        subscribers.remove(client)
        await dispatcher.disconnect(bucket_name, client)

    async def disconnect(self, client: LocalClient) -> None:
        """Drop a client from every bucket and room."""
        client.connected = False
        for members in self._rooms.values():
            if client in members:
                members.remove(client)

        for bucket_name in list(self._subscribers):
            await self.leave(bucket_name, client)

    async def request(
        self, bucket_name: str, client: LocalClient, message: Any
    ) -> None:
        """Deliver a sync request from client. Returns once it is answered."""
        dispatcher = self._require_dispatcher()
        await dispatcher.dispatch(bucket_name, message, client)

    def add_to_room(self, room_name: str, client: LocalClient) -> None:
        members = self._rooms.setdefault(room_name, [])
        if client not in members:
            members.append(client)

    def remove_from_room(self, room_name: str, client: LocalClient) -> None:
        members = self._rooms.get(room_name, [])
        if client in members:
            members.remove(client)

    # -----Outbound------------------------------------------------------------

    async def send(self, client: LocalClient, message: dict[str, Any]) -> None:
        if not client.connected:
            logger.debug(f"Dropping message for disconnected {client!r}")
            return

        client.inbox.append(message)

    async def publish(
        self, clients: Iterable[LocalClient], message: dict[str, Any]
    ) -> None:
        for client in clients:
            await self.send(client, message)

    def subscribers(self, bucket_name: str) -> list[LocalClient]:
        return list(self._subscribers.get(bucket_name, []))

    def members(self, room_name: str) -> list[LocalClient]:
        return list(self._rooms.get(room_name, []))
