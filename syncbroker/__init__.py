"""
# Sync Broker

Server side core of a bidirectional synchronization service. Clients send
named sync actions (create, read, update, delete or any custom verb) to
buckets. Each bucket runs the request through its own ordered chain of
middleware layers, the requesting client gets the answer, and the result is
then fanned out to every other interested client.

Typical setup:

    registry = syncbroker.Registry()
    dispatcher = syncbroker.Dispatcher(registry, transport)

    messages = dispatcher.bucket("messages")
    messages.use(syncbroker.middleware.memory_store())

    @messages.listen("sync")
    def only_to_room(sync):
        sync.notify(syncbroker.Room("lobby"))

The transport is whatever delivers messages to and from clients, see
syncbroker.transport for the contract and an in-process implementation.
"""

from syncbroker import errors
from syncbroker import handlers
from syncbroker import middleware
from syncbroker.bucket import Bucket
from syncbroker.chain import Chain
from syncbroker.dispatcher import Dispatcher
from syncbroker.errors import ChainExhaustedError
from syncbroker.errors import DoubleResponseError
from syncbroker.errors import MiddlewareError
from syncbroker.errors import ProtocolError
from syncbroker.errors import SyncBrokerError
from syncbroker.errors import SyncClosedError
from syncbroker.errors import UnknownBucketError
from syncbroker.errors import UnknownEventError
from syncbroker.listener import CONNECTION
from syncbroker.listener import SYNC
from syncbroker.registry import Registry
from syncbroker.request import Request
from syncbroker.request import Response
from syncbroker.sync import Sync
from syncbroker.transport import LocalClient
from syncbroker.transport import LocalTransport
from syncbroker.transport import Room
from syncbroker.transport import Transport


version_major = 1
version_minor = 0
version_patch = 0
__version__ = f"{version_major}.{version_minor}.{version_patch}"

__all__ = [
    "Bucket",
    "CONNECTION",
    "Chain",
    "ChainExhaustedError",
    "Dispatcher",
    "DoubleResponseError",
    "LocalClient",
    "LocalTransport",
    "MiddlewareError",
    "ProtocolError",
    "Registry",
    "Request",
    "Response",
    "Room",
    "SYNC",
    "Sync",
    "SyncBrokerError",
    "SyncClosedError",
    "Transport",
    "UnknownBucketError",
    "UnknownEventError",
    "errors",
    "handlers",
    "middleware",
]
