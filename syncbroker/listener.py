"""
Listener data structures and type definitions for bucket events.

Buckets emit exactly two events: 'connection', once per client attaching to
the bucket, and 'sync', once per successfully answered request. The Listener
dataclass wraps a callback registered for one of them, together with whether
the callback is a coroutine function.
"""

from dataclasses import dataclass
from typing import Any
from typing import Callable
from typing import Coroutine
from typing import Union

CONNECTION = "connection"
SYNC = "sync"

EVENTS = frozenset((CONNECTION, SYNC))
"""The fixed set of events a bucket can emit."""

LISTENER = Union[Callable[..., Any], Callable[..., Coroutine[Any, Any, Any]]]
"""
The callback end point that an event is forwarded to. Connection listeners
receive the client handle, sync listeners receive the Sync record. Can be sync
or async. Return values are ignored.
"""


@dataclass(frozen=True)
class Listener(object):
    """A callback registered to one bucket event."""

    callback: LISTENER
    """What gets ran when the event fires."""

    event: str
    """The event the listener is registered to."""

    is_async: bool
    """If the callback is asynchronous or not..."""
