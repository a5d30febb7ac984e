"""
Request and response objects handed to middleware layers.

A Request is built once per inbound sync message and carries the action, the
payload, the options, the bucket it targets, and the client that sent it. Its
fields cannot be reassigned, but the payload may be changed in place and the
state mapping is a free side channel that layers use to pass derived values
(an authenticated identity, a loaded record, ...) further down the chain.

A Response is a single-use sink. Exactly one of send() or error() may fire
per request, and firing either ends the chain.
"""

from dataclasses import dataclass
from dataclasses import field
from typing import TYPE_CHECKING
from typing import Any
from typing import Callable
from typing import Optional
from typing import Union

from syncbroker import errors

if TYPE_CHECKING:
    from syncbroker.bucket import Bucket


PENDING = "pending"
SENT = "sent"
ERRORED = "errored"

ERROR = Union[BaseException, str]
"""What a layer may pass to proceed() or response.error()."""


def to_exception(err: Optional[ERROR]) -> BaseException:
    """Normalize a layer supplied error into an exception instance."""
    if isinstance(err, BaseException):
        return err
    if err is None:
        return errors.MiddlewareError("Unknown error")
    return errors.MiddlewareError(str(err))


@dataclass(frozen=True)
class Request(object):
    """The context of one inbound sync message."""

    action: str
    """The verb of the sync, e.g. 'create' or 'read'."""

    data: Any
    """Bucket defined payload. Layers may change it in place."""

    options: dict[str, Any]
    """Free form options sent along with the payload."""

    bucket: "Bucket"
    """The bucket the request was sent to."""

    client: Any
    """Opaque handle of the client connection that sent the request."""

    state: dict[str, Any] = field(default_factory=dict)
    """
    Request scoped side channel. Any layer reads and writes it, the last
    writer wins, and everything written is visible to later layers.
    """


@dataclass(frozen=True)
class Outcome(object):
    """How a chain terminated: a result or an error."""

    result: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Response(object):
    """
    Single-use answer sink for a request.

    The chain driving the request attaches itself as the settle callback.
    Calling send() or error() a second time, or after the chain already
    terminated, is a DoubleResponseError.
    """

    def __init__(self) -> None:
        self.state: str = PENDING
        self._on_settled: Optional[Callable[[Outcome], None]] = None

    def __repr__(self) -> str:
        return f"<Response {self.state}>"

    @property
    def finished(self) -> bool:
        return self.state != PENDING

    def send(self, result: Any = None) -> None:
        """Answer the request successfully with result."""
        self._settle(Outcome(result=result))

    def error(self, err: ERROR) -> None:
        """Answer the request with an error. Strings become MiddlewareError."""
        self._settle(Outcome(error=to_exception(err)))

    def _settle(self, outcome: Outcome) -> None:
        if self._on_settled is None:
            raise RuntimeError("Response is not attached to a running chain")
        self._on_settled(outcome)
