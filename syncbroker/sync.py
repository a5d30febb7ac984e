"""
The Sync record passed to 'sync' listeners after a request was answered.

A Sync describes one successful round trip and decides what happens after it.
By default the result is broadcast to every current subscriber of the bucket.
While the listeners run, any of them may call stop() to suppress the
broadcast, or notify() to replace the set of clients that receive it. Once
the listeners are done the record is closed and both calls are refused.
"""

from typing import Any
from typing import Iterable
from typing import Optional

from syncbroker import errors


PENDING = "pending"
CLOSED = "closed"


class Sync(object):
    """A completed request, as seen by 'sync' listeners."""

    def __init__(
        self,
        client: Any,
        bucket: Any,
        action: str,
        result: Any,
        targets: Iterable[Any] = (),
    ) -> None:
        self.client = client
        self.bucket = bucket
        self.action = action
        self.result = result

        self.state: str = PENDING
        self.stopped: bool = False

        self._default_targets: tuple[Any, ...] = tuple(targets)
        self._notified: Optional[tuple[Any, ...]] = None

    def __repr__(self) -> str:
        return (
            f"<Sync {self.bucket.name}:{self.action} {self.state}"
            f"{' stopped' if self.stopped else ''}>"
        )

    @property
    def closed(self) -> bool:
        return self.state == CLOSED

    @property
    def redirected(self) -> bool:
        """True once notify() replaced the default targets."""
        return self._notified is not None

    @property
    def targets(self) -> tuple[Any, ...]:
        """
        The effective broadcast targets: whatever notify() was last called
        with, or every current subscriber of the bucket.
        """
        if self._notified is not None:
            return self._notified
        return self._default_targets

    def stop(self) -> None:
        """
        Suppress the broadcast for this sync. Idempotent.

        Raises:
            SyncClosedError: If the listeners already finished.
        """
        self._check_open("stop")
        self.stopped = True

    def notify(self, *targets: Any) -> None:
        """
        Broadcast to exactly these targets instead of the bucket subscribers.
        Targets are client handles or transport.Room values. Calling it again
        replaces the targets, and calling it with nothing notifies nobody.

        Raises:
            SyncClosedError: If the listeners already finished.
        """
        self._check_open("notify")
        self._notified = tuple(targets)

    def close(self) -> None:
        """Refuse further stop() and notify() calls."""
        self.state = CLOSED

    def _check_open(self, operation: str) -> None:
        if self.closed:
            raise errors.SyncClosedError(
                f"Cannot {operation}() the '{self.action}' sync on bucket "
                f"'{self.bucket.name}' after its listeners finished"
            )
