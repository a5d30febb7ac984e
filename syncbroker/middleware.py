"""
Stock middleware layers.

memory_store answers create/read/update/delete from a dict held in memory. It
keeps nothing across restarts and is meant for prototypes and tests.
authorize is the hook point for authentication: it only decides whether a
request may go on. log_actions traces requests through the logging module.

Each factory returns a handler to register with Bucket.use(), e.g.::

    messages.use(authorize(is_logged_in), "create", "update", "delete")
    messages.use(memory_store())
"""

import itertools
import logging
from collections.abc import Mapping
from collections.abc import MutableMapping
from typing import Any
from typing import Callable
from typing import Optional

from syncbroker import errors
from syncbroker import layer
from syncbroker import request


logger = logging.getLogger(__name__)


def _record_id(data: Any) -> Any:
    if isinstance(data, Mapping):
        return data.get("id")
    return None


def memory_store(store: Optional[MutableMapping[Any, Any]] = None) -> layer.HANDLER:
    """
    Build a CRUD layer backed by a dict of id -> record.

    - create: assigns the next integer id when the payload has none, stores a
      copy and answers it. An id already in use aborts with "Already exists".
    - read: answers a copy of the record matching data["id"], or copies of
      every record.
    - update: replaces the record with the payload.
    - delete: removes the record and answers it.
    Any other action is passed on. Unknown ids abort with "Not found".

    Args:
        store (Optional[MutableMapping]): Backing mapping, a new dict if None.
    """
    records: MutableMapping[Any, Any] = store if store is not None else {}
    ids = itertools.count(1)

    def next_id() -> int:
        id_ = next(ids)
        while id_ in records:
            id_ = next(ids)
        return id_

    def memory_store_(
        request_: request.Request, response: request.Response, proceed: layer.PROCEED
    ) -> None:
        action = request_.action
        data = request_.data

        if action == "read":
            id_ = _record_id(data)
            if id_ is None:
                response.send([dict(record) for record in records.values()])
            elif id_ in records:
                response.send(dict(records[id_]))
            else:
                proceed(errors.MiddlewareError("Not found"))
            return

        if action not in ("create", "update", "delete"):
            proceed()
            return

        if not isinstance(data, MutableMapping):
            proceed(errors.MiddlewareError(f"'{action}' expects an object payload"))
            return

        if action == "create":
            if data.get("id") is None:
                data["id"] = next_id()
            elif data["id"] in records:
                proceed(errors.MiddlewareError("Already exists"))
                return
            records[data["id"]] = dict(data)
            response.send(dict(data))
            return

        id_ = data.get("id")
        if id_ not in records:
            proceed(errors.MiddlewareError("Not found"))
            return

        if action == "update":
            records[id_] = dict(data)
            response.send(dict(data))
        else:
            response.send(records.pop(id_))

    return memory_store_


def authorize(
    predicate: Callable[[request.Request], bool], message: str = "Unauthorized"
) -> layer.HANDLER:
    """
    Build a layer that lets a request through only when predicate(request)
    is truthy, and aborts the chain with message otherwise.
    """

    def authorize_(
        request_: request.Request, response: request.Response, proceed: layer.PROCEED
    ) -> None:
        if predicate(request_):
            proceed()
        else:
            proceed(errors.MiddlewareError(message))

    return authorize_


def log_actions(level: int = logging.DEBUG) -> layer.HANDLER:
    """Build a layer that logs every request passing through it."""

    def log_actions_(
        request_: request.Request, response: request.Response, proceed: layer.PROCEED
    ) -> None:
        logger.log(
            level,
            f"[{request_.bucket.name}] {request_.action} from {request_.client!r}: "
            f"{request_.data!r}",
        )
        proceed()

    return log_actions_
