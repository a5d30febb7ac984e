"""
Middleware layer data structures for bucket chains.

A layer pairs a handler with the set of actions it applies to. Handlers have
the shape (request, response, proceed) and may be plain functions or coroutine
functions. An empty action set matches every action.
"""

from dataclasses import dataclass
from typing import Any
from typing import Callable
from typing import Coroutine
from typing import Union

PROCEED = Callable[..., None]
"""
Continuation handed to each handler. Call with no argument to continue to the
next matching layer, or with an exception or message to abort the chain.
"""

HANDLER = Union[
    Callable[[Any, Any, PROCEED], None],
    Callable[[Any, Any, PROCEED], Coroutine[Any, Any, None]],
]
"""A middleware handler receiving (request, response, proceed)."""


@dataclass(frozen=True)
class Layer(object):
    """One step of a bucket's middleware chain."""

    handler: HANDLER
    """The end point that the request is forwarded to."""

    actions: frozenset[str]
    """
    Actions this layer runs for. Empty means every action.
    Non-matching layers are skipped entirely and never receive proceed.
    """

    is_async: bool
    """If the handler is a coroutine function or has an async __call__."""

    def matches(self, action: str) -> bool:
        """Check whether the layer runs for an action."""
        return not self.actions or action in self.actions
