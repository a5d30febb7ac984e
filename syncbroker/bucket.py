"""
Buckets: named, independently configured sync endpoints.

A bucket owns an append-only chain of middleware layers and the listeners of
its two events, 'connection' and 'sync'. Buckets never share state with each
other. They are normally created through a registry.Registry rather than
directly.
"""

import logging
from typing import Callable

from syncbroker import errors
from syncbroker import handlers
from syncbroker import layer
from syncbroker import listener


logger = logging.getLogger(__name__)


class Bucket(object):
    """
    Named aggregate of a middleware chain and event listeners.

    To build the chain use use() or decorate with @middleware. To listen to
    events use on() and off(), or decorate with @listen.
    """

    def __init__(self, name: str) -> None:
        if not isinstance(name, str) or not name:
            raise ValueError(f"Bucket name must be a non-empty string, got {name!r}")

        self.name = name
        self._layers: list[layer.Layer] = []
        self._listeners: dict[str, list[listener.Listener]] = {
            event: [] for event in listener.EVENTS
        }

    def __repr__(self) -> str:
        return f"<Bucket {self.name!r} layers={len(self._layers)}>"

    # -----Middleware----------------------------------------------------------

    def use(self, handler: layer.HANDLER, *actions: str) -> layer.HANDLER:
        """
        Append a middleware layer to the end of the chain.

        Args:
            handler (HANDLER): Function receiving (request, response, proceed).
                Can be sync or async.
            *actions (str): Actions the layer runs for. No actions means the
                layer runs for every action.
        Returns:
            HANDLER: The handler, so use() also works inside decorators.
        Raises:
            TypeError: If handler is not callable or an action is not a string.
        """
        if not callable(handler):
            raise TypeError(f"Middleware handler must be callable, got {handler!r}")

        for action in actions:
            if not isinstance(action, str) or not action:
                raise TypeError(f"Actions must be non-empty strings, got {action!r}")

        layer_ = layer.Layer(
            handler=handler,
            actions=frozenset(actions),
            is_async=handlers.is_coroutine_callable(handler),
        )
        self._layers.append(layer_)

        logger.debug(
            f"Bucket '{self.name}' added layer {handlers.get_callable_name(handler)} "
            f"for {sorted(actions) if actions else 'all actions'}"
        )
        return handler

    def middleware(
        self, *actions: str
    ) -> Callable[[layer.HANDLER], layer.HANDLER]:
        """
        Decorator form of use().

        Example:
            >>> @messages.middleware("create", "update")
            ... def assign_id(request, response, proceed):
            ...     proceed()
        """

        def decorator(func: layer.HANDLER) -> layer.HANDLER:
            return self.use(func, *actions)

        return decorator

    @property
    def layers(self) -> tuple[layer.Layer, ...]:
        """Snapshot of the chain in execution order."""
        return tuple(self._layers)

    # -----Listeners-----------------------------------------------------------

    @staticmethod
    def _check_event(event: str) -> None:
        if event not in listener.EVENTS:
            raise errors.UnknownEventError(
                f"Unknown bucket event '{event}'. "
                f"Expected one of: {sorted(listener.EVENTS)}"
            )

    def on(self, event: str, callback: listener.LISTENER) -> listener.LISTENER:
        """
        Register a listener to one of the bucket events.

        Args:
            event (str): 'connection' or 'sync'.
            callback (LISTENER): Called with the client handle for 'connection'
                and with the sync.Sync record for 'sync'. Can be sync or async.
        Returns:
            LISTENER: The callback.
        Raises:
            UnknownEventError: If the event is not a bucket event.
        """
        self._check_event(event)
        if not callable(callback):
            raise TypeError(f"Listener must be callable, got {callback!r}")

        self._listeners[event].append(
            listener.Listener(
                callback=callback,
                event=event,
                is_async=handlers.is_coroutine_callable(callback),
            )
        )
        return callback

    def off(self, event: str, callback: listener.LISTENER) -> None:
        """Remove every registration of callback from an event."""
        self._check_event(event)
        self._listeners[event] = [
            lis for lis in self._listeners[event] if lis.callback != callback
        ]

    def listen(
        self, event: str
    ) -> Callable[[listener.LISTENER], listener.LISTENER]:
        """Decorator form of on()."""
        self._check_event(event)

        def decorator(func: listener.LISTENER) -> listener.LISTENER:
            return self.on(event, func)

        return decorator

    def get_listeners(self, event: str) -> tuple[listener.Listener, ...]:
        """Snapshot of an event's listeners in registration order."""
        self._check_event(event)
        return tuple(self._listeners[event])

    # -----Introspection-------------------------------------------------------

    def to_dict(self) -> dict:
        """Convert the bucket structure to a dictionary."""
        layers_info = []
        for layer_ in self._layers:
            info = handlers.get_callable_name(layer_.handler)
            actions_str = (
                f" [actions={','.join(sorted(layer_.actions))}]"
                if layer_.actions
                else ""
            )
            async_str = " [async]" if layer_.is_async else ""
            layers_info.append(f"{info}{actions_str}{async_str}")

        data: dict = {"layers": layers_info}
        for event in sorted(listener.EVENTS):
            data[event] = [
                f"{handlers.get_callable_name(lis.callback)}"
                f"{' [async]' if lis.is_async else ''}"
                for lis in self._listeners[event]
            ]

        return data
