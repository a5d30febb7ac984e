"""
Middleware chain execution.

A Chain is the explicit execution state of one request travelling through a
bucket's layers: the snapshot of layers, the position of the layer currently
holding the continuation, the request and the response. Execution is driven
by continuation, so every layer may suspend for as long as it likes before
calling proceed(), response.send() or response.error(). A plain layer that
proceeds synchronously queues the next layer instead of calling it, so chains
of any length run on a constant stack depth.

Many chains may be suspended on the event loop at the same time. Layers of a
single chain never run concurrently: only the layer holding the continuation
may advance it, and it may do so exactly once.
"""

import asyncio
import functools
import inspect
import logging
from typing import Iterable
from typing import Optional

from syncbroker import errors
from syncbroker import handlers
from syncbroker import layer
from syncbroker import request


logger = logging.getLogger(__name__)


class Chain(object):
    """
    Drives one request through an ordered snapshot of layers.

    Layers whose action filter does not match the request are skipped and
    never receive a continuation. Plain handlers are called directly and
    coroutine handlers are scheduled as tasks. A handler that raises while
    holding the continuation aborts the chain with that exception.

    Use run() to start execution. It returns a future resolved with the
    request.Outcome once the chain terminates.
    """

    def __init__(
        self,
        layers: Iterable[layer.Layer],
        request_: request.Request,
        response: request.Response,
        on_double_response: Optional[
            handlers.DOUBLE_RESPONSE_HANDLER
        ] = handlers.raise_double_response,
    ) -> None:
        self.layers: tuple[layer.Layer, ...] = tuple(layers)
        self.request = request_
        self.response = response
        self.on_double_response = on_double_response

        self.position: int = -1
        """Index of the layer currently holding the continuation."""

        self._future: Optional[asyncio.Future] = None
        self._tasks: set[asyncio.Task] = set()

        # -----Trampoline-----
        self._invoking: bool = False
        self._queued: Optional[tuple[int, layer.Layer]] = None

        response._on_settled = self._settle

    def __repr__(self) -> str:
        return (
            f"<Chain {self.request.bucket.name}:{self.request.action} "
            f"at {self.position}/{len(self.layers)} {self.response.state}>"
        )

    @property
    def finished(self) -> bool:
        return self._future is not None and self._future.done()

    def run(self) -> asyncio.Future:
        """
        Start executing the chain from its first matching layer.

        Returns:
            asyncio.Future: Resolved with a request.Outcome when the chain
                terminates. A chain that never answers stays pending.
        Raises:
            RuntimeError: If the chain was already started.
        """
        if self._future is not None:
            raise RuntimeError("Chain has already been started")

        self._future = asyncio.get_running_loop().create_future()
        self._advance(0)
        return self._future

    # -----Continuation--------------------------------------------------------

    def _advance(self, start: int) -> None:
        """Hand the continuation to the next matching layer at or after start."""
        for index in range(start, len(self.layers)):
            layer_ = self.layers[index]
            if layer_.matches(self.request.action):
                self.position = index
                self._schedule(index, layer_)
                return

        self._finish(
            request.Outcome(
                error=errors.ChainExhaustedError(
                    f"No layer answered '{self.request.action}' "
                    f"on bucket '{self.request.bucket.name}'"
                )
            )
        )

    def _schedule(self, index: int, layer_: layer.Layer) -> None:
        """
        Run a layer, or queue it when called from inside another layer's
        handler. The outermost call drains the queue one layer at a time.
        """
        self._queued = (index, layer_)
        if self._invoking:
            return

        self._invoking = True
        try:
            while self._queued is not None:
                index, layer_ = self._queued
                self._queued = None
                self._invoke(index, layer_)
        finally:
            self._invoking = False

    def _invoke(self, index: int, layer_: layer.Layer) -> None:
        proceed = functools.partial(self._proceed, index)

        try:
            result = layer_.handler(self.request, self.response, proceed)
        except Exception as e:
            self._raised(index, layer_, e)
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(
                functools.partial(self._on_task_done, index, layer_)
            )

    def _proceed(self, index: int, err: Optional[request.ERROR] = None) -> None:
        if self.finished:
            self._fault(
                f"proceed() called after the request was {self.response.state}"
            )
            return

        if index != self.position:
            self._fault("proceed() called more than once by the same layer")
            return

        if err is not None:
            self._finish(request.Outcome(error=request.to_exception(err)))
            return

        self._advance(index + 1)

    def _on_task_done(
        self, index: int, layer_: layer.Layer, task: asyncio.Task
    ) -> None:
        self._tasks.discard(task)

        if task.cancelled():
            self._raised(
                index, layer_, errors.MiddlewareError("Layer was cancelled")
            )
            return

        exception = task.exception()
        if exception is not None:
            self._raised(index, layer_, exception)

    def _raised(
        self, index: int, layer_: layer.Layer, exception: BaseException
    ) -> None:
        """A handler raised. Abort the chain if that layer still holds it."""
        name = handlers.get_callable_name(layer_.handler)

        if self.finished or index != self.position:
            logger.error(
                f"Layer '{name}' raised after passing on the request "
                f"'{self.request.action}' on bucket '{self.request.bucket.name}'",
                exc_info=exception,
            )
            return

        if not isinstance(exception, errors.SyncBrokerError):
            logger.error(
                f"Exception in middleware layer:\n"
                f"  Bucket:    {self.request.bucket.name}\n"
                f"  Action:    {self.request.action}\n"
                f"  Layer:     {name}\n"
                f"  Exception: {exception.__class__.__name__}: {exception}",
                exc_info=exception,
            )

        self._finish(request.Outcome(error=exception))

    # -----Termination---------------------------------------------------------

    def _settle(self, outcome: request.Outcome) -> None:
        """Settle callback of the response."""
        if self._future is None:
            raise RuntimeError("Chain has not been started")

        if self.finished:
            self._fault(f"Response already {self.response.state}")
            return

        self._finish(outcome)

    def _finish(self, outcome: request.Outcome) -> None:
        self.response.state = request.SENT if outcome.ok else request.ERRORED
        self.position = len(self.layers)
        self._future.set_result(outcome)

    def _fault(self, message: str) -> None:
        exception = errors.DoubleResponseError(message)
        if self.on_double_response is None:
            raise exception

        self.on_double_response(self.request, exception)
