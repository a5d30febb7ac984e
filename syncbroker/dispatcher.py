"""
# Sync Dispatcher

Receives raw sync messages from the transport, runs them through the target
bucket's middleware chain, answers the requesting client, and then runs the
notification protocol for successful requests.

Policies:
- Only successful requests emit 'sync' and get broadcast. Errors are answered
  to the requesting client and nobody else.
- The default broadcast goes to every current subscriber of the bucket,
  including the client that made the request. Set broadcast_to_sender to
  False to leave it out.
"""

import inspect
import logging
from typing import Any
from typing import Iterable
from typing import Optional

from syncbroker import chain
from syncbroker import errors
from syncbroker import handlers
from syncbroker import listener
from syncbroker import protocol
from syncbroker import registry
from syncbroker import request
from syncbroker import sync
from syncbroker import transport
from syncbroker.bucket import Bucket


logger = logging.getLogger(__name__)


class Dispatcher(object):
    """
    Routes sync requests through buckets and fans out their results.

    Bind a transport with bind() (or pass it to the constructor), set up
    buckets with bucket(), and let the transport call dispatch(), connect()
    and disconnect().
    """

    def __init__(
        self,
        registry_: Optional[registry.Registry] = None,
        transport_: Optional[transport.Transport] = None,
    ) -> None:
        self.registry = registry_ if registry_ is not None else registry.Registry()
        self.transport: Optional[transport.Transport] = None

        # -----Flags-----
        self.broadcast_to_sender: bool = True

        # -----Exception Handlers-----
        self._listener_exception_handler: Optional[
            handlers.LISTENER_EXCEPTION_HANDLER
        ] = handlers.log_and_continue_listener_exception

        self._double_response_handler: Optional[
            handlers.DOUBLE_RESPONSE_HANDLER
        ] = handlers.raise_double_response

        if transport_ is not None:
            self.bind(transport_)

    def bind(self, transport_: transport.Transport) -> None:
        """Attach to a transport that delivers inbound traffic to us."""
        self.transport = transport_
        transport_.bind(self)

    def bucket(self, name: str) -> Bucket:
        """Get a bucket for setup, registering it if needed."""
        return self.registry.register(name)

    # -----Configuration-------------------------------------------------------

    def set_flag_states(self, broadcast_to_sender: bool = True) -> None:
        """
        Configure the dispatcher policies.

        Args:
            broadcast_to_sender: if True, the default broadcast of a sync also
                reaches the client that made the request. Explicit notify()
                targets are never filtered.
        """
        self.broadcast_to_sender = broadcast_to_sender

    def set_listener_exception_handler(
        self, handler: Optional[handlers.LISTENER_EXCEPTION_HANDLER]
    ) -> None:
        """
        Set the exception handler for listener errors.

        Args:
            Optional[handlers.LISTENER_EXCEPTION_HANDLER]:
                Callable with signature (LISTENER, str, Exception) -> bool.
                Returns True to stop delivery, False to continue.
                Pass None to re-raise listener exceptions.
        """
        self._listener_exception_handler = handler

    def set_double_response_handler(
        self, handler: Optional[handlers.DOUBLE_RESPONSE_HANDLER]
    ) -> None:
        """
        Set the handler for requests answered or continued twice.

        Args:
            Optional[handlers.DOUBLE_RESPONSE_HANDLER]:
                Callable with signature (Request, DoubleResponseError) -> None.
                Pass None to always raise into the offending layer.
        """
        self._double_response_handler = handler

    # -----Dispatch------------------------------------------------------------

    def _require_transport(self) -> transport.Transport:
        if self.transport is None:
            raise RuntimeError("Dispatcher is not bound to a transport")
        return self.transport

    async def dispatch(self, bucket_name: str, message: Any, client: Any) -> None:
        """
        Handle one inbound sync message.

        Args:
            bucket_name (str): The bucket the message was sent to.
            message (Any): The raw {"action", "data", "options"} message.
            client (Any): Opaque handle of the sending client.
        Notes:
            Returns once the request was answered and its notifications were
            delivered. A chain that never answers never returns.
        """
        transport_ = self._require_transport()

        try:
            sync_message = protocol.parse_request(message)
            if sync_message.bucket is not None and sync_message.bucket != bucket_name:
                raise errors.ProtocolError(
                    f"Sync message for bucket '{sync_message.bucket}' "
                    f"was sent to bucket '{bucket_name}'"
                )
            bucket_ = self.registry.resolve(bucket_name)
        except errors.ProtocolError as e:
            logger.warning(f"Rejected sync message for '{bucket_name}': {e}")
            await transport_.send(client, protocol.error_reply(e))
            return

        request_ = request.Request(
            action=sync_message.action,
            data=sync_message.data,
            options=sync_message.options,
            bucket=bucket_,
            client=client,
        )
        response = request.Response()
        chain_ = chain.Chain(
            bucket_.layers,
            request_,
            response,
            on_double_response=self._double_response_handler,
        )

        logger.debug(f"Dispatching '{request_.action}' on bucket '{bucket_.name}'")
        outcome = await chain_.run()

        if not outcome.ok:
            logger.debug(
                f"'{request_.action}' on bucket '{bucket_.name}' failed: "
                f"{outcome.error.__class__.__name__}: {outcome.error}"
            )
            await transport_.send(client, protocol.error_reply(outcome.error))
            return

        await transport_.send(client, protocol.result_reply(outcome.result))
        await self._notify(bucket_, request_, outcome.result)

    async def _notify(
        self, bucket_: Bucket, request_: request.Request, result: Any
    ) -> None:
        """Run the 'sync' listeners and the broadcast that follows them."""
        transport_ = self._require_transport()

        default_targets = transport_.subscribers(bucket_.name)
        if not self.broadcast_to_sender:
            default_targets = [c for c in default_targets if c != request_.client]

        sync_ = sync.Sync(
            client=request_.client,
            bucket=bucket_,
            action=request_.action,
            result=result,
            targets=default_targets,
        )

        try:
            await self._emit(bucket_, listener.SYNC, sync_)
        finally:
            sync_.close()

        if sync_.stopped:
            logger.debug(f"Broadcast of {sync_!r} stopped by a listener")
            return

        clients = self._resolve_targets(sync_.targets)
        logger.debug(f"Broadcasting {sync_!r} to {len(clients)} client(s)")
        await transport_.publish(
            clients,
            protocol.notification(bucket_.name, request_.action, result),
        )

    def _resolve_targets(self, targets: Iterable[Any]) -> list[Any]:
        """Expand rooms into their members and drop duplicates, keeping order."""
        transport_ = self._require_transport()

        clients: list[Any] = []
        for target in targets:
            if isinstance(target, transport.Room):
                members = transport_.members(target.name)
            else:
                members = [target]

            for client in members:
                if client not in clients:
                    clients.append(client)

        return clients

    # -----Connection Lifecycle------------------------------------------------

    async def connect(self, bucket_name: str, client: Any) -> None:
        """
        Report a client attaching to a bucket. Runs the 'connection' listeners
        in registration order before returning.

        Raises:
            UnknownBucketError: If the registry is strict and does not know
                the bucket.
        """
        bucket_ = self.registry.resolve(bucket_name)
        logger.debug(f"{client!r} connected to bucket '{bucket_name}'")
        await self._emit(bucket_, listener.CONNECTION, client)

    async def disconnect(self, bucket_name: str, client: Any) -> None:
        """Report a client detaching from a bucket. In-flight requests go on."""
        logger.debug(f"{client!r} disconnected from bucket '{bucket_name}'")

    # -----Events--------------------------------------------------------------

    async def _emit(self, bucket_: Bucket, event: str, argument: Any) -> None:
        """
        Call every listener of an event in registration order. Async
        listeners are awaited before the next listener runs.
        """
        for listener_ in bucket_.get_listeners(event):
            callback = listener_.callback
            try:
                result = callback(argument)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                if self._listener_exception_handler is None:
                    raise

                stop = self._listener_exception_handler(callback, event, e)
                if stop:
                    break
