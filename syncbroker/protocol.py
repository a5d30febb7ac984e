"""
Wire messages exchanged with sync clients.

Inbound requests look like {"bucket", "action", "data", "options"}. The
dispatcher answers the requesting client with {"result": ...} or
{"error": message} and pushes {"bucket", "action", "result"} notifications to
everyone else that should hear about the change.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from dataclasses import field
from typing import Any
from typing import Optional

from syncbroker import errors


@dataclass(frozen=True)
class SyncMessage(object):
    """A validated inbound sync request."""

    action: str
    data: Any = None
    options: dict[str, Any] = field(default_factory=dict)
    bucket: Optional[str] = None


def parse_request(message: Any) -> SyncMessage:
    """
    Validate a raw inbound message.

    Args:
        message (Any): Decoded message as delivered by the transport.
    Returns:
        SyncMessage: The validated request.
    Raises:
        ProtocolError: If the message is not a mapping, has no usable action,
            or carries options that are not a mapping.
    """
    if not isinstance(message, Mapping):
        raise errors.ProtocolError(
            f"Sync message must be a mapping, got {type(message).__name__}"
        )

    action = message.get("action")
    if not isinstance(action, str) or not action:
        raise errors.ProtocolError("Sync message is missing an action")

    options = message.get("options")
    if options is None:
        options = {}
    elif not isinstance(options, Mapping):
        raise errors.ProtocolError(
            f"Sync options must be a mapping, got {type(options).__name__}"
        )

    bucket_name = message.get("bucket")
    if bucket_name is not None and not isinstance(bucket_name, str):
        raise errors.ProtocolError("Sync bucket must be a string")

    return SyncMessage(
        action=action,
        data=message.get("data"),
        options=dict(options),
        bucket=bucket_name,
    )


def error_message(error: BaseException) -> str:
    """The text sent to clients for an error, falling back to its type name."""
    return str(error) or error.__class__.__name__


def result_reply(result: Any) -> dict[str, Any]:
    return {"result": result}


def error_reply(error: BaseException) -> dict[str, Any]:
    return {"error": error_message(error)}


def notification(bucket_name: str, action: str, result: Any) -> dict[str, Any]:
    """A pushed notification of a completed sync."""
    return {"bucket": bucket_name, "action": action, "result": result}
