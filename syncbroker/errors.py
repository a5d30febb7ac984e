"""
Exception types raised by the sync broker.

Every exception derives from SyncBrokerError so a host process can catch the
whole family at its transport boundary. ProtocolError, MiddlewareError and
ChainExhaustedError are per-request failures that get reported back to the
requesting client. DoubleResponseError and SyncClosedError flag programming
faults in user middleware or listeners.
"""


class SyncBrokerError(Exception):
    """Base class for every sync broker error."""


class ProtocolError(SyncBrokerError):
    """Raised when an inbound message is malformed."""


class UnknownBucketError(ProtocolError):
    """Raised by a strict registry when a bucket was never registered."""


class MiddlewareError(SyncBrokerError):
    """
    Raised when a layer aborts the chain with a plain message, or when a
    layer raises instead of calling proceed().
    """


class ChainExhaustedError(SyncBrokerError):
    """Raised when every matching layer proceeded and none answered."""


class DoubleResponseError(SyncBrokerError):
    """Raised when a request is answered or continued more than once."""


class SyncClosedError(SyncBrokerError):
    """Raised when stop() or notify() is used after listeners finished."""


class UnknownEventError(SyncBrokerError, ValueError):
    """Raised when listening for an event outside the fixed event set."""
