"""
Process wide registry of buckets.

The registry is created at startup, populated while the application sets up
its buckets, and only read while requests are being dispatched. It is handed
to the dispatcher explicitly instead of living in module state.

A lazy registry creates a bucket the first time its name is referenced. A
strict registry only knows buckets that were registered up front and refuses
any other name with an UnknownBucketError.
"""

import json
import logging
import os
from typing import Optional
from typing import Union

from syncbroker import bucket
from syncbroker import errors
from syncbroker import listener


logger = logging.getLogger(__name__)


class Registry(object):
    """Name to bucket mapping with a documented lifecycle."""

    def __init__(self, strict: bool = False) -> None:
        self.strict = strict
        self._buckets: dict[str, bucket.Bucket] = {}

    def __repr__(self) -> str:
        mode = "strict" if self.strict else "lazy"
        return f"<Registry {mode} buckets={len(self._buckets)}>"

    def __contains__(self, name: str) -> bool:
        return name in self._buckets

    def __len__(self) -> int:
        return len(self._buckets)

    def register(self, name: str) -> bucket.Bucket:
        """
        Create the bucket if needed and return it, regardless of strictness.
        This is how a strict registry is populated during setup.
        """
        if name not in self._buckets:
            self._buckets[name] = bucket.Bucket(name)
            logger.debug(f"Registered bucket '{name}'")

        return self._buckets[name]

    def resolve(self, name: str) -> bucket.Bucket:
        """
        Resolve a bucket by name.

        Args:
            name (str): Bucket name.
        Returns:
            bucket.Bucket: The bucket, created on first reference when the
                registry is lazy.
        Raises:
            UnknownBucketError: If the registry is strict and the bucket was
                never registered.
        """
        if name in self._buckets:
            return self._buckets[name]

        if self.strict:
            raise errors.UnknownBucketError(f"Unknown bucket '{name}'")

        return self.register(name)

    def get(self, name: str) -> Optional[bucket.Bucket]:
        """Get a bucket without creating it."""
        return self._buckets.get(name)

    def clear(self) -> None:
        """Drop every bucket. Only meant for process teardown and tests."""
        self._buckets.clear()

    # -----Introspection-------------------------------------------------------

    def get_names(self) -> list[str]:
        """Get all bucket names."""
        return sorted(self._buckets.keys())

    def exists(self, name: str) -> bool:
        """Check if a bucket exists..."""
        return name in self._buckets

    def get_statistics(self) -> dict[str, object]:
        """
        Get overall registry statistics.

        Example:
            {
                "total_buckets": 2,
                "total_layers": 5,
                "total_async_layers": 1,
                "total_connection_listeners": 1,
                "total_sync_listeners": 3,
                "buckets_without_layers": 0,
                "average_layers_per_bucket": 2.5,
            }
        """
        buckets = list(self._buckets.values())
        total_layers = sum(len(b.layers) for b in buckets)

        return {
            "total_buckets": len(buckets),
            "total_layers": total_layers,
            "total_async_layers": sum(
                1 for b in buckets for layer_ in b.layers if layer_.is_async
            ),
            "total_connection_listeners": sum(
                len(b.get_listeners(listener.CONNECTION)) for b in buckets
            ),
            "total_sync_listeners": sum(
                len(b.get_listeners(listener.SYNC)) for b in buckets
            ),
            "buckets_without_layers": sum(1 for b in buckets if not b.layers),
            "average_layers_per_bucket": (
                total_layers / len(buckets) if buckets else 0
            ),
        }

    def to_dict(self) -> dict:
        """Convert the registry structure to a dictionary."""
        return {name: self._buckets[name].to_dict() for name in self.get_names()}

    def to_string(self) -> str:
        """Returns a string representation of the registry."""
        return json.dumps(self.to_dict(), indent=4)

    def export(self, filepath: Union[str, os.PathLike]) -> None:
        """Export registry structure to filepath."""
        with open(filepath, "w") as outfile:
            json.dump(self.to_dict(), outfile, indent=4)
