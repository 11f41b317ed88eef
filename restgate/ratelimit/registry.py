"""Bucket registry.

Single owner of every Bucket used by a dispatcher: the global bucket, one
bucket per local route key, and the merged buckets named by the remote
service.
"""

import threading
from typing import Dict

from restgate.core.config import settings
from restgate.core.logging import get_logger
from restgate.ratelimit.bucket import GLOBAL_SCOPE, Bucket

logger = get_logger(__name__)


class BucketRegistry:
    """Maps scope keys to buckets and routes to their remote bucket ids.

    Usage:
        registry = BucketRegistry(global_capacity=50, global_window=1.0)
        bucket = registry.resolve("POST /channels/{channel_id}/messages:1")

        # After a response declares X-RateLimit-Bucket: abcd
        merged = registry.rekey("POST /channels/{channel_id}/messages:1", "abcd")
    """

    def __init__(
        self,
        default_capacity: int | None = None,
        default_window: float | None = None,
        global_capacity: int | None = None,
        global_window: float | None = None,
    ):
        """Initialize the registry.

        Args:
            default_capacity: Initial capacity of unknown buckets
            default_window: Local reset window of unknown buckets
            global_capacity: Uses per window of the global bucket
            global_window: Window of the global bucket in seconds
        """
        self.default_capacity = (
            settings.default_bucket_capacity if default_capacity is None else default_capacity
        )
        self.default_window = (
            settings.default_bucket_window if default_window is None else default_window
        )
        self._global = Bucket(
            GLOBAL_SCOPE,
            capacity=settings.global_bucket_capacity if global_capacity is None else global_capacity,
            window=settings.global_bucket_window if global_window is None else global_window,
        )
        self._buckets: Dict[str, Bucket] = {}
        self._aliases: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get_global(self) -> Bucket:
        return self._global

    def get_or_create(self, scope_key: str) -> Bucket:
        """Get the bucket for a scope key, creating it on first use.

        Concurrent callers for the same key always receive the same instance.
        """
        if scope_key == GLOBAL_SCOPE:
            return self._global
        bucket = self._buckets.get(scope_key)
        if bucket is not None:
            return bucket
        with self._lock:
            bucket = self._buckets.get(scope_key)
            if bucket is None:
                bucket = Bucket(
                    scope_key,
                    capacity=self.default_capacity,
                    window=self.default_window,
                )
                self._buckets[scope_key] = bucket
                logger.debug(f"Created bucket '{scope_key}'")
            return bucket

    def scope_key_for(self, route_key: str) -> str:
        """Scope key currently gating a route."""
        return self._aliases.get(route_key, route_key)

    def resolve(self, route_key: str) -> Bucket:
        """Bucket currently gating a route."""
        return self.get_or_create(self.scope_key_for(route_key))

    def rekey(self, route_key: str, bucket_id: str) -> Bucket:
        """Point a route at the bucket the remote service declared for it.

        Routes that report the same bucket id share one Bucket from then on.
        A merged bucket is never split back apart.

        Returns:
            The bucket now gating the route
        """
        with self._lock:
            previous = self._aliases.get(route_key)
            if previous == bucket_id:
                return self._buckets[bucket_id]
            self._aliases[route_key] = bucket_id
            bucket = self._buckets.get(bucket_id)
            if bucket is None:
                bucket = Bucket(
                    bucket_id,
                    capacity=self.default_capacity,
                    window=self.default_window,
                )
                self._buckets[bucket_id] = bucket
        logger.info(
            f"Route '{route_key}' re-keyed from '{previous or route_key}' to bucket '{bucket_id}'"
        )
        return bucket

    def __len__(self) -> int:
        return len(self._buckets)
