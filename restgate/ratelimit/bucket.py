"""Rate limit bucket.

A bucket tracks the remaining allowance and reset time of one admission
scope. Local tracking is optimistic and is overwritten whenever the remote
service reports its own counters.
"""

import threading
from dataclasses import dataclass
from typing import Optional

GLOBAL_SCOPE = "global"


@dataclass(frozen=True)
class BucketSnapshot:
    """Point-in-time copy of a bucket's counters."""
    key: str
    capacity: int
    remaining: int
    reset_at: float
    window: float


class Bucket:
    """Counter bounding how many requests may be admitted per window.

    Timestamps are on the dispatcher clock (``time.monotonic`` by default).
    Every read-modify-write runs under the bucket's own lock so that two
    admission attempts can never both take the last unit.
    """

    def __init__(self, key: str, capacity: int = 1, window: float = 1.0, reset_at: float = 0.0):
        """Initialize the bucket.

        Args:
            key: Scope key (route identifier, remote bucket id or "global")
            capacity: Uses allowed per window
            window: Seconds between local resets
            reset_at: Timestamp of the first reset; 0 means reset on first use
        """
        self.key = key
        self.window = window
        self._capacity = max(0, capacity)
        self._remaining = self._capacity
        self._reset_at = reset_at
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def remaining(self) -> int:
        return self._remaining

    @property
    def reset_at(self) -> float:
        return self._reset_at

    @property
    def is_global(self) -> bool:
        return self.key == GLOBAL_SCOPE

    def _maybe_reset(self, now: float) -> None:
        # Caller holds the lock
        if now >= self._reset_at:
            self._remaining = self._capacity
            self._reset_at = now + self.window

    def try_admit(self, now: float) -> bool:
        """Take one unit if available.

        Args:
            now: Current clock time

        Returns:
            True if the request was admitted
        """
        with self._lock:
            self._maybe_reset(now)
            if self._remaining > 0:
                self._remaining -= 1
                return True
            return False

    def has_capacity(self, now: float) -> bool:
        """Whether ``try_admit(now)`` would succeed, without taking a unit."""
        with self._lock:
            self._maybe_reset(now)
            return self._remaining > 0

    def apply_server_feedback(
        self,
        remaining: int,
        reset_at: float,
        capacity: Optional[int] = None,
    ) -> None:
        """Overwrite local counters with the values reported by the service.

        Args:
            remaining: Uses left in the current window
            reset_at: Clock time at which the window resets
            capacity: Uses per window, only when the service reported it
        """
        with self._lock:
            if capacity is not None and capacity >= 0:
                self._capacity = capacity
            self._remaining = max(0, remaining)
            self._reset_at = reset_at

    def next_available_at(self) -> float:
        return self._reset_at

    def snapshot(self) -> BucketSnapshot:
        with self._lock:
            return BucketSnapshot(
                key=self.key,
                capacity=self._capacity,
                remaining=self._remaining,
                reset_at=self._reset_at,
                window=self.window,
            )

    def __repr__(self) -> str:
        return (
            f"Bucket({self.key!r}, remaining={self._remaining}/{self._capacity}, "
            f"reset_at={self._reset_at:.3f})"
        )
