"""Cache abstraction for GET response bodies.

Provides a pluggable cache backend with an in-memory implementation.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
import asyncio
import time


@dataclass
class _CacheEntry:
    """Internal cache entry with TTL tracking."""

    value: bytes
    expires_at: float | None = None

    def is_expired(self) -> bool:
        """Check if the entry has expired."""
        if self.expires_at is None:
            return False
        return time.time() > self.expires_at


class CacheBackend(ABC):
    """Abstract base class for cache backends."""

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Retrieve a value, or None if not found or expired."""
        pass

    @abstractmethod
    async def set(self, key: str, value: bytes, ttl: int) -> None:
        """Store a value for ``ttl`` seconds (0 keeps it forever)."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass

    @abstractmethod
    async def clear(self) -> None:
        pass


class InMemoryCache(CacheBackend):
    """In-memory cache implementation with TTL support.

    Note: This cache is not shared between processes and data is lost when
    the application restarts.
    """

    def __init__(self) -> None:
        self._data: dict[str, _CacheEntry] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> bytes | None:
        async with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            if entry.is_expired():
                del self._data[key]
                return None
            return entry.value

    async def set(self, key: str, value: bytes, ttl: int) -> None:
        async with self._lock:
            expires_at = time.time() + ttl if ttl > 0 else None
            self._data[key] = _CacheEntry(value=value, expires_at=expires_at)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)

    async def clear(self) -> None:
        async with self._lock:
            self._data.clear()

