"""Tests for the GET response cache backend."""

import time

import pytest

from restgate.core.cache import CacheBackend, InMemoryCache, _CacheEntry


class TestCacheEntry:
    """Tests for the internal _CacheEntry class."""

    def test_cache_entry_no_expiry(self):
        """Entry without expiry never expires."""
        entry = _CacheEntry(value=b"test", expires_at=None)
        assert not entry.is_expired()

    def test_cache_entry_expired(self):
        entry = _CacheEntry(value=b"test", expires_at=time.time() - 1)
        assert entry.is_expired()

    def test_cache_entry_not_expired(self):
        entry = _CacheEntry(value=b"test", expires_at=time.time() + 10)
        assert not entry.is_expired()


class TestInMemoryCache:
    """Tests for the InMemoryCache implementation."""

    def test_is_cache_backend(self):
        assert isinstance(InMemoryCache(), CacheBackend)

    @pytest.mark.asyncio
    async def test_set_and_get(self):
        cache = InMemoryCache()
        await cache.set("key1", b"value1", ttl=60)
        assert await cache.get("key1") == b"value1"

    @pytest.mark.asyncio
    async def test_get_missing_key(self):
        assert await InMemoryCache().get("missing") is None

    @pytest.mark.asyncio
    async def test_expired_entry_is_dropped(self):
        cache = InMemoryCache()
        await cache.set("key1", b"value1", ttl=60)
        cache._data["key1"].expires_at = time.time() - 1

        assert await cache.get("key1") is None
        assert "key1" not in cache._data

    @pytest.mark.asyncio
    async def test_zero_ttl_never_expires(self):
        cache = InMemoryCache()
        await cache.set("key1", b"value1", ttl=0)
        assert cache._data["key1"].expires_at is None

    @pytest.mark.asyncio
    async def test_delete_and_clear(self):
        cache = InMemoryCache()
        await cache.set("a", b"1", ttl=60)
        await cache.set("b", b"2", ttl=60)

        await cache.delete("a")
        assert await cache.get("a") is None

        await cache.clear()
        assert await cache.get("b") is None

