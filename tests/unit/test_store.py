"""
Unit tests for the cache store adapter.
"""

from unittest.mock import AsyncMock

import pytest

from metadata_cache.backend import InMemoryStateBackend
from metadata_cache.exceptions import CacheConnectionError, StoreReadError
from metadata_cache.metrics import InMemoryMetrics
from metadata_cache.query import LookupQuery
from metadata_cache.serializer import JsonSerializer
from metadata_cache.store import CacheStore


class TestCacheStoreRead:
    """Test CacheStore.read."""

    @pytest.mark.asyncio
    async def test_absent_key_returns_none(self) -> None:
        """Test misses return None."""
        store = CacheStore(InMemoryStateBackend())

        assert await store.read("missing") is None

    @pytest.mark.asyncio
    async def test_backend_failure_raises_store_read_error(self) -> None:
        """Test read failures are distinguishable from misses."""
        # Arrange
        backend = InMemoryStateBackend()
        backend.get = AsyncMock(side_effect=CacheConnectionError("down"))
        store = CacheStore(backend)

        # Act & Assert
        with pytest.raises(StoreReadError) as exc_info:
            await store.read("k")
        assert exc_info.value.key == "k"

    @pytest.mark.asyncio
    async def test_undecodable_row_is_treated_as_absent(self) -> None:
        """Test corrupt rows do not break lookups."""
        backend = InMemoryStateBackend()
        await backend.set("k", b"\xc1garbage")

        assert await CacheStore(backend).read("k") is None

    @pytest.mark.asyncio
    async def test_row_without_payload_is_treated_as_absent(self) -> None:
        """Test rows missing response_json are ignored."""
        backend = InMemoryStateBackend()
        await backend.set("k", b'{"cache_key":"k"}')

        assert await CacheStore(backend, serializer=JsonSerializer()).read("k") is None


class TestCacheStoreWrite:
    """Test CacheStore.write."""

    @pytest.mark.asyncio
    async def test_write_then_read(self, clock) -> None:
        """Test a written row is read back with its timestamp and query."""
        # Arrange
        metrics = InMemoryMetrics()
        store = CacheStore(InMemoryStateBackend(), metrics=metrics, clock=clock)
        query = LookupQuery(query="okami", release_year=2006)

        # Act
        written = await store.write("k", {"item": {"score": 20}}, query)
        entry = await store.read("k")

        # Assert
        assert written is True
        assert entry is not None
        assert entry.payload == {"item": {"score": 20}}
        assert entry.updated_at == clock.now.isoformat()
        assert entry.query["query"] == "okami"
        assert metrics.get_stats().writes == 1

    @pytest.mark.asyncio
    async def test_write_replaces_whole_row(self, clock) -> None:
        """Test rewrites replace payload and timestamp."""
        store = CacheStore(InMemoryStateBackend(), clock=clock)
        await store.write("k", {"item": 1})
        clock.advance(60)

        await store.write("k", {"item": 2})
        entry = await store.read("k")

        assert entry.payload == {"item": 2}
        assert entry.updated_at == clock.now.isoformat()

    @pytest.mark.asyncio
    async def test_write_forwards_ttl(self) -> None:
        """Test the row TTL reaches the backend."""
        backend = InMemoryStateBackend()
        backend.set = AsyncMock(return_value=True)
        store = CacheStore(backend, ttl_seconds=3600)

        await store.write("k", {"item": 1})

        assert backend.set.await_args.args[2] == 3600

    @pytest.mark.asyncio
    async def test_backend_exception_is_swallowed(self) -> None:
        """Test write failures never raise."""
        # Arrange
        metrics = InMemoryMetrics()
        backend = InMemoryStateBackend()
        backend.set = AsyncMock(side_effect=CacheConnectionError("down"))
        store = CacheStore(backend, metrics=metrics)

        # Act
        written = await store.write("k", {"item": 1})

        # Assert
        assert written is False
        assert metrics.get_stats().write_errors == 1
        assert metrics.get_stats().writes == 0

    @pytest.mark.asyncio
    async def test_backend_rejection_counts_as_error(self) -> None:
        """Test a False return from the backend is a write error."""
        metrics = InMemoryMetrics()
        backend = InMemoryStateBackend()
        backend.set = AsyncMock(return_value=False)

        assert await CacheStore(backend, metrics=metrics).write("k", {"item": 1}) is False
        assert metrics.get_stats().write_errors == 1

    @pytest.mark.asyncio
    async def test_unserializable_payload_is_swallowed(self) -> None:
        """Test serialization failures count as write errors."""
        metrics = InMemoryMetrics()
        store = CacheStore(InMemoryStateBackend(), metrics=metrics)

        assert await store.write("k", {"item": object()}) is False
        assert metrics.get_stats().write_errors == 1


class TestCacheStoreDelete:
    """Test CacheStore.delete."""

    @pytest.mark.asyncio
    async def test_delete_removes_row(self) -> None:
        """Test delete."""
        backend = InMemoryStateBackend()
        store = CacheStore(backend)
        await store.write("k", {"item": 1})

        assert await store.delete("k") is True
        assert len(backend) == 0

    @pytest.mark.asyncio
    async def test_delete_failure_is_swallowed(self) -> None:
        """Test delete failures count as write errors."""
        metrics = InMemoryMetrics()
        backend = InMemoryStateBackend()
        backend.delete = AsyncMock(side_effect=RuntimeError("down"))

        assert await CacheStore(backend, metrics=metrics).delete("k") is False
        assert metrics.get_stats().write_errors == 1
