"""
Unit tests for single-flight background revalidation.
"""

import asyncio

import pytest

from metadata_cache.backend import InMemoryStateBackend
from metadata_cache.exceptions import UpstreamTransportError
from metadata_cache.metrics import InMemoryMetrics
from metadata_cache.profiles import has_primary_result
from metadata_cache.query import LookupQuery
from metadata_cache.revalidation import AsyncioScheduler, RevalidationCoordinator
from metadata_cache.store import CacheStore

QUERY = LookupQuery(query="okami", release_year=2006)


@pytest.fixture
def metrics() -> InMemoryMetrics:
    return InMemoryMetrics()


@pytest.fixture
def store(backend, metrics, clock) -> CacheStore:
    return CacheStore(backend, metrics=metrics, clock=clock)


@pytest.fixture
def coordinator(store, fetcher, scheduler, metrics) -> RevalidationCoordinator:
    return RevalidationCoordinator(store, fetcher, has_primary_result, scheduler=scheduler, metrics=metrics)


class TestScheduleRevalidation:
    """Test RevalidationCoordinator.schedule_revalidation."""

    def test_second_schedule_is_skipped_while_in_flight(self, coordinator, scheduler, metrics) -> None:
        """Test at most one refresh per key."""
        # Act
        first = coordinator.schedule_revalidation("k", QUERY)
        second = coordinator.schedule_revalidation("k", QUERY)

        # Assert
        assert (first, second) == (True, False)
        assert len(scheduler.tasks) == 1
        assert coordinator.is_in_flight("k")
        stats = metrics.get_stats()
        assert stats.revalidate_scheduled == 1
        assert stats.revalidate_skipped == 1

    def test_different_keys_are_independent(self, coordinator, scheduler) -> None:
        """Test single-flight is per key."""
        assert coordinator.schedule_revalidation("a", QUERY) is True
        assert coordinator.schedule_revalidation("b", QUERY) is True
        assert coordinator.in_flight_count == 2

    @pytest.mark.asyncio
    async def test_success_writes_and_clears_in_flight(
        self, coordinator, scheduler, fetcher, store, metrics
    ) -> None:
        """Test a cacheable refresh overwrites the entry."""
        # Arrange
        fetcher.respond_json({"item": {"score": 99}})
        coordinator.schedule_revalidation("k", QUERY)

        # Act
        await scheduler.run_all()

        # Assert
        entry = await store.read("k")
        assert entry.payload == {"item": {"score": 99}}
        assert not coordinator.is_in_flight("k")
        assert metrics.get_stats().revalidate_succeeded == 1
        assert coordinator.schedule_revalidation("k", QUERY) is True

    @pytest.mark.asyncio
    async def test_transport_failure_keeps_previous_entry(
        self, coordinator, scheduler, fetcher, store, metrics, clock
    ) -> None:
        """Test failed refreshes leave the row and its timestamp alone."""
        # Arrange
        await store.write("k", {"item": {"score": 20}}, QUERY)
        original = await store.read("k")
        clock.advance(100)
        fetcher.fail_with(UpstreamTransportError("HLTB request failed", "HLTB"))
        coordinator.schedule_revalidation("k", QUERY)

        # Act
        await scheduler.run_all()

        # Assert
        assert await store.read("k") == original
        assert not coordinator.is_in_flight("k")
        assert metrics.get_stats().revalidate_failed == 1
        assert coordinator.schedule_revalidation("k", QUERY) is True

    @pytest.mark.asyncio
    async def test_non_cacheable_result_is_not_written(self, coordinator, scheduler, fetcher, backend, metrics) -> None:
        """Test no negative caching during revalidation."""
        fetcher.respond_json({"item": None})
        coordinator.schedule_revalidation("k", QUERY)

        await scheduler.run_all()

        assert len(backend) == 0
        assert metrics.get_stats().revalidate_failed == 1
        assert not coordinator.is_in_flight("k")

    @pytest.mark.asyncio
    async def test_malformed_json_is_not_written(self, coordinator, scheduler, fetcher, backend, metrics) -> None:
        """Test malformed bodies count as failures."""
        fetcher.respond_body(b"<html>oops</html>")
        coordinator.schedule_revalidation("k", QUERY)

        await scheduler.run_all()

        assert len(backend) == 0
        assert metrics.get_stats().revalidate_failed == 1

    @pytest.mark.asyncio
    async def test_error_status_is_not_written(self, coordinator, scheduler, fetcher, backend, metrics) -> None:
        """Test non-2xx responses count as failures even with a cacheable body."""
        fetcher.respond_json({"item": {"score": 20}}, status_code=500)
        coordinator.schedule_revalidation("k", QUERY)

        await scheduler.run_all()

        assert len(backend) == 0
        assert metrics.get_stats().revalidate_failed == 1

    @pytest.mark.asyncio
    async def test_unexpected_error_clears_in_flight(self, store, scheduler, metrics) -> None:
        """Test in-flight cleanup on unexpected exceptions."""

        class ExplodingFetcher:
            label = "HLTB"

            async def fetch(self, query: LookupQuery):
                raise RuntimeError("bug")

        coordinator = RevalidationCoordinator(
            store, ExplodingFetcher(), has_primary_result, scheduler=scheduler, metrics=metrics
        )
        coordinator.schedule_revalidation("k", QUERY)

        await scheduler.run_all()

        assert not coordinator.is_in_flight("k")
        assert metrics.get_stats().revalidate_failed == 1

    @pytest.mark.asyncio
    async def test_write_failure_counts_as_failed(self, fetcher, scheduler, metrics) -> None:
        """Test success requires the write to land."""
        backend = InMemoryStateBackend()

        async def reject(key: str, value: bytes, ttl_seconds: int | None = None) -> bool:
            return False

        backend.set = reject
        coordinator = RevalidationCoordinator(
            CacheStore(backend, metrics=metrics), fetcher, has_primary_result, scheduler=scheduler, metrics=metrics
        )
        fetcher.respond_json({"item": {"score": 1}})
        coordinator.schedule_revalidation("k", QUERY)

        await scheduler.run_all()

        stats = metrics.get_stats()
        assert stats.revalidate_failed == 1
        assert stats.write_errors == 1

    def test_scheduler_failure_clears_in_flight(self, store, fetcher, metrics) -> None:
        """Test a scheduler that cannot run tasks does not leak in-flight keys."""

        class BrokenScheduler:
            def schedule(self, task) -> None:
                raise RuntimeError("no running event loop")

        coordinator = RevalidationCoordinator(
            store, fetcher, has_primary_result, scheduler=BrokenScheduler(), metrics=metrics
        )

        assert coordinator.schedule_revalidation("k", QUERY) is False
        assert not coordinator.is_in_flight("k")


class TestAsyncioScheduler:
    """Test AsyncioScheduler."""

    @pytest.mark.asyncio
    async def test_runs_task_and_drains(self) -> None:
        """Test tasks run on the loop and drain waits for them."""
        # Arrange
        scheduler = AsyncioScheduler()
        ran: list[str] = []

        async def task() -> None:
            await asyncio.sleep(0)
            ran.append("done")

        # Act
        scheduler.schedule(task)
        pending_after_schedule = scheduler.pending
        await scheduler.drain()

        # Assert
        assert pending_after_schedule == 1
        assert ran == ["done"]
        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_coordinator_with_asyncio_scheduler(self, store, fetcher, metrics) -> None:
        """Test the default scheduler end to end."""
        scheduler = AsyncioScheduler()
        coordinator = RevalidationCoordinator(store, fetcher, has_primary_result, scheduler=scheduler, metrics=metrics)
        fetcher.respond_json({"item": {"score": 5}})

        assert coordinator.schedule_revalidation("k", QUERY) is True
        assert coordinator.schedule_revalidation("k", QUERY) is False
        await scheduler.drain()

        assert not coordinator.is_in_flight("k")
        assert (await store.read("k")).payload == {"item": {"score": 5}}

    def test_schedule_without_loop_raises(self) -> None:
        """Test scheduling outside an event loop fails loudly."""

        async def task() -> None:
            return None

        with pytest.raises(RuntimeError):
            AsyncioScheduler().schedule(task)
