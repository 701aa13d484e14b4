"""
Single-flight background revalidation.

When a stale entry is served, the coordinator refreshes it in the
background, at most once at a time per key. The in-flight check and insert
happen synchronously, before any await, so concurrent requests on one event
loop cannot both schedule a refresh for the same key.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

from .exceptions import UpstreamError
from .hooks import ObservabilityHooks, SilentObservabilityHooks
from .metrics import CacheMetrics, NoOpMetrics, RevalidationEvent
from .profiles import CacheablePredicate
from .query import LookupQuery
from .store import CacheStore
from .upstream import MetadataFetcher

logger = logging.getLogger(__name__)

BackgroundTask = Callable[[], Awaitable[None]]


class BackgroundScheduler(Protocol):
    """Fire-and-forget task runner."""

    def schedule(self, task: BackgroundTask) -> None:
        """Run ``task`` later without blocking the caller."""
        ...


class AsyncioScheduler:
    """Runs background tasks on the current event loop.

    Holds strong references to pending tasks so they are not garbage
    collected mid-flight; ``drain`` awaits them at shutdown.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def schedule(self, task: BackgroundTask) -> None:
        loop = asyncio.get_running_loop()
        running = loop.create_task(task())
        self._tasks.add(running)
        running.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for all pending tasks to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class RevalidationCoordinator:
    """Schedules background refreshes of stale entries, one per key.

    A refresh fetches upstream and overwrites the entry only when the
    response is successful, valid JSON and cacheable. Otherwise the
    previous entry is left untouched, ``updated_at`` included.

    Attributes:
        cache_name: Name used in logs and hooks
    """

    def __init__(
        self,
        store: CacheStore,
        fetcher: MetadataFetcher,
        is_cacheable: CacheablePredicate,
        scheduler: BackgroundScheduler | None = None,
        metrics: CacheMetrics | None = None,
        hooks: ObservabilityHooks | None = None,
        cache_name: str = "cache",
    ) -> None:
        self._store = store
        self._fetcher = fetcher
        self._is_cacheable = is_cacheable
        self._scheduler = scheduler or AsyncioScheduler()
        self._metrics = metrics or NoOpMetrics()
        self._hooks = hooks or SilentObservabilityHooks()
        self.cache_name = cache_name
        self._in_flight: set[str] = set()

    @property
    def scheduler(self) -> BackgroundScheduler:
        return self._scheduler

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    def _record(self, key: str, event: RevalidationEvent) -> None:
        self._metrics.record_revalidation(key, event)
        self._hooks.on_revalidation(self.cache_name, key, event)

    def schedule_revalidation(self, key: str, query: LookupQuery) -> bool:
        """Schedule a background refresh of ``key`` unless one is running.

        Must stay synchronous: the in-flight check and insert cannot be
        separated by an await.

        Returns:
            True if a refresh was scheduled, False if one was already in flight
        """
        if key in self._in_flight:
            self._record(key, RevalidationEvent.SKIPPED)
            return False

        self._in_flight.add(key)
        try:
            self._scheduler.schedule(lambda: self._revalidate(key, query))
        except Exception as e:
            self._in_flight.discard(key)
            logger.error(f"Could not schedule revalidation for key {key}: {e}")
            self._record(key, RevalidationEvent.FAILED)
            return False

        self._record(key, RevalidationEvent.SCHEDULED)
        return True

    async def _revalidate(self, key: str, query: LookupQuery) -> None:
        succeeded = False
        try:
            response = await self._fetcher.fetch(query)
            if not response.is_success:
                logger.debug(f"Revalidation of {key} got upstream status {response.status_code}")
                return

            payload = response.json_or_none()
            if payload is None or not self._is_cacheable(payload, query):
                logger.debug(f"Revalidation of {key} returned no cacheable result; keeping previous entry")
                return

            succeeded = await self._store.write(key, payload, query)
        except UpstreamError as e:
            logger.warning(f"Revalidation of {key} failed upstream: {e}")
            self._hooks.on_error(self.cache_name, key, e)
        except Exception as e:
            logger.exception(f"Unexpected error revalidating {key}: {e}")
        finally:
            self._in_flight.discard(key)
            self._record(key, RevalidationEvent.SUCCEEDED if succeeded else RevalidationEvent.FAILED)
