"""
Per-request cache orchestration.

``CacheOrchestrator.lookup`` runs the stale-while-revalidate state machine
for one domain cache:

- short search term: fetch upstream, never touch the store (BYPASS)
- store read failure: fetch upstream, never write (BYPASS)
- fresh entry: serve it (HIT_FRESH)
- stale entry: serve it and schedule one background refresh (HIT_STALE)
- expired or absent entry: fetch, write if cacheable, pass through (MISS)

Cache failures never fail the request; only upstream unavailability and
transport errors propagate.
"""

import json
import logging
import time
from collections.abc import Mapping
from typing import Any

from .backend import InMemoryStateBackend, StateBackend
from .config import CacheSettings
from .constants import REVALIDATE_SCHEDULED, REVALIDATE_SKIPPED
from .exceptions import StoreReadError, UpstreamError
from .freshness import Freshness, FreshnessPolicy
from .hooks import ObservabilityHooks, SilentObservabilityHooks
from .key_builder import QueryKeyBuilder
from .metrics import CacheMetrics, CompositeMetrics, InMemoryMetrics
from .models import CacheEntry, CacheOutcome, CacheResponse, UpstreamResponse
from .profiles import CacheProfile
from .query import LookupQuery, normalize_query
from .revalidation import BackgroundScheduler, RevalidationCoordinator
from .serializer import Serializer
from .store import CacheStore, Clock, utc_now
from .upstream import HttpMetadataFetcher, MetadataFetcher

logger = logging.getLogger(__name__)


class CacheOrchestrator:
    """Serves lookups for one domain cache.

    Attributes:
        profile: Domain profile
        settings: Resolved cache settings
        stats: In-memory counters backing the stats route
    """

    def __init__(
        self,
        profile: CacheProfile,
        settings: CacheSettings,
        store: CacheStore,
        fetcher: MetadataFetcher,
        coordinator: RevalidationCoordinator,
        metrics: CacheMetrics,
        stats: InMemoryMetrics,
        hooks: ObservabilityHooks | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.profile = profile
        self.settings = settings
        self.stats = stats
        self._store = store
        self._fetcher = fetcher
        self._coordinator = coordinator
        self._metrics = metrics
        self._hooks = hooks or SilentObservabilityHooks()
        self._clock = clock
        self._key_builder = QueryKeyBuilder(profile.key_fields)
        self._policy = FreshnessPolicy(settings.fresh_ttl_seconds, settings.stale_ttl_seconds)

    @property
    def name(self) -> str:
        return self.profile.name

    @property
    def store(self) -> CacheStore:
        return self._store

    @property
    def fetcher(self) -> MetadataFetcher:
        return self._fetcher

    @property
    def coordinator(self) -> RevalidationCoordinator:
        return self._coordinator

    @property
    def key_builder(self) -> QueryKeyBuilder:
        return self._key_builder

    def build_key(self, query: LookupQuery) -> str:
        return self._key_builder.build_key(query)

    async def lookup(self, params: Mapping[str, Any]) -> CacheResponse:
        """Answer a lookup from the cache or the upstream.

        Args:
            params: Raw request parameters

        Returns:
            Response tagged with the cache decision

        Raises:
            UpstreamUnavailableError: If the upstream is not configured
            UpstreamTransportError: If the upstream request failed
        """
        started = time.perf_counter()
        query = normalize_query(params)
        key = self._key_builder.build_key(query)

        if len(query.query) < self.settings.min_query_length:
            self._decide(CacheOutcome.BYPASS, key, query, started, reason="short_query")
            upstream = await self._fetch(key, query)
            return self._pass_through(upstream, CacheOutcome.BYPASS)

        try:
            entry = await self._store.read(key)
        except StoreReadError as e:
            logger.warning(f"[{self.name}] cache read failed, bypassing cache: {e}")
            self._metrics.record_read_error(key, e)
            self._hooks.on_error(self.name, key, e)
            self._decide(CacheOutcome.BYPASS, key, query, started, reason="read_error")
            upstream = await self._fetch(key, query)
            return self._pass_through(upstream, CacheOutcome.BYPASS)

        if entry is not None and not self.profile.is_cacheable(entry.payload, query):
            logger.debug(f"[{self.name}] dropping stored entry that is no longer cacheable: {key}")
            await self._store.delete(key)
            entry = None

        if entry is not None:
            response = self._serve_cached(entry, key, query, started)
            if response is not None:
                return response

        self._decide(CacheOutcome.MISS, key, query, started)
        upstream = await self._fetch(key, query)
        payload = upstream.json_or_none() if upstream.is_success else None
        if payload is not None and self.profile.is_cacheable(payload, query):
            await self._store.write(key, payload, query)
        return self._pass_through(upstream, CacheOutcome.MISS)

    def _serve_cached(
        self, entry: CacheEntry, key: str, query: LookupQuery, started: float
    ) -> CacheResponse | None:
        """Serve a fresh or stale entry; None when it must be refetched."""
        result = self._policy.classify(entry.updated_at, self._clock())

        if result.state is Freshness.FRESH:
            self._decide(CacheOutcome.HIT_FRESH, key, query, started, age_seconds=result.age_seconds)
            return self._cached_response(entry.payload, CacheOutcome.HIT_FRESH)

        if result.state is Freshness.STALE and self.settings.enable_stale_while_revalidate:
            # Scheduling is synchronous; no await between check and insert
            scheduled = self._coordinator.schedule_revalidation(key, query)
            revalidate = REVALIDATE_SCHEDULED if scheduled else REVALIDATE_SKIPPED
            self._decide(
                CacheOutcome.HIT_STALE, key, query, started, age_seconds=result.age_seconds, revalidate=revalidate
            )
            return self._cached_response(entry.payload, CacheOutcome.HIT_STALE, revalidate)

        return None

    async def _fetch(self, key: str, query: LookupQuery) -> UpstreamResponse:
        try:
            return await self._fetcher.fetch(query)
        except UpstreamError as e:
            self._metrics.record_upstream_error(key, e)
            self._hooks.on_error(self.name, key, e)
            raise

    def _decide(
        self, outcome: CacheOutcome, key: str, query: LookupQuery, started: float, **detail: Any
    ) -> None:
        latency = time.perf_counter() - started
        if outcome is CacheOutcome.HIT_FRESH:
            self._metrics.record_hit(key, latency)
        elif outcome is CacheOutcome.HIT_STALE:
            self._metrics.record_hit(key, latency, stale=True)
        elif outcome is CacheOutcome.MISS:
            self._metrics.record_miss(key, latency)
        else:
            self._metrics.record_bypass(key, latency)
        self._hooks.on_decision(self.name, outcome, query, latency, detail)

    def _cached_response(
        self, payload: Any, outcome: CacheOutcome, revalidate: str | None = None
    ) -> CacheResponse:
        headers = {
            "content-type": "application/json",
            self.profile.cache_header: outcome.value,
        }
        if revalidate is not None:
            headers[self.profile.revalidate_header] = revalidate
        body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        return CacheResponse(
            status_code=200, headers=headers, body=body, outcome=outcome, revalidate=revalidate
        )

    def _pass_through(self, upstream: UpstreamResponse, outcome: CacheOutcome) -> CacheResponse:
        headers = dict(upstream.headers)
        headers[self.profile.cache_header] = outcome.value
        return CacheResponse(
            status_code=upstream.status_code, headers=headers, body=upstream.body, outcome=outcome
        )

    async def drain(self) -> None:
        """Wait for pending background refreshes, when the scheduler supports it."""
        drain = getattr(self._coordinator.scheduler, "drain", None)
        if drain is not None:
            await drain()

    async def aclose(self) -> None:
        """Drain background work and release the fetcher and backend."""
        await self.drain()
        for resource in (self._fetcher, self._store.backend):
            close = getattr(resource, "aclose", None)
            if close is not None:
                await close()


def create_cache_orchestrator(
    profile: CacheProfile,
    settings: CacheSettings | None = None,
    backend: StateBackend | None = None,
    fetcher: MetadataFetcher | None = None,
    scheduler: BackgroundScheduler | None = None,
    serializer: Serializer | None = None,
    exporters: list[CacheMetrics] | None = None,
    hooks: ObservabilityHooks | None = None,
    clock: Clock = utc_now,
) -> CacheOrchestrator:
    """Wire up a domain cache.

    Missing collaborators get defaults: settings from the environment, an
    in-memory backend, an HTTP fetcher built from the settings and an
    asyncio scheduler.

    Args:
        profile: Domain profile
        settings: Cache settings (resolved from env when None)
        backend: Key/value backend
        fetcher: Upstream fetcher
        scheduler: Background scheduler for revalidation
        serializer: Row serializer (MsgPack when None)
        exporters: Extra metrics collectors, e.g. ``OpenTelemetryMetrics``
        hooks: Observability hooks
        clock: Time source

    Returns:
        Ready-to-use orchestrator
    """
    settings = settings or CacheSettings.from_env(profile)
    stats = InMemoryMetrics()
    metrics: CacheMetrics = CompositeMetrics([stats, *exporters]) if exporters else stats

    if fetcher is None:
        fetcher = HttpMetadataFetcher(
            label=profile.label,
            base_url=settings.upstream_base_url,
            path=profile.upstream_path,
            token_file=settings.upstream_token_file,
            timeout=settings.upstream_timeout_seconds,
            max_response_bytes=settings.max_response_bytes,
            param_fields=profile.key_fields,
        )

    store = CacheStore(
        backend if backend is not None else InMemoryStateBackend(settings.store_name),
        serializer=serializer,
        metrics=metrics,
        clock=clock,
        ttl_seconds=settings.stale_ttl_seconds,
    )
    coordinator = RevalidationCoordinator(
        store,
        fetcher,
        profile.is_cacheable,
        scheduler=scheduler,
        metrics=metrics,
        hooks=hooks,
        cache_name=profile.name,
    )
    return CacheOrchestrator(
        profile,
        settings,
        store,
        fetcher,
        coordinator,
        metrics=metrics,
        stats=stats,
        hooks=hooks,
        clock=clock,
    )
