"""Cache metrics: in-memory counters and OpenTelemetry export."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from threading import Lock
from typing import Any, Protocol

from opentelemetry import metrics as otel_metrics

logger = logging.getLogger(__name__)


class RevalidationEvent(str, Enum):
    """Lifecycle events of a background revalidation."""

    SCHEDULED = "scheduled"
    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class CacheMetrics(Protocol):
    """Protocol for metrics collectors."""

    def record_hit(self, key: str, latency: float, stale: bool = False) -> None:
        """Record a cache hit (``stale`` for entries served past the fresh TTL)."""
        ...

    def record_miss(self, key: str, latency: float) -> None:
        """Record a cache miss."""
        ...

    def record_bypass(self, key: str, latency: float) -> None:
        """Record a request that skipped the cache."""
        ...

    def record_write(self, key: str, size: int) -> None:
        """Record a successful write."""
        ...

    def record_read_error(self, key: str, error: Exception) -> None:
        """Record a failed store read."""
        ...

    def record_write_error(self, key: str, error: Exception) -> None:
        """Record a failed store write or delete."""
        ...

    def record_upstream_error(self, key: str, error: Exception) -> None:
        """Record a failed upstream fetch."""
        ...

    def record_revalidation(self, key: str, event: RevalidationEvent) -> None:
        """Record a revalidation lifecycle event."""
        ...


class NoOpMetrics:
    """Metrics collector that does nothing."""

    def record_hit(self, key: str, latency: float, stale: bool = False) -> None:
        pass

    def record_miss(self, key: str, latency: float) -> None:
        pass

    def record_bypass(self, key: str, latency: float) -> None:
        pass

    def record_write(self, key: str, size: int) -> None:
        pass

    def record_read_error(self, key: str, error: Exception) -> None:
        pass

    def record_write_error(self, key: str, error: Exception) -> None:
        pass

    def record_upstream_error(self, key: str, error: Exception) -> None:
        pass

    def record_revalidation(self, key: str, event: RevalidationEvent) -> None:
        pass


@dataclass
class CacheStats:
    """Snapshot of a cache's counters.

    ``hits``, ``misses`` and ``bypasses`` are mutually exclusive: each
    lookup increments exactly one of them.
    """

    hits: int = 0
    misses: int = 0
    bypasses: int = 0
    writes: int = 0
    read_errors: int = 0
    write_errors: int = 0
    upstream_errors: int = 0
    stale_served: int = 0
    revalidate_scheduled: int = 0
    revalidate_skipped: int = 0
    revalidate_succeeded: int = 0
    revalidate_failed: int = 0
    hit_latencies: list[float] = field(default_factory=list)
    miss_latencies: list[float] = field(default_factory=list)

    @property
    def total_requests(self) -> int:
        return self.hits + self.misses + self.bypasses

    @property
    def hit_ratio(self) -> float:
        total = self.total_requests
        return self.hits / total if total > 0 else 0.0

    @property
    def avg_hit_latency_ms(self) -> float:
        if not self.hit_latencies:
            return 0.0
        return sum(self.hit_latencies) / len(self.hit_latencies) * 1000

    @property
    def avg_miss_latency_ms(self) -> float:
        if not self.miss_latencies:
            return 0.0
        return sum(self.miss_latencies) / len(self.miss_latencies) * 1000

    def as_counters(self) -> dict[str, Any]:
        """Counters and derived ratios, without raw latency samples."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "bypasses": self.bypasses,
            "writes": self.writes,
            "readErrors": self.read_errors,
            "writeErrors": self.write_errors,
            "upstreamErrors": self.upstream_errors,
            "staleServed": self.stale_served,
            "revalidateScheduled": self.revalidate_scheduled,
            "revalidateSkipped": self.revalidate_skipped,
            "revalidateSucceeded": self.revalidate_succeeded,
            "revalidateFailed": self.revalidate_failed,
            "hitRatio": round(self.hit_ratio, 4),
            "avgHitLatencyMs": round(self.avg_hit_latency_ms, 3),
            "avgMissLatencyMs": round(self.avg_miss_latency_ms, 3),
        }


_REVALIDATION_FIELDS = {
    RevalidationEvent.SCHEDULED: "revalidate_scheduled",
    RevalidationEvent.SKIPPED: "revalidate_skipped",
    RevalidationEvent.SUCCEEDED: "revalidate_succeeded",
    RevalidationEvent.FAILED: "revalidate_failed",
}


class InMemoryMetrics:
    """Thread-safe in-memory counters.

    Backs the ``/v1/cache/stats`` route and is handy in tests.

    Attributes:
        max_samples: Maximum number of latency samples kept
    """

    def __init__(self, max_samples: int = 1000) -> None:
        self._max_samples = max_samples
        self._lock = Lock()
        self._stats = CacheStats()

    def record_hit(self, key: str, latency: float, stale: bool = False) -> None:
        with self._lock:
            self._stats.hits += 1
            if stale:
                self._stats.stale_served += 1
            self._stats.hit_latencies.append(latency)
            self._trim_samples(self._stats.hit_latencies)

    def record_miss(self, key: str, latency: float) -> None:
        with self._lock:
            self._stats.misses += 1
            self._stats.miss_latencies.append(latency)
            self._trim_samples(self._stats.miss_latencies)

    def record_bypass(self, key: str, latency: float) -> None:
        with self._lock:
            self._stats.bypasses += 1

    def record_write(self, key: str, size: int) -> None:
        with self._lock:
            self._stats.writes += 1

    def record_read_error(self, key: str, error: Exception) -> None:
        with self._lock:
            self._stats.read_errors += 1

    def record_write_error(self, key: str, error: Exception) -> None:
        with self._lock:
            self._stats.write_errors += 1

    def record_upstream_error(self, key: str, error: Exception) -> None:
        with self._lock:
            self._stats.upstream_errors += 1

    def record_revalidation(self, key: str, event: RevalidationEvent) -> None:
        name = _REVALIDATION_FIELDS[event]
        with self._lock:
            setattr(self._stats, name, getattr(self._stats, name) + 1)

    def _trim_samples(self, samples: list[float]) -> None:
        if len(samples) > self._max_samples:
            del samples[: len(samples) - self._max_samples]

    def get_stats(self) -> CacheStats:
        """Return a copy of the current counters."""
        with self._lock:
            stats = self._stats
            return CacheStats(
                hits=stats.hits,
                misses=stats.misses,
                bypasses=stats.bypasses,
                writes=stats.writes,
                read_errors=stats.read_errors,
                write_errors=stats.write_errors,
                upstream_errors=stats.upstream_errors,
                stale_served=stats.stale_served,
                revalidate_scheduled=stats.revalidate_scheduled,
                revalidate_skipped=stats.revalidate_skipped,
                revalidate_succeeded=stats.revalidate_succeeded,
                revalidate_failed=stats.revalidate_failed,
                hit_latencies=stats.hit_latencies.copy(),
                miss_latencies=stats.miss_latencies.copy(),
            )

    def reset(self) -> None:
        """Reset all counters."""
        with self._lock:
            self._stats = CacheStats()


class OpenTelemetryMetrics:
    """Metrics collector exporting through OpenTelemetry.

    Every instrument carries a ``cache`` attribute so several caches can
    share one meter. Exported instruments:
    - metadata_cache.hits / misses / bypasses / writes (counters)
    - metadata_cache.errors (counter, ``stage`` = read, write or upstream)
    - metadata_cache.stale_served (counter)
    - metadata_cache.revalidations (counter, ``event`` attribute)
    - metadata_cache.latency (histogram, seconds)

    Example:
        ```python
        from opentelemetry import metrics
        from opentelemetry.sdk.metrics import MeterProvider

        metrics.set_meter_provider(MeterProvider())
        hltb_metrics = OpenTelemetryMetrics(cache_name="hltb")
        ```
    """

    def __init__(self, cache_name: str, meter_name: str = "metadata_cache") -> None:
        """Initialize OpenTelemetry instruments.

        Args:
            cache_name: Value of the ``cache`` attribute
            meter_name: Meter grouping the instruments
        """
        self._attributes = {"cache": cache_name}
        meter = otel_metrics.get_meter(meter_name)

        self._hits_counter = meter.create_counter(
            "metadata_cache.hits", description="Number of cache hits", unit="1"
        )
        self._misses_counter = meter.create_counter(
            "metadata_cache.misses", description="Number of cache misses", unit="1"
        )
        self._bypasses_counter = meter.create_counter(
            "metadata_cache.bypasses", description="Number of requests that skipped the cache", unit="1"
        )
        self._writes_counter = meter.create_counter(
            "metadata_cache.writes", description="Number of cache writes", unit="1"
        )
        self._errors_counter = meter.create_counter(
            "metadata_cache.errors", description="Number of cache and upstream errors", unit="1"
        )
        self._stale_counter = meter.create_counter(
            "metadata_cache.stale_served", description="Number of stale entries served", unit="1"
        )
        self._revalidations_counter = meter.create_counter(
            "metadata_cache.revalidations", description="Background revalidation events", unit="1"
        )
        self._latency_histogram = meter.create_histogram(
            "metadata_cache.latency", description="Lookup latency", unit="s"
        )

    def _with(self, **extra: str) -> dict[str, str]:
        return {**self._attributes, **extra}

    def record_hit(self, key: str, latency: float, stale: bool = False) -> None:
        self._hits_counter.add(1, self._attributes)
        if stale:
            self._stale_counter.add(1, self._attributes)
        self._latency_histogram.record(latency, self._with(operation="hit"))

    def record_miss(self, key: str, latency: float) -> None:
        self._misses_counter.add(1, self._attributes)
        self._latency_histogram.record(latency, self._with(operation="miss"))

    def record_bypass(self, key: str, latency: float) -> None:
        self._bypasses_counter.add(1, self._attributes)
        self._latency_histogram.record(latency, self._with(operation="bypass"))

    def record_write(self, key: str, size: int) -> None:
        self._writes_counter.add(1, self._attributes)

    def record_read_error(self, key: str, error: Exception) -> None:
        self._errors_counter.add(1, self._with(stage="read", error_type=type(error).__name__))

    def record_write_error(self, key: str, error: Exception) -> None:
        self._errors_counter.add(1, self._with(stage="write", error_type=type(error).__name__))

    def record_upstream_error(self, key: str, error: Exception) -> None:
        self._errors_counter.add(1, self._with(stage="upstream", error_type=type(error).__name__))

    def record_revalidation(self, key: str, event: RevalidationEvent) -> None:
        self._revalidations_counter.add(1, self._with(event=event.value))


class CompositeMetrics:
    """Fans every record call out to several collectors.

    A failing collector is logged and never breaks the lookup.
    """

    def __init__(self, collectors: list[CacheMetrics]) -> None:
        self._collectors = collectors

    def _dispatch(self, method: str, key: str, *args: Any) -> None:
        for collector in self._collectors:
            try:
                getattr(collector, method)(key, *args)
            except Exception as e:
                logger.warning("Metrics error in %s for key '%s': %s", method, key, e)

    def record_hit(self, key: str, latency: float, stale: bool = False) -> None:
        self._dispatch("record_hit", key, latency, stale)

    def record_miss(self, key: str, latency: float) -> None:
        self._dispatch("record_miss", key, latency)

    def record_bypass(self, key: str, latency: float) -> None:
        self._dispatch("record_bypass", key, latency)

    def record_write(self, key: str, size: int) -> None:
        self._dispatch("record_write", key, size)

    def record_read_error(self, key: str, error: Exception) -> None:
        self._dispatch("record_read_error", key, error)

    def record_write_error(self, key: str, error: Exception) -> None:
        self._dispatch("record_write_error", key, error)

    def record_upstream_error(self, key: str, error: Exception) -> None:
        self._dispatch("record_upstream_error", key, error)

    def record_revalidation(self, key: str, event: RevalidationEvent) -> None:
        self._dispatch("record_revalidation", key, event)
