"""
metadata-cache - Stale-while-revalidate cache for game metadata lookups.

Fronts slow or rate-limited metadata scrapers (completion times, critic
scores, box-art search) with a shared cache engine parameterized per domain.

Example:
    ```python
    from metadata_cache import HLTB, create_cache_orchestrator, CacheSettings

    cache = create_cache_orchestrator(
        HLTB,
        settings=CacheSettings(
            store_name="hltb-search-cache",
            upstream_base_url="http://hltb-scraper:8080",
        ),
    )

    response = await cache.lookup({"q": "Okami", "releaseYear": "2006"})
    print(response.outcome, response.json())
    ```
"""

__version__ = "0.1.0"

# Backends
from .backend import DaprStateBackend, InMemoryStateBackend, StateBackend

# Configuration
from .config import CacheSettings

# Exceptions
from .exceptions import (
    CacheConnectionError,
    CacheError,
    CacheKeyError,
    CacheSerializationError,
    StoreReadError,
    StoreWriteError,
    UpstreamError,
    UpstreamTransportError,
    UpstreamUnavailableError,
)

# Core
from .freshness import Freshness, FreshnessPolicy, FreshnessResult
from .hooks import (
    CompositeObservabilityHooks,
    DefaultObservabilityHooks,
    ObservabilityHooks,
    SilentObservabilityHooks,
)
from .key_builder import QueryKeyBuilder

# Metrics
from .metrics import (
    CacheMetrics,
    CacheStats,
    CompositeMetrics,
    InMemoryMetrics,
    NoOpMetrics,
    OpenTelemetryMetrics,
    RevalidationEvent,
)
from .models import CacheEntry, CacheOutcome, CacheResponse, UpstreamResponse
from .orchestrator import CacheOrchestrator, create_cache_orchestrator
from .profiles import BOXART, HLTB, METACRITIC, PROFILES, CacheProfile
from .query import LookupQuery, normalize_query
from .revalidation import AsyncioScheduler, BackgroundScheduler, RevalidationCoordinator
from .serializer import JsonSerializer, MsgPackSerializer, Serializer
from .store import CacheStore
from .upstream import HttpMetadataFetcher, MetadataFetcher
from .validators import ValidationError

__all__ = [
    # Version
    "__version__",
    # Orchestration
    "CacheOrchestrator",
    "create_cache_orchestrator",
    "RevalidationCoordinator",
    "AsyncioScheduler",
    "BackgroundScheduler",
    # Profiles & config
    "CacheProfile",
    "HLTB",
    "METACRITIC",
    "BOXART",
    "PROFILES",
    "CacheSettings",
    "ValidationError",
    # Query & keys
    "LookupQuery",
    "normalize_query",
    "QueryKeyBuilder",
    "Freshness",
    "FreshnessPolicy",
    "FreshnessResult",
    # Storage
    "CacheStore",
    "StateBackend",
    "DaprStateBackend",
    "InMemoryStateBackend",
    "Serializer",
    "MsgPackSerializer",
    "JsonSerializer",
    # Upstream
    "MetadataFetcher",
    "HttpMetadataFetcher",
    # Models
    "CacheEntry",
    "CacheOutcome",
    "CacheResponse",
    "UpstreamResponse",
    # Metrics & hooks
    "CacheMetrics",
    "CacheStats",
    "CompositeMetrics",
    "InMemoryMetrics",
    "NoOpMetrics",
    "OpenTelemetryMetrics",
    "RevalidationEvent",
    "ObservabilityHooks",
    "DefaultObservabilityHooks",
    "SilentObservabilityHooks",
    "CompositeObservabilityHooks",
    # Exceptions
    "CacheError",
    "CacheConnectionError",
    "CacheSerializationError",
    "CacheKeyError",
    "StoreReadError",
    "StoreWriteError",
    "UpstreamError",
    "UpstreamUnavailableError",
    "UpstreamTransportError",
]
