"""
HTTP boundary for the metadata caches.

Each domain cache is exposed as a FastAPI GET route. Upstream
unavailability maps to 503 and transport failures to 502; everything else
is returned as produced by the orchestrator, diagnostic headers included.
"""

import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import APIRouter, FastAPI, Request, Response
from fastapi.responses import JSONResponse

from . import __version__
from .backend import DaprStateBackend
from .config import CacheSettings
from .constants import ERROR_UPSTREAM_REQUEST_FAILED
from .exceptions import UpstreamTransportError, UpstreamUnavailableError
from .hooks import hooks_from_env
from .metrics import OpenTelemetryMetrics
from .orchestrator import CacheOrchestrator, create_cache_orchestrator
from .profiles import PROFILES

logger = logging.getLogger(__name__)


def create_lookup_router(cache: CacheOrchestrator) -> APIRouter:
    """Router serving ``cache.profile.route``."""
    router = APIRouter(tags=[cache.profile.label])

    @router.get(cache.profile.route)
    async def lookup(request: Request) -> Response:
        try:
            result = await cache.lookup(request.query_params)
        except UpstreamUnavailableError as e:
            return JSONResponse(status_code=503, content={"error": str(e)})
        except UpstreamTransportError as e:
            return JSONResponse(
                status_code=502, content={"error": ERROR_UPSTREAM_REQUEST_FAILED.format(label=e.label)}
            )
        return Response(content=result.body, status_code=result.status_code, headers=result.headers)

    return router


def create_stats_router(caches: Sequence[CacheOrchestrator]) -> APIRouter:
    """Router exposing ``GET /v1/cache/stats`` for all caches."""
    router = APIRouter(tags=["Cache"])

    @router.get("/v1/cache/stats")
    async def cache_stats() -> dict:
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "metrics": {cache.name: cache.stats.get_stats().as_counters() for cache in caches},
            "revalidations": {cache.name: cache.coordinator.in_flight_count for cache in caches},
        }

    return router


def create_app(caches: Sequence[CacheOrchestrator]) -> FastAPI:
    """Build the FastAPI application for the given caches.

    Pending revalidations are drained and clients closed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        logger.info("Serving metadata caches: %s", ", ".join(cache.name for cache in caches))
        yield
        for cache in caches:
            await cache.aclose()

    app = FastAPI(
        title="metadata-cache",
        description="Stale-while-revalidate cache for game metadata lookups",
        version=__version__,
        lifespan=lifespan,
    )
    for cache in caches:
        app.include_router(create_lookup_router(cache))
    app.include_router(create_stats_router(caches))
    return app


def create_app_from_env() -> FastAPI:
    """Production app: Dapr-backed caches configured from the environment.

    Example:
        ```
        uvicorn --factory metadata_cache.api:create_app_from_env
        ```
    """
    hooks = hooks_from_env()
    caches = []
    for profile in PROFILES.values():
        settings = CacheSettings.from_env(profile)
        caches.append(
            create_cache_orchestrator(
                profile,
                settings=settings,
                backend=DaprStateBackend(settings.store_name),
                exporters=[OpenTelemetryMetrics(cache_name=profile.name)],
                hooks=hooks,
            )
        )
    return create_app(caches)
