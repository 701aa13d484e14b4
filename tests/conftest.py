"""Shared fixtures and fakes for the metadata cache tests."""

import json
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from metadata_cache.backend import InMemoryStateBackend
from metadata_cache.config import CacheSettings
from metadata_cache.exceptions import CacheConnectionError
from metadata_cache.models import UpstreamResponse
from metadata_cache.orchestrator import CacheOrchestrator, create_cache_orchestrator
from metadata_cache.profiles import CacheProfile
from metadata_cache.query import LookupQuery
from metadata_cache.revalidation import BackgroundTask


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class ScriptedFetcher:
    """Upstream fetcher returning a configurable response and recording calls."""

    label = "HLTB"

    def __init__(self) -> None:
        self.calls: list[LookupQuery] = []
        self._next: UpstreamResponse | Exception = UpstreamResponse(200, {}, b"{}")

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def respond_json(self, payload: Any, status_code: int = 200) -> None:
        self._next = UpstreamResponse(
            status_code, {"content-type": "application/json"}, json.dumps(payload).encode("utf-8")
        )

    def respond_body(self, body: bytes, status_code: int = 200) -> None:
        self._next = UpstreamResponse(status_code, {"content-type": "text/plain"}, body)

    def fail_with(self, error: Exception) -> None:
        self._next = error

    async def fetch(self, query: LookupQuery) -> UpstreamResponse:
        self.calls.append(query)
        if isinstance(self._next, Exception):
            raise self._next
        return self._next


class ManualScheduler:
    """Captures background tasks so tests decide when they run."""

    def __init__(self) -> None:
        self.tasks: list[BackgroundTask] = []

    def schedule(self, task: BackgroundTask) -> None:
        self.tasks.append(task)

    async def run_all(self) -> None:
        while self.tasks:
            task = self.tasks.pop(0)
            await task()


class FailingBackend(InMemoryStateBackend):
    """Backend whose reads always fail; writes are recorded."""

    def __init__(self) -> None:
        super().__init__("failing")
        self.set_calls = 0

    async def get(self, key: str) -> bytes | None:
        raise CacheConnectionError("state store unreachable", key=key)

    async def set(self, key: str, value: bytes, ttl_seconds: int | None = None) -> bool:
        self.set_calls += 1
        return await super().set(key, value, ttl_seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fetcher() -> ScriptedFetcher:
    return ScriptedFetcher()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def backend() -> InMemoryStateBackend:
    return InMemoryStateBackend("test-cache")


@pytest.fixture
def profile() -> CacheProfile:
    """Profile using the generic primary-result predicate."""
    return CacheProfile(
        name="hltb",
        label="HLTB",
        env_prefix="TEST",
        route="/v1/hltb/search",
        upstream_path="/v1/hltb/search",
        header_prefix="GameShelf-HLTB",
        store_name="test-cache",
    )


@pytest.fixture
def make_cache(
    profile: CacheProfile,
    backend: InMemoryStateBackend,
    fetcher: ScriptedFetcher,
    scheduler: ManualScheduler,
    clock: FakeClock,
) -> Callable[..., CacheOrchestrator]:
    """Factory building an orchestrator wired to the shared fakes."""

    def _make(**overrides: Any) -> CacheOrchestrator:
        cache_backend = overrides.pop("backend", backend)
        cache_profile = overrides.pop("profile", profile)
        settings = CacheSettings(store_name="test-cache", **overrides)
        return create_cache_orchestrator(
            cache_profile,
            settings=settings,
            backend=cache_backend,
            fetcher=fetcher,
            scheduler=scheduler,
            clock=clock,
        )

    return _make


@pytest.fixture
def failing_backend() -> FailingBackend:
    return FailingBackend()
