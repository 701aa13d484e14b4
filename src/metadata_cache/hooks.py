"""
Observability hooks for cache decisions.

Hooks receive one call per lookup decision and per revalidation event.
``DefaultObservabilityHooks`` logs them; ``SilentObservabilityHooks`` is
the default when decision logging is off.
"""

import logging
import os
from typing import Any, Protocol

from .constants import TRUTHY_FLAG_VALUES
from .metrics import RevalidationEvent
from .models import CacheOutcome
from .query import LookupQuery

logger = logging.getLogger(__name__)


class ObservabilityHooks(Protocol):
    """Protocol for cache decision observers."""

    def on_decision(
        self,
        cache_name: str,
        outcome: CacheOutcome,
        query: LookupQuery,
        latency: float,
        detail: dict[str, Any],
    ) -> None:
        """Called once per lookup with the final cache decision."""
        ...

    def on_revalidation(self, cache_name: str, key: str, event: RevalidationEvent) -> None:
        """Called for every revalidation lifecycle event."""
        ...

    def on_error(self, cache_name: str, key: str, error: Exception) -> None:
        """Called when a store or upstream operation fails."""
        ...


class DefaultObservabilityHooks:
    """Logs cache decisions at a configurable level.

    Errors are always logged at WARNING.
    """

    def __init__(self, log_level: int = logging.DEBUG) -> None:
        self._log_level = log_level

    def on_decision(
        self,
        cache_name: str,
        outcome: CacheOutcome,
        query: LookupQuery,
        latency: float,
        detail: dict[str, Any],
    ) -> None:
        logger.log(
            self._log_level,
            "[%s] cache %s for q='%s' year=%s platform=%s (latency: %.3fms) %s",
            cache_name,
            outcome.value,
            query.query,
            query.release_year,
            query.platform,
            latency * 1000,
            detail,
        )

    def on_revalidation(self, cache_name: str, key: str, event: RevalidationEvent) -> None:
        logger.log(self._log_level, "[%s] revalidation %s for key '%s'", cache_name, event.value, key)

    def on_error(self, cache_name: str, key: str, error: Exception) -> None:
        logger.warning("[%s] cache error for key '%s': %s (%s)", cache_name, key, error, type(error).__name__)


class SilentObservabilityHooks:
    """Hooks that do nothing."""

    def on_decision(
        self,
        cache_name: str,
        outcome: CacheOutcome,
        query: LookupQuery,
        latency: float,
        detail: dict[str, Any],
    ) -> None:
        pass

    def on_revalidation(self, cache_name: str, key: str, event: RevalidationEvent) -> None:
        pass

    def on_error(self, cache_name: str, key: str, error: Exception) -> None:
        pass


class CompositeObservabilityHooks:
    """Delegates to several hook implementations.

    Example:
        hooks = CompositeObservabilityHooks([
            DefaultObservabilityHooks(),
            MyTracingHooks(),
        ])
    """

    def __init__(self, hooks: list[ObservabilityHooks]) -> None:
        self._hooks = hooks

    def on_decision(
        self,
        cache_name: str,
        outcome: CacheOutcome,
        query: LookupQuery,
        latency: float,
        detail: dict[str, Any],
    ) -> None:
        for hook in self._hooks:
            try:
                hook.on_decision(cache_name, outcome, query, latency, detail)
            except Exception as e:
                logger.warning("Hook error in on_decision for cache '%s': %s", cache_name, e)

    def on_revalidation(self, cache_name: str, key: str, event: RevalidationEvent) -> None:
        for hook in self._hooks:
            try:
                hook.on_revalidation(cache_name, key, event)
            except Exception as e:
                logger.warning("Hook error in on_revalidation for key '%s': %s", key, e)

    def on_error(self, cache_name: str, key: str, error: Exception) -> None:
        for hook in self._hooks:
            try:
                hook.on_error(cache_name, key, error)
            except Exception as e:
                logger.warning("Hook error in on_error for key '%s': %s", key, e)


def hooks_from_env() -> ObservabilityHooks:
    """Pick hooks from ``DEBUG_HTTP_LOGS``.

    Decision logs go out at INFO when the variable is truthy.
    """
    if os.getenv("DEBUG_HTTP_LOGS", "").strip().lower() in TRUTHY_FLAG_VALUES:
        return DefaultObservabilityHooks(log_level=logging.INFO)
    return SilentObservabilityHooks()
