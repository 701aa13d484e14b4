"""
Unit tests for observability hooks.
"""

import logging
from unittest.mock import Mock, patch

import pytest

from metadata_cache.hooks import (
    CompositeObservabilityHooks,
    DefaultObservabilityHooks,
    SilentObservabilityHooks,
    hooks_from_env,
)
from metadata_cache.metrics import RevalidationEvent
from metadata_cache.models import CacheOutcome
from metadata_cache.query import LookupQuery

QUERY = LookupQuery(query="okami", release_year=2006, platform="wii")


class TestDefaultObservabilityHooks:
    """Test DefaultObservabilityHooks."""

    def test_decision_is_logged_at_configured_level(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test decision log records."""
        # Arrange
        hooks = DefaultObservabilityHooks(log_level=logging.INFO)

        # Act
        with caplog.at_level(logging.INFO, logger="metadata_cache.hooks"):
            hooks.on_decision("hltb", CacheOutcome.HIT_STALE, QUERY, 0.002, {"revalidate": "scheduled"})

        # Assert
        assert len(caplog.records) == 1
        record = caplog.records[0]
        assert record.levelno == logging.INFO
        assert "HIT_STALE" in record.getMessage()
        assert "q='okami'" in record.getMessage()

    def test_revalidation_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test revalidation log records."""
        with caplog.at_level(logging.DEBUG, logger="metadata_cache.hooks"):
            DefaultObservabilityHooks().on_revalidation("hltb", "k", RevalidationEvent.SKIPPED)

        assert "revalidation skipped" in caplog.records[0].getMessage()

    def test_errors_are_warnings(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test errors always log at WARNING."""
        with caplog.at_level(logging.DEBUG, logger="metadata_cache.hooks"):
            DefaultObservabilityHooks().on_error("hltb", "k", ValueError("boom"))

        assert caplog.records[0].levelno == logging.WARNING
        assert "ValueError" in caplog.records[0].getMessage()


class TestSilentObservabilityHooks:
    """Test SilentObservabilityHooks."""

    def test_logs_nothing(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test silence."""
        hooks = SilentObservabilityHooks()

        with caplog.at_level(logging.DEBUG):
            hooks.on_decision("hltb", CacheOutcome.MISS, QUERY, 0.1, {})
            hooks.on_revalidation("hltb", "k", RevalidationEvent.FAILED)
            hooks.on_error("hltb", "k", Exception("x"))

        assert caplog.records == []


class TestCompositeObservabilityHooks:
    """Test CompositeObservabilityHooks."""

    def test_delegates_to_all_hooks(self) -> None:
        """Test delegation."""
        first, second = Mock(), Mock()
        hooks = CompositeObservabilityHooks([first, second])

        hooks.on_decision("hltb", CacheOutcome.MISS, QUERY, 0.1, {})

        first.on_decision.assert_called_once_with("hltb", CacheOutcome.MISS, QUERY, 0.1, {})
        second.on_decision.assert_called_once()

    def test_hook_errors_are_contained(self) -> None:
        """Test a failing hook does not stop the others."""
        broken, healthy = Mock(), Mock()
        broken.on_error.side_effect = RuntimeError("hook failure")
        hooks = CompositeObservabilityHooks([broken, healthy])

        hooks.on_error("hltb", "k", ValueError("x"))

        healthy.on_error.assert_called_once()


class TestHooksFromEnv:
    """Test hooks_from_env."""

    def test_debug_http_logs_enables_decision_logging(self) -> None:
        """Test DEBUG_HTTP_LOGS=true selects logging hooks."""
        with patch.dict("os.environ", {"DEBUG_HTTP_LOGS": "true"}):
            hooks = hooks_from_env()

        assert isinstance(hooks, DefaultObservabilityHooks)

    def test_default_is_silent(self) -> None:
        """Test hooks are silent without the flag."""
        with patch.dict("os.environ", {}, clear=True):
            assert isinstance(hooks_from_env(), SilentObservabilityHooks)
