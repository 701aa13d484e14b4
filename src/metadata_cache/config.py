"""
Configuration for domain caches.

Settings resolve with the precedence:

1. Explicit value (highest precedence)
2. Environment variable
3. Default value (lowest precedence)

Environment values that cannot be parsed fall back to the default with a
warning; explicit values are validated strictly.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any

from .constants import (
    DEFAULT_FRESH_TTL_SECONDS,
    DEFAULT_MAX_RESPONSE_BYTES,
    DEFAULT_MIN_QUERY_LENGTH,
    DEFAULT_STALE_TTL_SECONDS,
    DEFAULT_UPSTREAM_TIMEOUT_SECONDS,
)
from .profiles import CacheProfile
from .upstream import default_token_path
from .validators import (
    validate_max_response_bytes,
    validate_min_query_length,
    validate_store_name,
    validate_timeout,
    validate_ttl_seconds,
)

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def read_positive_int_env(name: str, default: int) -> int:
    """Read a positive integer from the environment, falling back to ``default``."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        logger.warning(f"Ignoring {name}={raw!r}: not an integer")
        return default
    if value < 1:
        logger.warning(f"Ignoring {name}={raw!r}: must be positive")
        return default
    return value


def read_positive_float_env(name: str, default: float) -> float:
    """Read a positive number from the environment, falling back to ``default``."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw.strip())
    except ValueError:
        logger.warning(f"Ignoring {name}={raw!r}: not a number")
        return default
    if not value > 0:
        logger.warning(f"Ignoring {name}={raw!r}: must be positive")
        return default
    return value


def read_bool_env(name: str, default: bool) -> bool:
    """Read a boolean flag from the environment, falling back to ``default``."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    normalized = raw.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    logger.warning(f"Ignoring {name}={raw!r}: not a boolean")
    return default


@dataclass(frozen=True)
class CacheSettings:
    """Tunable settings of one domain cache.

    Attributes:
        store_name: Dapr state store holding the rows
        fresh_ttl_seconds: Age below which entries are served as fresh
        stale_ttl_seconds: Age below which entries may still be served stale
            (raised to ``fresh_ttl_seconds`` when configured lower)
        min_query_length: Shortest search term that takes part in caching
        enable_stale_while_revalidate: Serve stale entries and refresh in background
        upstream_base_url: Scraper base URL; None disables the upstream
        upstream_token_file: Secret file holding the scraper bearer token
        upstream_timeout_seconds: Upstream request timeout
        max_response_bytes: Largest accepted upstream body
    """

    store_name: str
    fresh_ttl_seconds: int = DEFAULT_FRESH_TTL_SECONDS
    stale_ttl_seconds: int = DEFAULT_STALE_TTL_SECONDS
    min_query_length: int = DEFAULT_MIN_QUERY_LENGTH
    enable_stale_while_revalidate: bool = True
    upstream_base_url: str | None = None
    upstream_token_file: str | None = None
    upstream_timeout_seconds: float = DEFAULT_UPSTREAM_TIMEOUT_SECONDS
    max_response_bytes: int = DEFAULT_MAX_RESPONSE_BYTES

    def __post_init__(self) -> None:
        validate_store_name(self.store_name)
        validate_ttl_seconds(self.fresh_ttl_seconds, "fresh_ttl_seconds")
        validate_ttl_seconds(self.stale_ttl_seconds, "stale_ttl_seconds")
        validate_min_query_length(self.min_query_length)
        validate_timeout(self.upstream_timeout_seconds)
        validate_max_response_bytes(self.max_response_bytes)
        if self.stale_ttl_seconds < self.fresh_ttl_seconds:
            object.__setattr__(self, "stale_ttl_seconds", self.fresh_ttl_seconds)

    @classmethod
    def from_env(cls, profile: CacheProfile, **explicit: Any) -> "CacheSettings":
        """Resolve settings for ``profile`` from explicit values, env vars and defaults.

        Environment variables use the profile's prefix ``P``:
        ``P_CACHE_STORE_NAME``, ``P_CACHE_FRESH_TTL_SECONDS``,
        ``P_CACHE_STALE_TTL_SECONDS``, ``P_CACHE_MIN_QUERY_LENGTH``,
        ``P_CACHE_SWR_ENABLED``, ``P_SCRAPER_BASE_URL``,
        ``P_SCRAPER_TOKEN_FILE``, ``P_SCRAPER_TIMEOUT_SECONDS`` and
        ``P_SCRAPER_MAX_RESPONSE_BYTES``.

        Args:
            profile: Domain profile
            **explicit: Field values overriding the environment (None is ignored)

        Returns:
            Resolved settings
        """
        prefix = profile.env_prefix
        resolved: dict[str, Any] = {
            "store_name": os.getenv(f"{prefix}_CACHE_STORE_NAME", "").strip() or profile.store_name,
            "fresh_ttl_seconds": read_positive_int_env(f"{prefix}_CACHE_FRESH_TTL_SECONDS", DEFAULT_FRESH_TTL_SECONDS),
            "stale_ttl_seconds": read_positive_int_env(f"{prefix}_CACHE_STALE_TTL_SECONDS", DEFAULT_STALE_TTL_SECONDS),
            "min_query_length": read_positive_int_env(f"{prefix}_CACHE_MIN_QUERY_LENGTH", DEFAULT_MIN_QUERY_LENGTH),
            "enable_stale_while_revalidate": read_bool_env(f"{prefix}_CACHE_SWR_ENABLED", True),
            "upstream_base_url": os.getenv(f"{prefix}_SCRAPER_BASE_URL", "").strip() or None,
            "upstream_token_file": os.getenv(f"{prefix}_SCRAPER_TOKEN_FILE", "").strip()
            or default_token_path(profile.name),
            "upstream_timeout_seconds": read_positive_float_env(
                f"{prefix}_SCRAPER_TIMEOUT_SECONDS", DEFAULT_UPSTREAM_TIMEOUT_SECONDS
            ),
            "max_response_bytes": read_positive_int_env(
                f"{prefix}_SCRAPER_MAX_RESPONSE_BYTES", DEFAULT_MAX_RESPONSE_BYTES
            ),
        }

        unknown = set(explicit).difference(resolved)
        if unknown:
            raise TypeError(f"Unknown settings: {sorted(unknown)}")
        resolved.update({name: value for name, value in explicit.items() if value is not None})

        return cls(**resolved)
