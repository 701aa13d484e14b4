"""Data types exchanged between cache components."""

import json
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-finite number {name} is not valid JSON")


def _parse_finite_float(text: str) -> float:
    value = float(text)
    if not math.isfinite(value):
        raise ValueError(f"number {text} overflows to a non-finite float")
    return value


class CacheOutcome(str, Enum):
    """Diagnostic tag attached to every lookup response."""

    MISS = "MISS"
    HIT_FRESH = "HIT_FRESH"
    HIT_STALE = "HIT_STALE"
    BYPASS = "BYPASS"


@dataclass(frozen=True)
class CacheEntry:
    """A persisted cache row.

    Attributes:
        key: Cache key
        payload: Decoded upstream JSON
        updated_at: Raw stored timestamp (parsed by the freshness policy)
        query: Normalized query fields stored for inspection
    """

    key: str
    payload: Any
    updated_at: Any
    query: dict[str, Any] = field(default_factory=dict)


@dataclass
class UpstreamResponse:
    """An upstream HTTP response, passed through verbatim."""

    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    def json_or_none(self) -> Any:
        """Decode the body as JSON, returning None when it is not valid JSON.

        NaN and Infinity literals and pathologically deep nesting count as
        invalid.
        """
        if not self.body:
            return None
        try:
            return json.loads(self.body, parse_float=_parse_finite_float, parse_constant=_reject_constant)
        except (ValueError, UnicodeDecodeError, RecursionError) as e:
            logger.debug(f"Upstream body is not valid JSON: {e}")
            return None


@dataclass
class CacheResponse:
    """Response produced by a cache lookup.

    Attributes:
        status_code: HTTP status to return
        headers: Response headers including the diagnostic cache headers
        body: Raw response body
        outcome: Cache decision for this request
        revalidate: "scheduled"/"skipped" on stale hits, None otherwise
    """

    status_code: int
    headers: dict[str, str]
    body: bytes
    outcome: CacheOutcome
    revalidate: str | None = None

    def json(self) -> Any:
        return json.loads(self.body)
