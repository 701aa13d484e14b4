"""
Freshness classification for cached entries.

An entry is FRESH while younger than the fresh TTL, STALE until the stale
TTL, and EXPIRED afterwards. A missing or unparsable timestamp counts as
infinitely old.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from .constants import DEFAULT_FRESH_TTL_SECONDS, DEFAULT_STALE_TTL_SECONDS


class Freshness(str, Enum):
    """Freshness state of a cached entry."""

    FRESH = "fresh"
    STALE = "stale"
    EXPIRED = "expired"


@dataclass(frozen=True)
class FreshnessResult:
    """Classification outcome together with the computed age."""

    state: Freshness
    age_seconds: float


def parse_timestamp(value: object) -> datetime | None:
    """Parse a stored ``updated_at`` value into an aware UTC datetime.

    Accepts datetimes (naive ones are taken as UTC), ISO-8601 strings
    (a trailing ``Z`` is allowed) and epoch seconds.

    Returns:
        Parsed datetime, or None when the value cannot be interpreted
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, bool):
        return None
    elif isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class FreshnessPolicy:
    """Classifies entries by age against fresh and stale TTLs.

    The stale TTL is raised to the fresh TTL when configured lower.
    Classification is pure: no I/O, no exceptions.
    """

    def __init__(
        self,
        fresh_ttl_seconds: int = DEFAULT_FRESH_TTL_SECONDS,
        stale_ttl_seconds: int = DEFAULT_STALE_TTL_SECONDS,
    ) -> None:
        self._fresh_ttl_seconds = fresh_ttl_seconds
        self._stale_ttl_seconds = max(fresh_ttl_seconds, stale_ttl_seconds)

    @property
    def fresh_ttl_seconds(self) -> int:
        return self._fresh_ttl_seconds

    @property
    def stale_ttl_seconds(self) -> int:
        return self._stale_ttl_seconds

    def age_seconds(self, updated_at: object, now: datetime) -> float:
        """Age of an entry in seconds; ``inf`` for unparsable timestamps."""
        parsed = parse_timestamp(updated_at)
        if parsed is None:
            return math.inf
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        # Clock skew: entries stamped in the future count as brand new
        return max(0.0, (now - parsed).total_seconds())

    def classify(self, updated_at: object, now: datetime) -> FreshnessResult:
        """Classify an entry by its ``updated_at`` timestamp.

        Args:
            updated_at: Stored timestamp (datetime, ISO string or epoch seconds)
            now: Current time

        Returns:
            Freshness state and age
        """
        age = self.age_seconds(updated_at, now)
        if age < self._fresh_ttl_seconds:
            state = Freshness.FRESH
        elif age < self._stale_ttl_seconds:
            state = Freshness.STALE
        else:
            state = Freshness.EXPIRED
        return FreshnessResult(state=state, age_seconds=age)
