"""
Lookup query normalization.

Turns raw request parameters into a canonical ``LookupQuery`` so that
equivalent requests share one cache entry.
"""

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from .constants import TRUTHY_FLAG_VALUES

# Canonical field order, used for both key encoding and upstream params
QUERY_FIELDS: tuple[str, ...] = (
    "query",
    "release_year",
    "platform",
    "platform_igdb_id",
    "include_candidates",
)

# Wire names of the inbound/upstream request parameters
PARAM_NAMES: dict[str, str] = {
    "query": "q",
    "release_year": "releaseYear",
    "platform": "platform",
    "platform_igdb_id": "platformIgdbId",
    "include_candidates": "includeCandidates",
}

_YEAR_PATTERN = re.compile(r"^[0-9]{4}$")
_PLATFORM_ID_PATTERN = re.compile(r"^[0-9]{1,10}$")
_WHITESPACE_PATTERN = re.compile(r"\s+")


@dataclass(frozen=True)
class LookupQuery:
    """Canonical form of a metadata lookup.

    Attributes:
        query: Trimmed, lower-cased search term with inner whitespace collapsed
        release_year: Four-digit year or None
        platform: Trimmed, lower-cased platform name or None
        platform_igdb_id: Positive IGDB platform id or None
        include_candidates: Whether alternative matches were requested
    """

    query: str
    release_year: int | None = None
    platform: str | None = None
    platform_igdb_id: int | None = None
    include_candidates: bool = False

    def key_values(self, fields: Iterable[str] = QUERY_FIELDS) -> list[Any]:
        """Return field values in canonical order, restricted to ``fields``."""
        selected = set(fields)
        return [getattr(self, name) for name in QUERY_FIELDS if name in selected]

    def to_params(self, fields: Iterable[str] = QUERY_FIELDS) -> dict[str, str]:
        """Serialize as upstream request parameters.

        Null fields and a false ``include_candidates`` flag are omitted.
        """
        selected = set(fields)
        params: dict[str, str] = {}
        for name in QUERY_FIELDS:
            if name not in selected:
                continue
            value = getattr(self, name)
            if value is None or value is False:
                continue
            params[PARAM_NAMES[name]] = "true" if value is True else str(value)
        return params

    def to_dict(self) -> dict[str, Any]:
        """Return the query as a plain dict (stored next to cached rows)."""
        return {name: getattr(self, name) for name in QUERY_FIELDS}


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        # Repeated parameter: the first occurrence wins
        return _text(value[0]) if value else ""
    return str(value).strip()


def _normalize_term(value: Any) -> str:
    return _WHITESPACE_PATTERN.sub(" ", _text(value)).lower()


def _normalize_year(value: Any) -> int | None:
    text = _text(value)
    if not _YEAR_PATTERN.match(text):
        return None
    return int(text)


def _normalize_platform(value: Any) -> str | None:
    text = _text(value).lower()
    return text or None


def _normalize_platform_id(value: Any) -> int | None:
    text = _text(value)
    if not _PLATFORM_ID_PATTERN.match(text):
        return None
    parsed = int(text)
    return parsed if parsed > 0 else None


def _normalize_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return _text(value).lower() in TRUTHY_FLAG_VALUES


def normalize_query(params: Mapping[str, Any]) -> LookupQuery:
    """Build a canonical ``LookupQuery`` from raw request parameters.

    Never raises: malformed optional fields normalize to ``None``/``False``.

    Args:
        params: Raw parameters keyed by wire name (``q``, ``releaseYear``,
            ``platform``, ``platformIgdbId``, ``includeCandidates``)

    Returns:
        Normalized query
    """
    return LookupQuery(
        query=_normalize_term(params.get(PARAM_NAMES["query"])),
        release_year=_normalize_year(params.get(PARAM_NAMES["release_year"])),
        platform=_normalize_platform(params.get(PARAM_NAMES["platform"])),
        platform_igdb_id=_normalize_platform_id(params.get(PARAM_NAMES["platform_igdb_id"])),
        include_candidates=_normalize_flag(params.get(PARAM_NAMES["include_candidates"])),
    )
