"""
Cache profiles for the supported metadata domains.

A profile bundles everything that differs between the domain caches: the
cacheability predicate, the query fields that make up the key, the store
name, the routes and the diagnostic header prefix. The lookup state
machine itself is shared.
"""

import math
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .constants import CACHE_HEADER_TEMPLATE, REVALIDATE_HEADER_TEMPLATE
from .query import QUERY_FIELDS, LookupQuery

CacheablePredicate = Callable[[Any, LookupQuery], bool]


def _has_candidates(payload: dict[str, Any], query: LookupQuery) -> bool:
    candidates = payload.get("candidates")
    return query.include_candidates and isinstance(candidates, list) and len(candidates) > 0


def _is_positive_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value) and value > 0


def has_primary_result(payload: Any, query: LookupQuery) -> bool:
    """Generic predicate: a non-null ``item`` or, when requested, candidates."""
    if not isinstance(payload, dict):
        return False
    return payload.get("item") is not None or _has_candidates(payload, query)


def hltb_is_cacheable(payload: Any, query: LookupQuery) -> bool:
    """An HLTB match must carry at least one positive completion time."""
    if not isinstance(payload, dict):
        return False
    item = payload.get("item")
    if isinstance(item, dict) and any(
        _is_positive_number(item.get(name))
        for name in ("hltbMainHours", "hltbMainExtraHours", "hltbCompletionistHours")
    ):
        return True
    return _has_candidates(payload, query)


def metacritic_is_cacheable(payload: Any, query: LookupQuery) -> bool:
    """A Metacritic match needs a 1-100 integer score or a review URL."""
    if not isinstance(payload, dict):
        return False
    item = payload.get("item")
    if isinstance(item, dict):
        score = item.get("metacriticScore")
        if isinstance(score, int) and not isinstance(score, bool) and 1 <= score <= 100:
            return True
        url = item.get("metacriticUrl")
        if isinstance(url, str) and url.strip():
            return True
    return _has_candidates(payload, query)


def boxart_is_cacheable(payload: Any, query: LookupQuery) -> bool:
    """Box-art search results are cacheable when at least one image URL came back."""
    if not isinstance(payload, dict):
        return False
    items = payload.get("items")
    return isinstance(items, list) and any(isinstance(url, str) and url.strip() for url in items)


@dataclass(frozen=True)
class CacheProfile:
    """Static description of one domain cache.

    Attributes:
        name: Short identifier ("hltb"), used in logs, metrics and stats
        label: Upstream name used in error messages ("HLTB")
        env_prefix: Prefix of the environment variables configuring the cache
        route: Inbound route served by the cache
        upstream_path: Path requested on the scraper service
        header_prefix: Middle part of the diagnostic header names
        store_name: Default state store name
        is_cacheable: Cacheability predicate
        key_fields: Query fields forming the cache key (also sent upstream)
    """

    name: str
    label: str
    env_prefix: str
    route: str
    upstream_path: str
    header_prefix: str
    store_name: str
    is_cacheable: CacheablePredicate = has_primary_result
    key_fields: tuple[str, ...] = QUERY_FIELDS

    @property
    def cache_header(self) -> str:
        return CACHE_HEADER_TEMPLATE.format(prefix=self.header_prefix)

    @property
    def revalidate_header(self) -> str:
        return REVALIDATE_HEADER_TEMPLATE.format(prefix=self.header_prefix)


HLTB = CacheProfile(
    name="hltb",
    label="HLTB",
    env_prefix="HLTB",
    route="/v1/hltb/search",
    upstream_path="/v1/hltb/search",
    header_prefix="GameShelf-HLTB",
    store_name="hltb-search-cache",
    is_cacheable=hltb_is_cacheable,
    # The HLTB scraper ignores the IGDB platform id
    key_fields=("query", "release_year", "platform", "include_candidates"),
)

METACRITIC = CacheProfile(
    name="metacritic",
    label="Metacritic",
    env_prefix="METACRITIC",
    route="/v1/metacritic/search",
    upstream_path="/v1/metacritic/search",
    header_prefix="GameShelf-METACRITIC",
    store_name="metacritic-search-cache",
    is_cacheable=metacritic_is_cacheable,
)

BOXART = CacheProfile(
    name="boxart",
    label="Box art",
    env_prefix="BOXART",
    route="/v1/images/boxart/search",
    upstream_path="/v1/images/boxart/search",
    header_prefix="GameShelf-BOXART",
    store_name="boxart-search-cache",
    is_cacheable=boxart_is_cacheable,
    key_fields=("query", "platform", "platform_igdb_id"),
)

PROFILES: dict[str, CacheProfile] = {profile.name: profile for profile in (HLTB, METACRITIC, BOXART)}
