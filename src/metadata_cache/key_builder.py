"""
Deterministic cache key generation.

Keys are the SHA256 hex digest of a compact JSON list holding the
normalized query fields in canonical order, so they are stable across
processes, Python versions and caller parameter order.
"""

import hashlib
import json
from collections.abc import Iterable

from .query import QUERY_FIELDS, LookupQuery


def calculate_deterministic_hash(data: str) -> str:
    """Calculate SHA256 hash of string data.

    Args:
        data: String data to hash

    Returns:
        Hexadecimal hash string (64 characters)
    """
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


class QueryKeyBuilder:
    """Builds cache keys from normalized lookup queries.

    Only the configured ``fields`` take part in the key; a cache whose
    upstream ignores the platform id, for example, leaves it out so that
    requests differing only in that field share one entry.

    Attributes:
        fields: Query fields encoded into the key, in canonical order
    """

    def __init__(self, fields: Iterable[str] = QUERY_FIELDS) -> None:
        selected = set(fields)
        unknown = selected.difference(QUERY_FIELDS)
        if unknown:
            raise ValueError(f"Unknown query fields: {sorted(unknown)}")
        if not selected:
            raise ValueError("At least one query field is required")
        self._fields = tuple(name for name in QUERY_FIELDS if name in selected)

    @property
    def fields(self) -> tuple[str, ...]:
        return self._fields

    def serialize(self, query: LookupQuery) -> str:
        """Compact JSON encoding of the key fields."""
        return json.dumps(query.key_values(self._fields), separators=(",", ":"), ensure_ascii=False)

    def build_key(self, query: LookupQuery) -> str:
        """Build the cache key for a normalized query.

        Args:
            query: Normalized lookup query

        Returns:
            64-character hexadecimal key
        """
        return calculate_deterministic_hash(self.serialize(query))
