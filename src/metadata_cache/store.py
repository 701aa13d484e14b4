"""
Cache store adapter.

Maps cache entries onto a key/value backend. Read failures are surfaced
as ``StoreReadError`` so the caller can fail open; write and delete
failures are logged, counted and reported as ``False``.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from .backend import StateBackend
from .exceptions import CacheSerializationError, StoreReadError, StoreWriteError
from .metrics import CacheMetrics, NoOpMetrics
from .models import CacheEntry
from .query import LookupQuery
from .serializer import MsgPackSerializer, Serializer

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock."""
    return datetime.now(timezone.utc)


class CacheStore:
    """Reads and writes cache rows through a ``StateBackend``.

    Rows are stored as ``{cache_key, response_json, updated_at, query}``
    and every write replaces the whole row.

    Attributes:
        backend: Key/value backend
        ttl_seconds: Row lifetime forwarded to the backend (None keeps rows forever)
    """

    def __init__(
        self,
        backend: StateBackend,
        serializer: Serializer | None = None,
        metrics: CacheMetrics | None = None,
        clock: Clock = utc_now,
        ttl_seconds: int | None = None,
    ) -> None:
        self._backend = backend
        self._serializer = serializer or MsgPackSerializer()
        self._metrics = metrics or NoOpMetrics()
        self._clock = clock
        self._ttl_seconds = ttl_seconds

    @property
    def backend(self) -> StateBackend:
        return self._backend

    @property
    def ttl_seconds(self) -> int | None:
        return self._ttl_seconds

    async def read(self, key: str) -> CacheEntry | None:
        """Read the entry stored under ``key``.

        Returns:
            The entry, or None when absent or undecodable

        Raises:
            StoreReadError: If the backend could not be read
        """
        try:
            raw = await self._backend.get(key)
        except Exception as e:
            raise StoreReadError(f"Failed to read cache entry: {e}", key=key) from e

        if raw is None:
            return None

        try:
            row = self._serializer.deserialize(raw)
        except CacheSerializationError as e:
            logger.warning(f"Discarding undecodable cache row for key {key}: {e}")
            return None

        if not isinstance(row, dict) or "response_json" not in row:
            logger.warning(f"Discarding malformed cache row for key {key}")
            return None

        return CacheEntry(
            key=key,
            payload=row["response_json"],
            updated_at=row.get("updated_at"),
            query=row.get("query") or {},
        )

    async def write(self, key: str, payload: object, query: LookupQuery | None = None) -> bool:
        """Upsert ``payload`` under ``key`` stamped with the current time.

        Never raises: failures are logged and counted as write errors.

        Returns:
            True when the row was stored
        """
        row = {
            "cache_key": key,
            "response_json": payload,
            "updated_at": self._clock().isoformat(),
            "query": query.to_dict() if query is not None else {},
        }
        try:
            data = self._serializer.serialize(row)
            stored = await self._backend.set(key, data, self._ttl_seconds)
            if not stored:
                raise StoreWriteError("Backend rejected the write", key=key)
        except Exception as e:
            logger.warning(f"Cache write failed for key {key}: {e}")
            self._metrics.record_write_error(key, e)
            return False

        self._metrics.record_write(key, len(data))
        logger.debug(f"Cache write for key: {key} ({len(data)} bytes)")
        return True

    async def delete(self, key: str) -> bool:
        """Best-effort delete; failures count as write errors."""
        try:
            deleted = await self._backend.delete(key)
        except Exception as e:
            logger.warning(f"Cache delete failed for key {key}: {e}")
            self._metrics.record_write_error(key, e)
            return False
        return deleted
