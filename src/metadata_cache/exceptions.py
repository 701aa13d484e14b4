"""Exceptions raised by the metadata cache."""


class CacheError(Exception):
    """Base error for cache operations."""

    def __init__(self, message: str, key: str | None = None) -> None:
        self.key = key
        super().__init__(message)


class CacheConnectionError(CacheError):
    """The state store could not be reached."""

    pass


class CacheSerializationError(CacheError):
    """A stored row could not be encoded or decoded."""

    pass


class CacheKeyError(CacheError):
    """Invalid cache key or store name (empty, etc.)."""

    pass


class StoreReadError(CacheError):
    """Reading from the store failed.

    Distinct from "entry absent": the orchestrator reacts to it by bypassing
    the cache for the current request.
    """

    pass


class StoreWriteError(CacheError):
    """Writing to the store failed."""

    pass


class UpstreamError(Exception):
    """Base error for upstream metadata lookups."""

    def __init__(self, message: str, label: str) -> None:
        self.label = label
        super().__init__(message)


class UpstreamUnavailableError(UpstreamError):
    """The upstream service is not configured."""

    pass


class UpstreamTransportError(UpstreamError):
    """The upstream request failed (network error, timeout, oversize body)."""

    pass
