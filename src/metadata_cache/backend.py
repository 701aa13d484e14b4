"""
Key/value backends for persisted cache rows.

``DaprStateBackend`` talks to a Dapr state store through the sidecar HTTP
API; ``InMemoryStateBackend`` keeps rows in a dict for development and tests.
"""

import asyncio
import base64
import binascii
import json
import logging
import os
import time
from typing import Protocol

import httpx

from .constants import DEFAULT_BACKEND_TIMEOUT_SECONDS, DEFAULT_DAPR_HTTP_HOST, DEFAULT_DAPR_HTTP_PORT
from .exceptions import CacheConnectionError, CacheKeyError

logger = logging.getLogger(__name__)


def _get_dapr_url() -> str:
    """Base URL of the Dapr sidecar."""
    host = os.getenv("DAPR_HTTP_HOST", DEFAULT_DAPR_HTTP_HOST)
    port = os.getenv("DAPR_HTTP_PORT", str(DEFAULT_DAPR_HTTP_PORT))
    return f"http://{host}:{port}"


class StateBackend(Protocol):
    """Protocol for async key/value backends."""

    async def get(self, key: str) -> bytes | None:
        """Return the stored value, or None when absent.

        Raises:
            CacheConnectionError: If the store cannot be read
        """
        ...

    async def set(self, key: str, value: bytes, ttl_seconds: int | None = None) -> bool:
        """Store a value, replacing any previous one."""
        ...

    async def delete(self, key: str) -> bool:
        """Remove a value."""
        ...


class DaprStateBackend:
    """Backend for a Dapr state store using the sidecar HTTP API.

    The Dapr state REST API:
    - GET /v1.0/state/{storename}/{key} - fetch a value
    - POST /v1.0/state/{storename} - upsert value(s)
    - DELETE /v1.0/state/{storename}/{key} - delete a value

    Values are base64-encoded into JSON strings. Read failures raise
    ``CacheConnectionError`` so callers can tell an unreachable store
    apart from a missing key.

    Attributes:
        store_name: Name of the Dapr state store component
        timeout: Timeout for HTTP operations in seconds
    """

    def __init__(
        self,
        store_name: str,
        timeout: float = DEFAULT_BACKEND_TIMEOUT_SECONDS,
        dapr_url: str | None = None,
    ) -> None:
        """Initialize the backend.

        Args:
            store_name: Dapr state store name
            timeout: Timeout for HTTP operations
            dapr_url: Sidecar URL (falls back to env vars)

        Raises:
            CacheKeyError: If store_name is empty
        """
        if not store_name:
            raise CacheKeyError("store_name cannot be empty")

        self._store_name = store_name
        self._timeout = timeout
        self._base_url = dapr_url or _get_dapr_url()

        # Created on first use, once an event loop exists
        self._async_client: httpx.AsyncClient | None = None
        self._async_client_lock: asyncio.Lock | None = None

    @property
    def store_name(self) -> str:
        return self._store_name

    def _get_async_lock(self) -> asyncio.Lock:
        if self._async_client_lock is None:
            self._async_client_lock = asyncio.Lock()
        return self._async_client_lock

    async def _get_async_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client (double-checked locking)."""
        if self._async_client is None:
            async with self._get_async_lock():
                if self._async_client is None:
                    self._async_client = httpx.AsyncClient(
                        base_url=self._base_url,
                        timeout=self._timeout,
                    )
        return self._async_client

    def _state_url(self, key: str | None = None) -> str:
        if key:
            return f"/v1.0/state/{self._store_name}/{key}"
        return f"/v1.0/state/{self._store_name}"

    def _encode_value(self, value: bytes) -> str:
        return base64.b64encode(value).decode("ascii")

    def _decode_value(self, content: bytes, key: str) -> bytes:
        """Decode a value returned by Dapr (a JSON string holding base64)."""
        try:
            data = json.loads(content)
            if not isinstance(data, str):
                raise ValueError(f"expected a JSON string, got {type(data).__name__}")
            return base64.b64decode(data, validate=True)
        except (ValueError, UnicodeDecodeError, binascii.Error) as e:
            raise CacheConnectionError(f"Unreadable value returned by Dapr: {e}", key=key) from e

    async def get(self, key: str) -> bytes | None:
        """Fetch a value.

        Args:
            key: Cache key

        Returns:
            Stored bytes, or None when the key does not exist

        Raises:
            CacheKeyError: If the key is empty
            CacheConnectionError: If the sidecar is unreachable or misbehaves
        """
        if not key:
            raise CacheKeyError("Key cannot be empty", key=key)

        try:
            client = await self._get_async_client()
            response = await client.get(self._state_url(key))
        except httpx.TimeoutException as e:
            raise CacheConnectionError(f"Timeout reading key {key}: {e}", key=key) from e
        except httpx.HTTPError as e:
            raise CacheConnectionError(f"Could not reach the Dapr sidecar: {e}", key=key) from e

        if response.status_code == 204 or (response.status_code == 200 and not response.content):
            logger.debug(f"State miss for key: {key}")
            return None

        if response.status_code == 200:
            logger.debug(f"State hit for key: {key}")
            return self._decode_value(response.content, key)

        raise CacheConnectionError(f"Unexpected Dapr response: {response.status_code}", key=key)

    async def set(self, key: str, value: bytes, ttl_seconds: int | None = None) -> bool:
        """Upsert a value.

        Args:
            key: Cache key
            value: Bytes to store
            ttl_seconds: Row lifetime handed to Dapr (no expiry when None)

        Returns:
            True when the store accepted the write

        Raises:
            CacheKeyError: If the key is empty
            CacheConnectionError: If the sidecar is unreachable
        """
        if not key:
            raise CacheKeyError("Key cannot be empty", key=key)

        item: dict[str, object] = {"key": key, "value": self._encode_value(value)}
        if ttl_seconds is not None:
            item["metadata"] = {"ttlInSeconds": str(ttl_seconds)}

        try:
            client = await self._get_async_client()
            response = await client.post(self._state_url(), json=[item])
        except httpx.ConnectError as e:
            raise CacheConnectionError(f"Could not reach the Dapr sidecar: {e}", key=key) from e
        except httpx.TimeoutException as e:
            logger.warning(f"Timeout writing key {key}: {e}")
            return False

        if response.status_code in (200, 201, 204):
            logger.debug(f"State set for key: {key}, TTL: {ttl_seconds}s")
            return True

        logger.warning(f"Failed to write state: {response.status_code}")
        return False

    async def delete(self, key: str) -> bool:
        """Delete a value; returns True on success."""
        if not key:
            return False

        try:
            client = await self._get_async_client()
            response = await client.delete(self._state_url(key))
        except httpx.HTTPError as e:
            logger.warning(f"Error deleting key {key}: {e}")
            return False

        success = response.status_code in (200, 204)
        if success:
            logger.debug(f"State delete for key: {key}")
        return success

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._async_client is not None:
            await self._async_client.aclose()
            self._async_client = None

    async def __aenter__(self) -> "DaprStateBackend":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()


class InMemoryStateBackend:
    """Dict-backed backend honouring per-row TTLs.

    Not shared across processes; meant for local development and tests.
    """

    def __init__(self, store_name: str = "memory") -> None:
        self._store_name = store_name
        self._data: dict[str, tuple[bytes, float | None]] = {}

    @property
    def store_name(self) -> str:
        return self._store_name

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    async def get(self, key: str) -> bytes | None:
        if not key:
            raise CacheKeyError("Key cannot be empty", key=key)
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and time.monotonic() >= expires_at:
            del self._data[key]
            return None
        return value

    async def set(self, key: str, value: bytes, ttl_seconds: int | None = None) -> bool:
        if not key:
            raise CacheKeyError("Key cannot be empty", key=key)
        expires_at = time.monotonic() + ttl_seconds if ttl_seconds is not None else None
        self._data[key] = (value, expires_at)
        return True

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def aclose(self) -> None:
        self._data.clear()
