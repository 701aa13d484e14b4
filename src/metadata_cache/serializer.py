"""
Row serialization for persisted cache entries.

A row is a plain dict ``{cache_key, response_json, updated_at, query}``;
serializers turn it into bytes for the key/value backend and back.
"""

import json
from typing import Any, Protocol

import msgpack

from .exceptions import CacheSerializationError


class Serializer(Protocol):
    """Protocol for row serializers."""

    def serialize(self, data: Any) -> bytes:
        """Serialize Python data to bytes."""
        ...

    def deserialize(self, data: bytes) -> Any:
        """Deserialize bytes to Python data."""
        ...


class MsgPackSerializer:
    """Serializer using MessagePack.

    Compact binary format; the default for rows stored in Dapr.
    """

    def serialize(self, data: Any) -> bytes:
        """Serialize data to MsgPack bytes.

        Raises:
            CacheSerializationError: If the data cannot be packed
        """
        try:
            result = msgpack.packb(data, use_bin_type=True)
            if result is None:
                raise CacheSerializationError("msgpack.packb returned None")
            return result
        except (TypeError, ValueError, OverflowError) as e:
            raise CacheSerializationError(f"Failed to serialize data: {e}") from e

    def deserialize(self, data: bytes) -> Any:
        """Deserialize MsgPack bytes.

        Raises:
            CacheSerializationError: If the bytes are not valid MsgPack
        """
        try:
            return msgpack.unpackb(data, raw=False)
        except (msgpack.UnpackException, ValueError, TypeError) as e:
            raise CacheSerializationError(f"Failed to deserialize data: {e}") from e


class JsonSerializer:
    """Serializer using compact UTF-8 JSON.

    Handy when rows should stay human-readable in the state store.
    """

    def serialize(self, data: Any) -> bytes:
        try:
            return json.dumps(data, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise CacheSerializationError(f"Failed to serialize data: {e}") from e

    def deserialize(self, data: bytes) -> Any:
        try:
            return json.loads(data)
        except (ValueError, UnicodeDecodeError) as e:
            raise CacheSerializationError(f"Failed to deserialize data: {e}") from e
