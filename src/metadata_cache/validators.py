"""
Parameter validation utilities.

Validation rules for cache settings. Each validator raises
``ValidationError`` on invalid input and returns ``None`` otherwise.
"""

from .constants import (
    ERROR_MAX_RESPONSE_BYTES_INVALID,
    ERROR_MIN_QUERY_LENGTH_INVALID,
    ERROR_STORE_NAME_EMPTY,
    ERROR_TIMEOUT_INVALID,
    ERROR_TTL_INVALID,
)


class ValidationError(ValueError):
    """Parameter validation error.

    Raised when cache settings fail validation checks.
    """

    pass


def _is_strict_int(value: object) -> bool:
    # bool is a subclass of int
    return isinstance(value, int) and not isinstance(value, bool)


def validate_ttl_seconds(value: int, name: str = "ttl_seconds") -> None:
    """Validate that a TTL is a positive integer.

    Args:
        value: TTL in seconds
        name: Setting name used in the error message

    Raises:
        ValidationError: If the TTL is not a positive integer
    """
    if not _is_strict_int(value) or value < 1:
        raise ValidationError(ERROR_TTL_INVALID.format(name=name, value=value))


def validate_min_query_length(value: int) -> None:
    """Validate minimum query length (>= 1)."""
    if not _is_strict_int(value) or value < 1:
        raise ValidationError(ERROR_MIN_QUERY_LENGTH_INVALID.format(value=value))


def validate_store_name(store_name: str) -> None:
    """Validate store name (non-empty, not whitespace-only)."""
    if not isinstance(store_name, str) or not store_name.strip():
        raise ValidationError(ERROR_STORE_NAME_EMPTY)


def validate_timeout(timeout_seconds: float) -> None:
    """Validate upstream timeout (> 0)."""
    if isinstance(timeout_seconds, bool) or not isinstance(timeout_seconds, (int, float)) or timeout_seconds <= 0:
        raise ValidationError(ERROR_TIMEOUT_INVALID.format(value=timeout_seconds))


def validate_max_response_bytes(value: int) -> None:
    """Validate response size cap (>= 1)."""
    if not _is_strict_int(value) or value < 1:
        raise ValidationError(ERROR_MAX_RESPONSE_BYTES_INVALID.format(value=value))
