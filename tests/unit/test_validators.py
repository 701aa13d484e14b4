"""
Unit tests for settings validators.
"""

import pytest

from metadata_cache.validators import (
    ValidationError,
    validate_max_response_bytes,
    validate_min_query_length,
    validate_store_name,
    validate_timeout,
    validate_ttl_seconds,
)


class TestValidateTtlSeconds:
    """Test validate_ttl_seconds."""

    @pytest.mark.parametrize("value", [1, 60, 86400 * 90])
    def test_valid_values(self, value: int) -> None:
        """Test positive integers pass."""
        validate_ttl_seconds(value)

    @pytest.mark.parametrize("value", [0, -1, 1.5, "60", True, None])
    def test_invalid_values(self, value: object) -> None:
        """Test non-positive and non-integer values raise."""
        with pytest.raises(ValidationError):
            validate_ttl_seconds(value)  # type: ignore[arg-type]

    def test_error_names_the_setting(self) -> None:
        """Test the message includes the setting name."""
        with pytest.raises(ValidationError, match="fresh_ttl_seconds"):
            validate_ttl_seconds(0, "fresh_ttl_seconds")


class TestOtherValidators:
    """Test the remaining validators."""

    def test_min_query_length(self) -> None:
        """Test minimum query length bounds."""
        validate_min_query_length(1)
        with pytest.raises(ValidationError):
            validate_min_query_length(0)

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_store_name_rejects_blank(self, name: object) -> None:
        """Test blank store names raise."""
        with pytest.raises(ValidationError):
            validate_store_name(name)  # type: ignore[arg-type]

    def test_timeout_accepts_floats(self) -> None:
        """Test fractional timeouts are allowed."""
        validate_timeout(0.5)
        with pytest.raises(ValidationError):
            validate_timeout(0)
        with pytest.raises(ValidationError):
            validate_timeout(False)  # type: ignore[arg-type]

    def test_max_response_bytes(self) -> None:
        """Test the response cap must be positive."""
        validate_max_response_bytes(1024)
        with pytest.raises(ValidationError):
            validate_max_response_bytes(-5)
