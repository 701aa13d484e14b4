"""
Constants for the metadata cache.

Default values and message templates shared by the cache components.
"""

# TTL configuration
DEFAULT_FRESH_TTL_SECONDS = 86400 * 7  # 7 days
DEFAULT_STALE_TTL_SECONDS = 86400 * 90  # 90 days

# Query policy
DEFAULT_MIN_QUERY_LENGTH = 2
TRUTHY_FLAG_VALUES = frozenset({"1", "true", "yes"})

# Upstream configuration
DEFAULT_UPSTREAM_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_RESPONSE_BYTES = 2 * 1024 * 1024  # 2 MiB
DEFAULT_SECRETS_DIR = "/run/secrets"

# Dapr sidecar configuration
DEFAULT_DAPR_HTTP_HOST = "127.0.0.1"
DEFAULT_DAPR_HTTP_PORT = 3500
DEFAULT_BACKEND_TIMEOUT_SECONDS = 5.0

# Diagnostic headers
CACHE_HEADER_TEMPLATE = "X-{prefix}-Cache"
REVALIDATE_HEADER_TEMPLATE = "X-{prefix}-Revalidate"
REVALIDATE_SCHEDULED = "scheduled"
REVALIDATE_SKIPPED = "skipped"

# Headers never forwarded from the upstream response
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "content-encoding",
        "content-length",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    }
)

# Error message templates
ERROR_UPSTREAM_NOT_CONFIGURED = "{label} scraper base URL is not configured"
ERROR_UPSTREAM_REQUEST_FAILED = "{label} request failed"
ERROR_TTL_INVALID = "{name} must be a positive integer, got {value}"
ERROR_MIN_QUERY_LENGTH_INVALID = "min_query_length must be >= 1, got {value}"
ERROR_STORE_NAME_EMPTY = "store_name cannot be empty or whitespace-only"
ERROR_TIMEOUT_INVALID = "timeout_seconds must be > 0, got {value}"
ERROR_MAX_RESPONSE_BYTES_INVALID = "max_response_bytes must be >= 1, got {value}"
