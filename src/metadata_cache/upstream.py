"""
Upstream metadata fetchers.

``HttpMetadataFetcher`` calls a scraper service over HTTP with httpx,
authenticating with a bearer token read from a secret file.
"""

import asyncio
import logging
import os
from collections.abc import Iterable
from typing import Protocol

import httpx

from .constants import (
    DEFAULT_MAX_RESPONSE_BYTES,
    DEFAULT_SECRETS_DIR,
    DEFAULT_UPSTREAM_TIMEOUT_SECONDS,
    ERROR_UPSTREAM_NOT_CONFIGURED,
    ERROR_UPSTREAM_REQUEST_FAILED,
    HOP_BY_HOP_HEADERS,
)
from .exceptions import UpstreamTransportError, UpstreamUnavailableError
from .models import UpstreamResponse
from .query import QUERY_FIELDS, LookupQuery

logger = logging.getLogger(__name__)


class MetadataFetcher(Protocol):
    """Protocol for upstream fetch collaborators."""

    @property
    def label(self) -> str:
        """Human-readable upstream name used in error messages."""
        ...

    async def fetch(self, query: LookupQuery) -> UpstreamResponse:
        """Fetch metadata for a normalized query.

        Raises:
            UpstreamUnavailableError: If the upstream is not configured
            UpstreamTransportError: If the request failed in transit
        """
        ...


def default_token_path(name: str) -> str:
    """Default secret location for a scraper token, e.g. ``/run/secrets/hltb_scraper_token``."""
    return os.path.join(DEFAULT_SECRETS_DIR, f"{name}_scraper_token")


def read_token_file(path: str | None) -> str | None:
    """Read a bearer token from ``path``.

    Returns:
        The stripped token, or None when the file is missing, unreadable or empty
    """
    if not path:
        return None
    try:
        with open(path, encoding="utf-8") as handle:
            token = handle.read().strip()
    except OSError as e:
        logger.debug(f"No scraper token at {path}: {e}")
        return None
    return token or None


class HttpMetadataFetcher:
    """Fetches metadata from a scraper service over HTTP.

    The token is read once at construction. Response bodies are streamed
    and capped at ``max_response_bytes``.

    Attributes:
        label: Upstream name used in error messages (e.g. "HLTB")
        base_url: Scraper base URL; empty means "not configured"
        path: Request path appended to ``base_url``
    """

    def __init__(
        self,
        label: str,
        base_url: str | None,
        path: str,
        token_file: str | None = None,
        timeout: float = DEFAULT_UPSTREAM_TIMEOUT_SECONDS,
        max_response_bytes: int = DEFAULT_MAX_RESPONSE_BYTES,
        param_fields: Iterable[str] = QUERY_FIELDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            label: Upstream name used in error messages
            base_url: Scraper base URL (None/empty disables the upstream)
            path: Request path, e.g. "/v1/hltb/search"
            token_file: Path of the bearer token secret
            timeout: Request timeout in seconds
            max_response_bytes: Largest accepted response body
            param_fields: Query fields sent as request parameters
            client: Pre-built client (not closed by ``aclose``)
        """
        self._label = label
        self._base_url = (base_url or "").strip().rstrip("/")
        self._path = path
        self._token = read_token_file(token_file)
        self._timeout = timeout
        self._max_response_bytes = max_response_bytes
        self._param_fields = tuple(param_fields)

        self._client = client
        self._owns_client = client is None
        self._client_lock: asyncio.Lock | None = None

    @property
    def label(self) -> str:
        return self._label

    @property
    def is_configured(self) -> bool:
        return bool(self._base_url)

    @property
    def has_token(self) -> bool:
        return self._token is not None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            if self._client_lock is None:
                self._client_lock = asyncio.Lock()
            async with self._client_lock:
                if self._client is None:
                    self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    def _request_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def fetch(self, query: LookupQuery) -> UpstreamResponse:
        """Call the upstream and return its response verbatim.

        Any HTTP status is passed through; only transport problems raise.

        Raises:
            UpstreamUnavailableError: If no base URL is configured
            UpstreamTransportError: On network errors, timeouts or an oversize body
        """
        if not self._base_url:
            raise UpstreamUnavailableError(ERROR_UPSTREAM_NOT_CONFIGURED.format(label=self._label), self._label)

        url = f"{self._base_url}{self._path}"
        params = query.to_params(self._param_fields)
        client = await self._get_client()

        try:
            # httpx timeouts are per operation; bound the whole exchange too
            result = await asyncio.wait_for(self._download(client, url, params), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            logger.warning(f"{self._label} upstream request exceeded {self._timeout}s")
            raise UpstreamTransportError(ERROR_UPSTREAM_REQUEST_FAILED.format(label=self._label), self._label) from e
        except httpx.HTTPError as e:
            logger.warning(f"{self._label} upstream request failed: {e}")
            raise UpstreamTransportError(ERROR_UPSTREAM_REQUEST_FAILED.format(label=self._label), self._label) from e

        logger.debug(f"{self._label} upstream responded {result.status_code} ({len(result.body)} bytes)")
        return result

    async def _download(self, client: httpx.AsyncClient, url: str, params: dict[str, str]) -> UpstreamResponse:
        async with client.stream(
            "GET", url, params=params, headers=self._request_headers(), timeout=self._timeout
        ) as response:
            chunks: list[bytes] = []
            total = 0
            async for chunk in response.aiter_bytes():
                total += len(chunk)
                if total > self._max_response_bytes:
                    raise UpstreamTransportError(
                        f"{self._label} response exceeded {self._max_response_bytes} bytes", self._label
                    )
                chunks.append(chunk)

        headers = {
            name: value for name, value in response.headers.items() if name.lower() not in HOP_BY_HOP_HEADERS
        }
        return UpstreamResponse(status_code=response.status_code, headers=headers, body=b"".join(chunks))

    async def aclose(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
