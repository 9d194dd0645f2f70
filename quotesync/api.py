"""HTTP client for the remote quote service."""

from __future__ import annotations

import random
import time
from typing import Any

import httpx

from .config import config
from .exceptions import (
    QuoteSyncConfigError,
    QuoteSyncError,
    QuoteSyncInvalidResponseError,
    QuoteSyncUnavailableError,
)
from .models import Record
from .utils import DEFAULT_MAX_RETRIES, DEFAULT_RETRY_DELAY, DEFAULT_TIMEOUT


class QuoteServerClient:
    """Client for the remote quote service.

    Endpoints:
        GET  {server_url}/quotes        -> list of records
        PUT  {server_url}/quotes/{id}   -> upsert one record
    """

    def __init__(
        self,
        server_url: str | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize quote service client.

        Args:
            server_url: Base URL of the service (uses config if not provided)
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            timeout: Request timeout in seconds (default: 30.0)
            transport: Optional httpx transport (used for testing)
        """
        self.server_url = (server_url or config.server_url or "").rstrip("/")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._transport = transport

        if not self.server_url:
            raise QuoteSyncConfigError(
                "Server URL not configured. Please set QUOTESYNC_SERVER_URL "
                "or run 'quotesync init'."
            )

        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                headers={"Accept": "application/json"},
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def __enter__(self) -> QuoteServerClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Calculate delay before next retry using exponential backoff.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds
        """
        base_delay = self.retry_delay * (2**attempt)
        # Add jitter: +/- 25% of base delay
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """Make a request with retry logic.

        Network errors and 5xx responses are retried; other HTTP errors are
        raised immediately.

        Args:
            method: HTTP method
            endpoint: Endpoint path
            **kwargs: Additional arguments passed to httpx

        Returns:
            Response JSON data ({} for empty bodies)

        Raises:
            QuoteSyncUnavailableError: If the request fails after all retries
            QuoteSyncError: For non-retryable HTTP errors
        """
        url = f"{self.server_url}/{endpoint.lstrip('/')}"
        last_exception: Exception | None = None
        client = self._get_client()

        for attempt in range(self.max_retries + 1):
            try:
                response = client.request(method, url, **kwargs)
                response.raise_for_status()

                if not response.content:
                    return {}
                try:
                    return response.json()
                except ValueError as e:
                    raise QuoteSyncInvalidResponseError(
                        f"Invalid JSON response from {url}"
                    ) from e

            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code
                if 500 <= status_code < 600 or status_code == 429:
                    last_exception = QuoteSyncUnavailableError(
                        f"Server error {status_code} from {url}"
                    )
                    if attempt < self.max_retries:
                        time.sleep(self._calculate_retry_delay(attempt))
                        continue
                    raise last_exception from e
                raise QuoteSyncError(
                    f"Request to {url} failed with status {status_code}"
                ) from e
            except QuoteSyncError:
                raise
            except httpx.RequestError as e:
                last_exception = QuoteSyncUnavailableError(f"Network error: {e}")
                if attempt < self.max_retries:
                    time.sleep(self._calculate_retry_delay(attempt))
                    continue
                raise last_exception from e

        # If we get here, we've exhausted all retries
        if last_exception:
            raise last_exception
        raise QuoteSyncUnavailableError("Request failed after all retry attempts")

    def fetch_all(self) -> list[Record]:
        """Fetch every record from the service.

        Returns:
            List of remote records

        Raises:
            QuoteSyncUnavailableError: On transport failure or bad payload
        """
        data = self._request("GET", "/quotes")
        if isinstance(data, dict):
            data = data.get("quotes", data.get("data"))
        if not isinstance(data, list):
            raise QuoteSyncInvalidResponseError(
                f"Expected a list of quotes, got {type(data).__name__}"
            )
        try:
            return [Record.from_dict(item) for item in data]
        except (TypeError, ValueError, AttributeError) as e:
            raise QuoteSyncInvalidResponseError(
                f"Invalid quote in response: {e}"
            ) from e

    def upsert(self, record: Record) -> dict[str, Any]:
        """Insert or replace a record on the service.

        Args:
            record: Record to store

        Returns:
            Acknowledgement from the service
        """
        data = self._request("PUT", f"/quotes/{record.id}", json=record.to_dict())
        return data if isinstance(data, dict) else {"success": True}
