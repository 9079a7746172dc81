"""Rate-limited, retrying HTTP client for marketplace pages."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from offer_scout.config import settings
from offer_scout.ingest.rate_limiter import RateLimiter
from offer_scout.ingest.retry import with_retry

logger = logging.getLogger(__name__)

DEFAULT_ACCEPT = "text/html,application/json"


class FetchError(RuntimeError):
    """Raised when a response has a non-success status."""

    def __init__(self, status_code: int, url: str):
        super().__init__(f"HTTP {status_code} for {url}")
        self.status_code = status_code
        self.url = url


class FetchClient:
    """
    Plain HTTP GET behind a process-wide rate limiter and retry policy.

    Each attempt takes its own rate limiter slot. Transport errors and
    non-success statuses are both retried (2 retries, 0.5s to 4s backoff by
    default) before the last error is raised to the caller.
    """

    def __init__(
        self,
        user_agent: Optional[str] = None,
        requests_per_second: Optional[float] = None,
        retries: Optional[int] = None,
        min_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.user_agent = user_agent or settings.user_agent
        self.retries = settings.http_retries if retries is None else retries
        self.min_delay = settings.http_retry_min_delay if min_delay is None else min_delay
        self.max_delay = settings.http_retry_max_delay if max_delay is None else max_delay
        self.timeout = timeout or settings.http_timeout_seconds
        self.limiter = RateLimiter(
            settings.crawl_requests_per_second if requests_per_second is None else requests_per_second,
            name="fetch",
        )
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the underlying httpx client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
                headers={
                    "User-Agent": self.user_agent,
                    "Accept": DEFAULT_ACCEPT,
                },
            )
        return self._client

    async def close(self):
        """Close the underlying HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "FetchClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def get(self, url: str, headers: Optional[dict[str, str]] = None) -> httpx.Response:
        """
        GET a URL and return the successful response.

        Raises:
            FetchError: If the final attempt returned a non-success status
            httpx.HTTPError: If the final attempt failed in transport
        """
        client = self._get_client()

        async def attempt() -> httpx.Response:
            await self.limiter.acquire()
            response = await client.get(url, headers=headers)
            if not response.is_success:
                raise FetchError(response.status_code, url)
            return response

        return await with_retry(
            attempt,
            retries=self.retries,
            min_delay=self.min_delay,
            max_delay=self.max_delay,
            label=f"GET {url}",
        )

    async def get_text(self, url: str, headers: Optional[dict[str, str]] = None) -> str:
        """GET a URL and return the body as text."""
        response = await self.get(url, headers=headers)
        return response.text

    async def get_json(self, url: str, headers: Optional[dict[str, str]] = None) -> Any:
        """GET a URL and return the decoded JSON body."""
        response = await self.get(url, headers=headers)
        return response.json()
