"""
Direct transport using httpx.

Requests go out under the caller's own network identity, gated by a
shared inter-request throttle. Refusals (429/403/5xx) and connection
failures get a short burst of immediate retries, never backoff.
"""

from __future__ import annotations

import logging
import time

import httpx

from specharvest.core.config.models import TransportMode
from specharvest.core.fetch.retries import RetryConfig, retry_async
from specharvest.core.fetch.throttling import RequestThrottle

from .base import BlockedError, FetchResult, NetworkError, Transport

logger = logging.getLogger(__name__)


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Status codes the target uses to refuse us
BLOCKED_STATUS_CODES = {403, 429}


def is_blocking_status(status_code: int) -> bool:
    return status_code in BLOCKED_STATUS_CODES or 500 <= status_code < 600


class _RefusedResponse(Exception):
    """Internal signal: retryable refusal status."""

    def __init__(self, response: httpx.Response):
        super().__init__(f"status {response.status_code}")
        self.response = response


class DirectTransport(Transport):
    """Rate-limited fetches without a proxy or key."""

    def __init__(
        self,
        throttle: RequestThrottle,
        *,
        timeout: float = 30.0,
        max_attempts: int = 3,
        user_agent: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize direct transport.

        Args:
            throttle: Shared throttle enforcing the inter-request delay
            timeout: Request timeout in seconds
            max_attempts: Immediate attempts before reporting a block
            user_agent: Custom user agent
            client: Pre-built httpx client (tests inject a MockTransport)
        """
        self.throttle = throttle
        self.timeout = timeout
        self.retry_config = RetryConfig(
            max_attempts=max_attempts,
            retry_exceptions=(_RefusedResponse, httpx.TransportError),
        )
        self.headers = {
            "User-Agent": user_agent or DEFAULT_USER_AGENT,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
        }
        self._client = client
        self._owns_client = client is None

    @property
    def mode(self) -> TransportMode:
        return TransportMode.DIRECT

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                headers=self.headers,
            )
            self._owns_client = True
        return self._client

    async def _attempt(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        response = await client.get(url, headers=self.headers)
        if is_blocking_status(response.status_code):
            raise _RefusedResponse(response)
        return response

    async def fetch_url(self, url: str) -> FetchResult:
        """Fetch a URL after honoring the throttle."""
        client = self._ensure_client()

        async with self.throttle.slot():
            start = time.perf_counter()
            try:
                response = await retry_async(self._attempt, client, url, config=self.retry_config)
            except _RefusedResponse as e:
                raise BlockedError(
                    f"Direct request refused with status {e.response.status_code} "
                    f"after {self.retry_config.max_attempts} attempts",
                    url=url,
                    status_code=e.response.status_code,
                ) from e
            except httpx.TransportError as e:
                raise NetworkError(
                    f"Direct request failed after {self.retry_config.max_attempts} attempts: {e}",
                    url=url,
                    cause=e,
                ) from e
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                # Redirect loops, undecodable bodies: no retry
                raise NetworkError(
                    f"Direct request failed: {type(e).__name__}: {e}",
                    url=url,
                    cause=e,
                ) from e
            elapsed_ms = (time.perf_counter() - start) * 1000

        if not response.is_success:
            raise NetworkError(
                f"Direct request returned status {response.status_code}",
                url=url,
                status_code=response.status_code,
            )

        return FetchResult(
            url=url,
            status_code=response.status_code,
            html=response.text,
            transport=self.mode,
            elapsed_ms=elapsed_ms,
        )

    async def close(self) -> None:
        """Close the HTTP client if we created it."""
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
