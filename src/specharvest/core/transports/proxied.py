"""
Proxied transport backed by a rendering API (ScrapingBee-style).

Each request carries the first usable key from the shared KeyPool. A 429
or 403 from the API means the key is spent: it is marked exhausted and
the caller is told to rotate via KeyExhaustedError.
"""

from __future__ import annotations

import logging
import time

import httpx

from specharvest.core.config.models import ProxyConfig, TransportMode
from specharvest.core.fetch.keys import FailureReason, KeyPool

from .base import FetchResult, KeyExhaustedError, NetworkError, Transport

logger = logging.getLogger(__name__)


# API status -> why the key is no longer usable
KEY_FAILURE_STATUS = {
    429: FailureReason.RATE_LIMITED,
    403: FailureReason.FORBIDDEN,
}


class ProxiedTransport(Transport):
    """Fetches through the rendering API, rotating keys on exhaustion."""

    def __init__(
        self,
        pool: KeyPool,
        config: ProxyConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ):
        self.pool = pool
        self.config = config or ProxyConfig()
        self._client = client
        self._owns_client = client is None

    @property
    def mode(self) -> TransportMode:
        return TransportMode.PROXIED

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout_seconds),
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    def build_params(self, api_key: str, url: str) -> dict[str, str]:
        """Query parameters for one API call."""
        return {
            "api_key": api_key,
            "url": url,
            "render_js": "true" if self.config.render_js else "false",
        }

    async def fetch_url(self, url: str) -> FetchResult:
        record = self.pool.next_usable_key()
        if record is None:
            raise KeyExhaustedError("No usable proxy API key", url=url)

        client = self._ensure_client()
        start = time.perf_counter()
        try:
            response = await client.get(
                self.config.endpoint,
                params=self.build_params(record.key, url),
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NetworkError(
                f"Proxied request failed: {type(e).__name__}: {e}",
                url=url,
                cause=e,
            ) from e
        elapsed_ms = (time.perf_counter() - start) * 1000

        reason = KEY_FAILURE_STATUS.get(response.status_code)
        if reason is not None:
            self.pool.mark_exhausted(record, reason)
            raise KeyExhaustedError(
                f"API key {record.masked} rejected with status {response.status_code}",
                url=url,
                status_code=response.status_code,
                key=record.masked,
            )

        if not response.is_success:
            raise NetworkError(
                f"Proxied request returned status {response.status_code}",
                url=url,
                status_code=response.status_code,
            )

        logger.debug("Proxied fetch of %s via key %s took %.0fms", url, record.masked, elapsed_ms)
        return FetchResult(
            url=url,
            status_code=response.status_code,
            html=response.text,
            transport=self.mode,
            elapsed_ms=elapsed_ms,
            key=record.masked,
        )

    async def close(self) -> None:
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
