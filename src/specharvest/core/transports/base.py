"""
Transport base classes and data structures.

Defines the interface contract shared by the direct and proxied
transports so the alternator can treat transport choice as policy.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from specharvest.core.config.models import TransportMode

if TYPE_CHECKING:
    from specharvest.core.catalog.models import WorkItem


@dataclass
class FetchResult:
    """Raw page content returned by a transport."""

    url: str
    status_code: int
    html: str
    transport: TransportMode

    elapsed_ms: float = 0.0
    fetched_at: datetime = field(default_factory=datetime.utcnow)
    attempts: int = 1

    # Masked key used by the proxied transport
    key: str | None = None

    @property
    def ok(self) -> bool:
        """Check if request was successful (2xx status)."""
        return 200 <= self.status_code < 300

    @property
    def content_length(self) -> int:
        """Get content length in bytes."""
        return len(self.html.encode("utf-8"))


class Transport(ABC):
    """Abstract base class for fetch transports."""

    @property
    @abstractmethod
    def mode(self) -> TransportMode:
        """Transport identifier."""

    @abstractmethod
    async def fetch_url(self, url: str) -> FetchResult:
        """Fetch a URL and return its content.

        Raises:
            TransportError: On any failure
        """

    async def fetch(self, item: "WorkItem") -> FetchResult:
        """Fetch the source page of a work item."""
        return await self.fetch_url(item.source_url)

    async def close(self) -> None:
        """Release transport resources."""

    async def __aenter__(self) -> "Transport":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


class TransportError(Exception):
    """Base exception for transport errors."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.cause = cause


class BlockedError(TransportError):
    """Direct request refused by the target (429/403/5xx) after local retries."""


class KeyExhaustedError(TransportError):
    """Proxied request failed because of its key; the caller should rotate."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        key: str | None = None,
    ):
        super().__init__(message, url, status_code)
        self.key = key


class NetworkError(TransportError):
    """Network-level failure or unexpected status on either transport."""
