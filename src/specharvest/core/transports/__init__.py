"""Fetch transports - direct (throttled) and proxied (key-backed)."""

from .base import (
    BlockedError,
    FetchResult,
    KeyExhaustedError,
    NetworkError,
    Transport,
    TransportError,
)
from .direct import DirectTransport
from .proxied import ProxiedTransport

__all__ = [
    "BlockedError",
    "FetchResult",
    "KeyExhaustedError",
    "NetworkError",
    "Transport",
    "TransportError",
    "DirectTransport",
    "ProxiedTransport",
]
