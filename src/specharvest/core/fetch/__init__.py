"""Fetch utilities - key pool, throttling, retries."""

from .keys import FailureReason, KeyPool, KeyRecord, mask_key
from .retries import RetryConfig, retry_async
from .throttling import RequestThrottle, ThrottleStats

__all__ = [
    "FailureReason",
    "KeyPool",
    "KeyRecord",
    "mask_key",
    "RetryConfig",
    "retry_async",
    "RequestThrottle",
    "ThrottleStats",
]
