"""
Immediate retries with tenacity.

Refusals from the target are retried a fixed number of times back to
back, with no wait between attempts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_none,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


DEFAULT_MAX_ATTEMPTS = 3


@dataclass(frozen=True)
class RetryConfig:
    """How many immediate attempts to make, and on which errors.

    Attributes:
        max_attempts: Attempts including the first
        retry_exceptions: Exception types that trigger another attempt
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    retry_exceptions: tuple[type[BaseException], ...] = (Exception,)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")


async def retry_async(
    coro_func: Callable[..., Awaitable[T]],
    *args: Any,
    config: RetryConfig | None = None,
    **kwargs: Any,
) -> T:
    """Await ``coro_func(*args, **kwargs)`` until it succeeds or attempts run out.

    The last exception is re-raised once attempts are used up; exceptions
    outside ``retry_exceptions`` propagate at once.
    """
    config = config or RetryConfig()

    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_none(),
        retry=retry_if_exception_type(config.retry_exceptions),
        before_sleep=before_sleep_log(logger, logging.DEBUG),
        reraise=True,
    ):
        with attempt:
            return await coro_func(*args, **kwargs)

    raise RuntimeError("retry loop exited without a result")  # pragma: no cover
