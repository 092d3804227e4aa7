"""
Retry with linear backoff, for blocking calls and for coroutines.

Only the exception types listed in the policy are retried. Anything else
propagates immediately, and the last retryable exception is re-raised once
the attempts are used up.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from ..config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    retry_on_exceptions: Tuple[Type[BaseException], ...] = (Exception,)

    @classmethod
    def from_retries(cls, retries: int, base_delay_seconds: float, retry_on_exceptions: Tuple[Type[BaseException], ...]) -> RetryPolicy:
        """Policy for one initial attempt plus ``retries`` retries."""
        return cls(max_attempts=retries + 1, base_delay_seconds=base_delay_seconds, retry_on_exceptions=retry_on_exceptions)

    def compute_backoff(self, attempt_index_zero_based: int) -> float:
        return self.base_delay_seconds * (attempt_index_zero_based + 1)


def with_retry(fn: Callable[[], T], *, policy: RetryPolicy, sleep: Callable[[float], None] = time.sleep) -> T:
    """Execute a blocking function, retrying on the policy's exceptions."""
    last_exc = None
    for attempt in range(policy.max_attempts):
        try:
            return fn()
        except policy.retry_on_exceptions as exc:
            last_exc = exc
            if attempt >= policy.max_attempts - 1:
                break
            delay = policy.compute_backoff(attempt)
            logger.debug(f"Retrying in {delay:.1f}s after attempt {attempt + 1}/{policy.max_attempts}: {exc}")
            sleep(delay)

    if last_exc:
        raise last_exc
    raise RuntimeError("with_retry exhausted without exception context")


async def with_retry_async(fn: Callable[[], Awaitable[T]], *, policy: RetryPolicy,
                           sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> T:
    """Await a coroutine factory, retrying on the policy's exceptions."""
    last_exc = None
    for attempt in range(policy.max_attempts):
        try:
            return await fn()
        except policy.retry_on_exceptions as exc:
            last_exc = exc
            if attempt >= policy.max_attempts - 1:
                break
            delay = policy.compute_backoff(attempt)
            logger.debug(f"Retrying in {delay:.1f}s after attempt {attempt + 1}/{policy.max_attempts}: {exc}")
            await sleep(delay)

    if last_exc:
        raise last_exc
    raise RuntimeError("with_retry_async exhausted without exception context")
