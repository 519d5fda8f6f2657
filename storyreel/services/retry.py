from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx

from storyreel.errors import ProviderError, RateLimitedError

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class BackoffPolicy:
    max_retries: int = 3
    rate_limit_base: float = 2.0
    transient_base: float = 1.0
    multiplier: float = 2.0

    def delay_for(self, error: BaseException, retry_index: int) -> float:
        base = self.rate_limit_base if isinstance(error, RateLimitedError) else self.transient_base
        return base * (self.multiplier**retry_index)


def is_transient(error: BaseException) -> bool:
    if isinstance(error, ProviderError):
        return error.retryable
    return isinstance(error, httpx.TransportError)


async def call_with_backoff(
    operation: Callable[[], Awaitable[T]],
    policy: BackoffPolicy,
    *,
    sleep: Sleep = asyncio.sleep,
    logger: Optional[logging.Logger] = None,
    context: dict[str, Any] | None = None,
) -> T:
    log = logger or logging.getLogger(__name__)
    retries = 0
    while True:
        try:
            return await operation()
        except Exception as exc:
            if not is_transient(exc) or retries >= policy.max_retries:
                raise
            delay = policy.delay_for(exc, retries)
            log.warning(
                "provider request failed, backing off",
                extra={
                    **(context or {}),
                    "retry": retries + 1,
                    "max_retries": policy.max_retries,
                    "delay": delay,
                    "rate_limited": isinstance(exc, RateLimitedError),
                    "error": str(exc),
                },
            )
            await sleep(delay)
            retries += 1
