from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY_MS = 1000


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS

    def delay_ms(self, attempt: int) -> int:
        return self.base_delay_ms * (2**attempt)


async def with_retry(
    op: Callable[[], Awaitable[T]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
    *,
    label: str = "operation",
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> T:
    """Run ``op`` up to ``max_attempts`` times with exponential backoff.

    After failed attempt ``n`` (numbered from 1) the caller's task sleeps
    ``base_delay_ms * 2**n`` milliseconds. No sleep follows the final attempt;
    its exception is re-raised unchanged.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    policy = RetryPolicy(max_attempts=max_attempts, base_delay_ms=base_delay_ms)
    for attempt in range(1, max_attempts + 1):
        try:
            return await op()
        except Exception as exc:
            if attempt == max_attempts:
                logger.warning("%s failed on final attempt %d/%d: %s", label, attempt, max_attempts, exc)
                raise
            delay_ms = policy.delay_ms(attempt)
            logger.warning(
                "%s attempt %d/%d failed: %s; retrying in %dms", label, attempt, max_attempts, exc, delay_ms
            )
            await sleep(delay_ms / 1000.0)

    raise AssertionError("unreachable")
