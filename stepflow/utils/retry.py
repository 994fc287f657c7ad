from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


def compute_backoff(
    attempt: int,
    initial_delay: float = 1.0,
    multiplier: float = 2.0,
    max_delay: float = 10.0,
    jitter: float = 0.0,
) -> float:
    """Compute capped exponential backoff with jitter for a 1-based attempt."""
    delay = min(initial_delay * multiplier ** max(attempt - 1, 0), max_delay)
    return delay + random.uniform(0, jitter)


async def schedule_retry(delay: float) -> None:
    """Sleep for computed backoff delay before retrying."""
    await asyncio.sleep(delay)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff shared by every retrying call site."""

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    multiplier: float = 2.0
    jitter: float = 0.0

    def delay_for(self, attempt: int, hint: Optional[float] = None) -> float:
        delay = compute_backoff(
            attempt,
            initial_delay=self.initial_delay,
            multiplier=self.multiplier,
            max_delay=self.max_delay,
            jitter=self.jitter,
        )
        if hint:
            delay = min(max(delay, hint), self.max_delay)
        return delay


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    is_retryable: Callable[[BaseException], bool],
    *,
    label: str = "operation",
) -> T:
    """Run ``operation`` until it succeeds, fails permanently or attempts run out.

    Errors rejected by ``is_retryable`` propagate immediately; the last
    retryable error propagates once ``policy.max_attempts`` is reached.
    """
    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as exc:
            if not is_retryable(exc) or attempt >= policy.max_attempts:
                raise
            delay = policy.delay_for(attempt, getattr(exc, "retry_after", None))
            logger.warning(
                f"{label} failed on attempt {attempt}/{policy.max_attempts}, "
                f"retrying in {delay:.2f}s: {exc}"
            )
            await schedule_retry(delay)
            attempt += 1
