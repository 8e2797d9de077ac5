"""Fallback and retry helpers shared by persistence and generation call sites."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_fallback(
    operation: Callable[[], Awaitable[T]],
    fallback: T,
    *,
    label: str = "operation",
) -> T:
    """Run ``operation``; on any failure log it and return ``fallback``."""
    try:
        return await operation()
    except Exception as exc:
        logger.warning("%s failed, using fallback: %s", label, exc)
        return fallback


def _never_retry(_exc: BaseException) -> bool:
    return False


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for one class of failures."""

    max_attempts: int = 3
    base_delay: float = 1.0
    backoff_factor: float = 2.0
    max_delay: float = 30.0
    retryable: Callable[[BaseException], bool] = _never_retry

    def delay_for(self, attempt: int) -> float:
        """Delay after the given failed attempt (0-indexed): 1s, 2s, 4s..."""
        return min(self.base_delay * (self.backoff_factor ** attempt), self.max_delay)


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> T:
    """Call ``operation`` retrying only errors the policy marks retryable.

    Non-retryable errors propagate immediately. When attempts run out the last
    retryable error propagates.
    """
    sleeper = sleep or asyncio.sleep
    attempts = max(int(policy.max_attempts), 1)
    for attempt in range(attempts):
        try:
            return await operation()
        except Exception as exc:
            if not policy.retryable(exc) or attempt == attempts - 1:
                raise
            wait_s = policy.delay_for(attempt)
            logger.warning(
                "Retryable failure (attempt %s/%s), retrying in %.1fs: %s",
                attempt + 1,
                attempts,
                wait_s,
                exc,
            )
            await sleeper(wait_s)
    raise RuntimeError("call_with_retry exhausted without a result")
