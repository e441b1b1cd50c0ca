"""Retry/backoff strategies.

Two policies are in use:
- Exponential backoff between attempts of a send.http_request step
  (200ms, doubling, capped at 2s)
- Fixed delay after a run queue transport error in the worker loop

Usage:
    strategy = RetryStrategy.exponential(max_retries=2, base_delay=0.2, max_delay=2.0)
    for retry_number in range(1, strategy.max_retries + 1):
        ...
        await strategy.wait(retry_number)
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

Sleeper = Callable[[float], Awaitable[None]]


class RetryPolicy(str, Enum):
    """Available retry policies."""
    FIXED = "fixed"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class RetryStrategy:
    """Retry budget plus the delay to apply before each retry."""
    policy: RetryPolicy
    max_retries: int = 0
    base_delay: float = 0.0
    max_delay: float = 0.0

    @classmethod
    def fixed(cls, delay: float = 0.5) -> 'RetryStrategy':
        """The same delay before every retry."""
        return cls(
            policy=RetryPolicy.FIXED,
            base_delay=delay,
            max_delay=delay,
        )

    @classmethod
    def exponential(
        cls,
        max_retries: int,
        base_delay: float = 0.2,
        max_delay: float = 2.0,
    ) -> 'RetryStrategy':
        """Exponential backoff: base, 2*base, 4*base ... up to max_delay."""
        return cls(
            policy=RetryPolicy.EXPONENTIAL,
            max_retries=max(0, max_retries),
            base_delay=base_delay,
            max_delay=max_delay,
        )

    @property
    def max_attempts(self) -> int:
        return 1 + max(0, self.max_retries)

    def compute_delay(self, retry_number: int) -> float:
        """Delay in seconds before retry ``retry_number`` (1-based)."""
        if self.policy == RetryPolicy.EXPONENTIAL:
            delay = self.base_delay * (2 ** (retry_number - 1))
        else:
            delay = self.base_delay
        return min(delay, self.max_delay)

    async def wait(self, retry_number: int, sleep: Sleeper = asyncio.sleep) -> None:
        """Sleep for the delay that precedes retry ``retry_number``."""
        delay = self.compute_delay(retry_number)
        if delay > 0:
            await sleep(delay)


def http_step_backoff(retries: int) -> RetryStrategy:
    """Backoff used between attempts of an outbound HTTP step."""
    return RetryStrategy.exponential(max_retries=retries, base_delay=0.2, max_delay=2.0)
