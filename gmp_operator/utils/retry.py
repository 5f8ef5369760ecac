"""Retry policy and condition polling for transient API failures."""
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from loguru import logger

from ..exceptions import RetryBudgetExhausted, TransientError

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Capped exponential backoff bounded by an overall timeout (seconds)."""

    initial_interval: float = 0.5
    max_interval: float = 30.0
    timeout: float = 120.0
    factor: float = 2.0

    @classmethod
    def from_config(cls, config) -> "RetryPolicy":
        return cls(
            initial_interval=config.retry_initial_interval,
            max_interval=config.retry_max_interval,
            timeout=config.retry_timeout,
        )

    def intervals(self):
        """Yield successive sleep intervals."""
        interval = self.initial_interval
        while True:
            yield interval
            interval = min(interval * self.factor, self.max_interval)


async def retry_transient(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    description: str = "operation",
) -> T:
    """
    Await fn, retrying on TransientError until the policy deadline passes.

    fn is called from scratch on every attempt so that it re-reads current
    state before writing.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + policy.timeout
    last_error: Optional[Exception] = None

    for interval in policy.intervals():
        try:
            return await fn()
        except TransientError as e:
            last_error = e
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            logger.warning(f"Transient error during {description}, retrying in {interval:.1f}s: {e}")
            await asyncio.sleep(min(interval, remaining))

    raise RetryBudgetExhausted(f"{description} did not succeed within {policy.timeout}s: {last_error}")


async def await_condition(
    predicate: Callable[[], Awaitable[bool]],
    policy: RetryPolicy,
) -> bool:
    """Poll predicate with the policy's backoff. Returns False on timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + policy.timeout

    for interval in policy.intervals():
        if await predicate():
            return True
        remaining = deadline - loop.time()
        if remaining <= 0:
            return False
        await asyncio.sleep(min(interval, remaining))
    return False
