"""
Retry mechanism for resilient read operations.
"""

import asyncio
import random
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

from shared.logging import get_logger


RetryCallback = Callable[[Exception, int, float], None]


class RetryPolicy:
    """Configuration for retry behavior."""

    def __init__(self,
                 max_attempts: int = 3,
                 base_delay: float = 1.0,
                 max_delay: float = 60.0,
                 exponential_base: float = 2.0,
                 jitter: bool = True,
                 backoff_strategy: str = "exponential",
                 retry_on: Tuple[Type[BaseException], ...] = (Exception,),
                 on_retry: Optional[RetryCallback] = None):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.backoff_strategy = backoff_strategy
        self.retry_on = retry_on
        self.on_retry = on_retry

    def with_callback(self, on_retry: Optional[RetryCallback]) -> "RetryPolicy":
        """Copy of this policy with a different retry callback."""
        return RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            exponential_base=self.exponential_base,
            jitter=self.jitter,
            backoff_strategy=self.backoff_strategy,
            retry_on=self.retry_on,
            on_retry=on_retry,
        )


async def call_with_retry(func: Callable[[], Awaitable[Any]],
                          policy: RetryPolicy,
                          operation: str = "operation") -> Any:
    """Run ``func`` under ``policy``.

    Exceptions matching ``policy.retry_on`` are retried until
    ``max_attempts`` is reached, after which the last one is re-raised
    unchanged. Anything else, including ``asyncio.CancelledError``,
    propagates immediately and is never counted as an attempt failure.
    """
    logger = get_logger(f"retry.{operation}")

    for attempt in range(1, policy.max_attempts + 1):
        try:
            result = await func()

            if attempt > 1:
                logger.info("Retry succeeded", attempt=attempt, operation=operation)

            return result

        except policy.retry_on as e:
            if attempt == policy.max_attempts:
                logger.error(
                    "All retry attempts exhausted",
                    attempt=attempt,
                    max_attempts=policy.max_attempts,
                    operation=operation,
                    error=str(e)
                )
                raise

            delay = calculate_delay(attempt, policy)

            if policy.on_retry is not None:
                policy.on_retry(e, attempt, delay)

            await asyncio.sleep(delay)

    # max_attempts >= 1 so the loop always returns or raises
    raise AssertionError("unreachable")


def calculate_delay(attempt: int, policy: RetryPolicy) -> float:
    """Calculate delay after the given (1-based) failed attempt."""
    if policy.backoff_strategy == "exponential":
        delay = policy.base_delay * (policy.exponential_base ** (attempt - 1))
    elif policy.backoff_strategy == "linear":
        delay = policy.base_delay * attempt
    elif policy.backoff_strategy == "fixed":
        delay = policy.base_delay
    else:
        delay = policy.base_delay

    delay = min(delay, policy.max_delay)

    if policy.jitter:
        jitter_amount = delay * 0.1  # 10% jitter
        delay += random.uniform(-jitter_amount, jitter_amount)

    return max(0.0, delay)
