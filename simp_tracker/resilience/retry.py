"""Retry logic with exponential backoff and jitter

Implements retry logic for store write conflicts that:
1. Only retries conflicts (optimistic-increment misses, serialization failures)
2. Uses exponential backoff with jitter to prevent thundering herd
3. Gives up after max retries and surfaces the last conflict
"""

import asyncio
import random
import logging
from typing import Awaitable, Callable, Any, TypeVar
from functools import wraps

from simp_tracker import config
from simp_tracker.exceptions import ConflictError
from simp_tracker.resilience.metrics import record_retry

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Retry configuration
MAX_RETRIES = config.CONFLICT_MAX_RETRIES
BASE_DELAY = config.RETRY_BASE_DELAY  # seconds
MAX_DELAY = 2.0  # seconds
JITTER = 0.1  # 10% random jitter


def is_retryable_error(exc: Exception) -> bool:
    """
    Determine if error is a transient write conflict.

    Retryable errors:
    - ConflictError (compare-and-set miss, serialization failure, deadlock)

    Non-retryable errors:
    - ValidationError / NotFoundError (caller must fix input)
    - StoreError (propagated unchanged)

    Args:
        exc: The exception to check

    Returns:
        True if error should be retried, False otherwise
    """
    return isinstance(exc, ConflictError)


def calculate_backoff(attempt: int, base_delay: float = BASE_DELAY) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Formula: delay = min(base_delay * (2 ** attempt), MAX_DELAY) + jitter
    Jitter is random value between -10% and +10% of delay

    Args:
        attempt: The retry attempt number (0-indexed)
        base_delay: Delay for the first retry

    Returns:
        Delay in seconds
    """
    delay = min(base_delay * (2 ** attempt), MAX_DELAY)

    jitter_amount = random.uniform(-JITTER * delay, JITTER * delay)
    final_delay = delay + jitter_amount

    return max(final_delay, 0.0)


async def retry_with_backoff(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_retries: int = MAX_RETRIES,
    base_delay: float = BASE_DELAY,
    **kwargs: Any
) -> T:
    """
    Retry async function with exponential backoff.

    Only retries write conflicts. Gives up after max_retries retries.

    Args:
        func: Async function to retry
        max_retries: Maximum number of retry attempts
        base_delay: Delay before the first retry
        *args, **kwargs: Arguments to pass to func

    Returns:
        Result from func

    Raises:
        Last exception if all retries exhausted or non-retryable error

    Example:
        result = await retry_with_backoff(self._award_once, user_id, awards, occurred_at, relationship_id)
    """
    name = getattr(func, "__name__", "operation")

    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)

        except Exception as e:
            if not is_retryable_error(e):
                raise

            if attempt == max_retries:
                logger.error(
                    f"[RETRY] All {max_retries} retries exhausted for {name}"
                )
                raise

            backoff = calculate_backoff(attempt, base_delay)

            record_retry(name.lstrip('_'))

            logger.info(
                f"[RETRY] Attempt {attempt + 1}/{max_retries} for {name} "
                f"after {backoff:.2f}s (error: {type(e).__name__})"
            )

            await asyncio.sleep(backoff)

    raise RuntimeError("Retry logic failed unexpectedly")


def with_retry(max_retries: int = MAX_RETRIES, base_delay: float = BASE_DELAY) -> Callable:
    """
    Decorator to add conflict retry logic to async functions.

    Example:
        @with_retry(max_retries=3)
        async def save_progress():
            ...
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await retry_with_backoff(
                func, *args, max_retries=max_retries, base_delay=base_delay, **kwargs
            )
        return wrapper
    return decorator
