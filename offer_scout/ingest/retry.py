"""Capped exponential backoff around fallible coroutines."""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, min_delay: float, max_delay: float, jitter: float = 0.0) -> float:
    """
    Delay before the retry that follows a failed attempt.

    Args:
        attempt: Zero-based index of the attempt that just failed
        min_delay: Delay after the first failure, in seconds
        max_delay: Cap applied before jitter
        jitter: Extra random fraction of the capped delay (0.2 adds up to 20%)
    """
    delay = min(max_delay, min_delay * (2 ** attempt))
    if jitter > 0:
        delay += delay * jitter * random.random()
    return delay


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    retries: int,
    min_delay: float,
    max_delay: float,
    jitter: float = 0.0,
    label: Optional[str] = None,
) -> T:
    """
    Run operation, retrying every failure up to `retries` extra times.

    All exceptions are treated alike. After the final attempt fails the last
    error is re-raised unchanged.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        retries: Number of retries after the first attempt
        min_delay: Backoff after the first failure, in seconds
        max_delay: Backoff cap, in seconds
        jitter: Random extra fraction added to each backoff
        label: Optional name for log messages
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            if attempt >= retries:
                raise
            delay = backoff_delay(attempt, min_delay, max_delay, jitter)
            logger.warning(
                f"{label or 'operation'} failed ({type(e).__name__}: {e}), "
                f"retrying in {delay:.2f}s (attempt {attempt + 1}/{retries + 1})"
            )
            await asyncio.sleep(delay)
            attempt += 1
