"""Minimum-spacing rate limiter shared by the fetch client and the judgment client."""

import asyncio
import logging
import math
import time

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Leaky-bucket style limiter: grants at most one acquisition per interval.

    Callers are serialized against a single "next allowed" timestamp in the
    order they call acquire(). Idle time does not bank tokens, so bursts are
    never granted. A non-positive or non-finite rate disables limiting.
    """

    def __init__(self, rate: float, period: float = 1.0, name: str = "default"):
        """
        Args:
            rate: Acquisitions allowed per period
            period: Period length in seconds
            name: Label used in debug logs
        """
        self.name = name
        self.enabled = math.isfinite(rate) and rate > 0 and period > 0
        self.interval = period / rate if self.enabled else 0.0
        self._next_allowed = time.monotonic()

    async def acquire(self) -> float:
        """
        Wait for this caller's slot.

        Returns:
            Seconds spent waiting
        """
        if not self.enabled:
            return 0.0

        # Reserve the slot before suspending so concurrent callers queue up
        # behind each other in arrival order.
        now = time.monotonic()
        wait_time = max(0.0, self._next_allowed - now)
        self._next_allowed = max(self._next_allowed + self.interval, now + self.interval)

        if wait_time > 0:
            logger.debug(f"Rate limiter {self.name}: waiting {wait_time:.2f}s")
            await asyncio.sleep(wait_time)
        return wait_time

    @classmethod
    def per_minute(cls, rate: float, name: str = "default") -> "RateLimiter":
        """Create a limiter expressed in calls per minute."""
        return cls(rate, period=60.0, name=name)
