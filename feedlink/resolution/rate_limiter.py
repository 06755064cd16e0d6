"""
Outbound request throttling.

A minimum-interval limiter shared by everything in one process that fetches
from the aggregator. It is not shared across processes.
"""

import asyncio
import threading
import time
from typing import Awaitable, Callable, Optional

from ..utils.logging import get_logger_for_component


class RateLimiter:
    """Permit one request per ``min_interval`` seconds."""

    def __init__(self, min_interval: float = 0.5, clock: Callable[[], float] = time.monotonic):
        if min_interval < 0:
            raise ValueError("min_interval must be non-negative")
        self.min_interval = min_interval
        self.clock = clock
        self._last_permitted: Optional[float] = None
        self._lock = threading.Lock()
        self.logger = get_logger_for_component("rate_limiter")

    def try_acquire(self, now: Optional[float] = None) -> bool:
        """Take a permit if the interval has elapsed.

        Args:
            now: Timestamp to evaluate at; defaults to the clock

        Returns:
            True if the request may go ahead
        """
        with self._lock:
            now = self.clock() if now is None else now
            if self._last_permitted is None or now - self._last_permitted >= self.min_interval:
                self._last_permitted = now
                return True
            return False

    def wait_time(self, now: Optional[float] = None) -> float:
        """Seconds until the next permit becomes available."""
        with self._lock:
            if self._last_permitted is None:
                return 0.0
            now = self.clock() if now is None else now
            return max(0.0, self.min_interval - (now - self._last_permitted))

    async def acquire(self, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> None:
        """Wait until a permit is granted."""
        while not self.try_acquire():
            delay = self.wait_time()
            self.logger.debug(
                f"Rate limited, waiting {delay:.3f}s",
                extra={"category": "rate_limit", "delay_seconds": delay},
            )
            # wait_time can round to zero between calls; never busy-spin
            await sleep(max(delay, 0.001))

    def reset(self) -> None:
        with self._lock:
            self._last_permitted = None


# Global rate limiter instance
_rate_limiter: Optional[RateLimiter] = None
_rate_limiter_lock = threading.Lock()


def get_rate_limiter(min_interval: float = 0.5) -> RateLimiter:
    """Get the process-wide rate limiter (interval applies on first call)."""
    global _rate_limiter

    with _rate_limiter_lock:
        if _rate_limiter is None:
            _rate_limiter = RateLimiter(min_interval)
        return _rate_limiter
