"""
feedlink Retry Backoff
======================

Exponential backoff with additive jitter for the persistent retry queue:

    delay(n) = base * 2**n + uniform(0, jitter_ceiling)

With the defaults the delays for attempt counts 0, 1, 2 fall in
[60, 70), [120, 130) and [240, 250) seconds.
"""

import random
from dataclasses import dataclass
from typing import Optional


@dataclass
class BackoffConfig:
    """Configuration for retry backoff."""
    base_delay: float = 60.0        # Seconds at attempt count 0
    jitter_ceiling: float = 10.0    # Exclusive upper bound of added jitter
    exponential_base: float = 2.0


class BackoffScheduler:
    """Computes the delay before the next retry of an item."""

    def __init__(self, config: Optional[BackoffConfig] = None, rng: Optional[random.Random] = None):
        """Initialize scheduler.

        Args:
            config: Backoff configuration
            rng: Random source for jitter; a private instance by default
        """
        self.config = config or BackoffConfig()
        self.rng = rng or random.Random()

    def delay(self, attempt_count: int) -> float:
        """Seconds to wait before retrying after attempt_count failures.

        Jitter is drawn fresh on every call.

        Raises:
            ValueError: If attempt_count is negative
        """
        if attempt_count < 0:
            raise ValueError(f"attempt_count must be >= 0, got {attempt_count}")

        exponential = self.config.base_delay * (self.config.exponential_base ** attempt_count)
        jitter = self.rng.random() * self.config.jitter_ceiling
        return exponential + jitter


# Global scheduler instance
_global_scheduler: Optional[BackoffScheduler] = None


def get_backoff_scheduler() -> BackoffScheduler:
    """Get the shared scheduler with default configuration."""
    global _global_scheduler

    if _global_scheduler is None:
        _global_scheduler = BackoffScheduler()

    return _global_scheduler


def compute_backoff(attempt_count: int) -> float:
    """Backoff delay in seconds using the shared scheduler."""
    return get_backoff_scheduler().delay(attempt_count)
