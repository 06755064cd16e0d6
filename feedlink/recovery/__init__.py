"""
feedlink Recovery
=================

Failure classification, backoff and the persistent retry queue.
"""

from .error_handler import FailureClassifier, FailureKind, is_retryable
from .retry_logic import BackoffConfig, BackoffScheduler, compute_backoff
from .retry_queue import RetryQueue, EnqueueResult, MAX_RETRIES

__all__ = [
    "FailureClassifier",
    "FailureKind",
    "is_retryable",
    "BackoffConfig",
    "BackoffScheduler",
    "compute_backoff",
    "RetryQueue",
    "EnqueueResult",
    "MAX_RETRIES",
]
