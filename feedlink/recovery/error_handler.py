"""
feedlink Failure Classification
===============================

Decides whether a failed resolution is worth retrying, from the failure's
text description alone. The description is usually ``str(exception)`` of a
FeedLinkError, whose messages carry the keywords matched here.
"""

from enum import Enum
from typing import Optional, Sequence

from ..utils.logging import get_logger_for_component


class FailureKind(Enum):
    """Retry decision for a failure description."""

    RETRYABLE = "retryable"  # transient, schedule another attempt
    PERMANENT = "permanent"  # will not change on retry


class FailureClassifier:
    """Classifies failure descriptions as retryable or permanent.

    Matching is a case-insensitive substring search. Permanent patterns are
    checked first, so "HTTP 404 after connection reuse" is permanent.
    Descriptions that match nothing are treated as retryable.
    """

    PERMANENT_PATTERNS = (
        "http 404",
        "http 403",
        "invalid url",
        "malformed",
        "ssrf",
        "security violation",
        "no parseable content",
    )

    RETRYABLE_PATTERNS = (
        "timeout",
        "timed out",
        "connection",
        "network",
        "dns",
        "http 429",
        "http 502",
        "http 503",
        "http 504",
        "rate limit",
    )

    def __init__(
        self,
        permanent_patterns: Optional[Sequence[str]] = None,
        retryable_patterns: Optional[Sequence[str]] = None,
    ):
        self.permanent_patterns = tuple(
            p.lower() for p in (permanent_patterns or self.PERMANENT_PATTERNS)
        )
        self.retryable_patterns = tuple(
            p.lower() for p in (retryable_patterns or self.RETRYABLE_PATTERNS)
        )
        self.logger = get_logger_for_component("failure_classifier")

    def classify(self, description: str) -> FailureKind:
        """Classify a failure description."""
        text = (description or "").lower()

        kind, matched = FailureKind.RETRYABLE, None
        for pattern in self.permanent_patterns:
            if pattern in text:
                kind, matched = FailureKind.PERMANENT, pattern
                break
        else:
            for pattern in self.retryable_patterns:
                if pattern in text:
                    matched = pattern
                    break

        self.logger.debug(
            f"Classified failure as {kind.value}",
            extra={
                "category": "classification",
                "kind": kind.value,
                "pattern": matched,
                "description": (description or "")[:200],
            },
        )
        return kind

    def is_retryable(self, description: str) -> bool:
        return self.classify(description) is FailureKind.RETRYABLE


_default_classifier: Optional[FailureClassifier] = None


def get_failure_classifier() -> FailureClassifier:
    """Get the shared classifier with the default patterns."""
    global _default_classifier
    if _default_classifier is None:
        _default_classifier = FailureClassifier()
    return _default_classifier


def is_retryable(description: str) -> bool:
    """True unless the description names a permanent failure."""
    return get_failure_classifier().is_retryable(description)
