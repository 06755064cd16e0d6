"""
feedlink Retry Queue
====================

Persistent retry scheduling for failed link resolutions. The queue has no
storage of its own: retry state lives on the article row (status,
retry_count, next_retry_at, last_error) and every transition is one UPDATE
through ArticleRepository.

Attempt counting: the caller passes the number of attempts made so far.
The stored retry_count is set to that number (never lowered). Counts below
max_retries schedule a retry; a count at or above it is a permanent failure
with retry_count held at max_retries and no next_retry_at.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from .error_handler import FailureClassifier, FailureKind, get_failure_classifier
from .retry_logic import BackoffScheduler, get_backoff_scheduler
from ..database.models import Article, RetryableItem, utc_now
from ..storage.article_repository import ArticleRepository
from ..utils.logging import get_logger_for_component

MAX_RETRIES = 3


@dataclass
class EnqueueResult:
    """Outcome of handing a failure to the queue."""

    scheduled: bool
    next_retry_at: Optional[datetime] = None
    permanent: bool = False
    reason: Optional[str] = None


class RetryQueue:
    """Schedules, completes and permanently fails article retries."""

    def __init__(
        self,
        repository: ArticleRepository,
        classifier: Optional[FailureClassifier] = None,
        scheduler: Optional[BackoffScheduler] = None,
        max_retries: int = MAX_RETRIES,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the queue.

        Args:
            repository: Article repository holding retry state
            classifier: Failure classifier
            scheduler: Backoff scheduler
            max_retries: Attempts before an item fails permanently
            clock: Returns the current aware UTC datetime
        """
        self.repository = repository
        self.classifier = classifier or get_failure_classifier()
        self.scheduler = scheduler or get_backoff_scheduler()
        self.max_retries = max_retries
        self.clock = clock
        self.logger = get_logger_for_component("retry_queue")

    def enqueue(
        self,
        item_id: int,
        error: str,
        current_attempt_count: int,
        now: Optional[datetime] = None,
    ) -> EnqueueResult:
        """Record a failed attempt and decide what happens next.

        Args:
            item_id: Article ID
            error: Failure description
            current_attempt_count: Attempts made so far, including this one
            now: Evaluation time; defaults to the clock

        Returns:
            EnqueueResult; scheduled is False for permanent failures and
            unknown items
        """
        now = now or self.clock()
        log_extra = {
            "category": "processing_queue",
            "article_id": item_id,
            "attempt_count": current_attempt_count,
        }

        if self.repository.get_article(item_id) is None:
            self.logger.warning(f"Cannot enqueue unknown article {item_id}", extra=log_extra)
            return EnqueueResult(scheduled=False, reason="unknown item")

        if current_attempt_count >= self.max_retries:
            self._fail_permanently(item_id, error, self.max_retries)
            self.logger.warning(
                f"Article {item_id} exhausted {self.max_retries} retries: {error}",
                extra={**log_extra, "outcome": "max_retries"},
            )
            return EnqueueResult(scheduled=False, permanent=True, reason="max retries reached")

        if self.classifier.classify(error) is FailureKind.PERMANENT:
            self._fail_permanently(item_id, error, current_attempt_count)
            self.logger.info(
                f"Article {item_id} failed permanently: {error}",
                extra={**log_extra, "outcome": "permanent"},
            )
            return EnqueueResult(scheduled=False, permanent=True, reason="permanent error")

        delay = self.scheduler.delay(current_attempt_count)
        next_retry_at = now + timedelta(seconds=delay)
        self.repository.record_retry_state(
            item_id,
            retry_count=current_attempt_count,
            next_retry_at=next_retry_at,
            last_error=error,
        )
        self.logger.info(
            f"Scheduled retry for article {item_id} in {delay:.1f}s",
            extra={**log_extra, "outcome": "scheduled", "next_retry_at": next_retry_at.isoformat()},
        )
        return EnqueueResult(scheduled=True, next_retry_at=next_retry_at)

    # Public name used by the processing pipeline and external callers
    enqueue_for_retry = enqueue

    def mark_complete(self, item_id: int, final_url: Optional[str] = None) -> bool:
        """Mark an item resolved. The attempt count is kept.

        Raises:
            DuplicateResourceError: If final_url already belongs to another article
        """
        updated = self.repository.mark_as_processed(item_id, final_url=final_url, processed_at=self.clock())
        if updated:
            self.logger.info(
                f"Article {item_id} resolved",
                extra={"category": "processing_queue", "article_id": item_id, "outcome": "success"},
            )
        else:
            self.logger.warning(
                f"Cannot complete unknown article {item_id}",
                extra={"category": "processing_queue", "article_id": item_id},
            )
        return updated

    def mark_permanent_failure(self, item_id: int, error: str) -> bool:
        """Fail an item without further retries, keeping its attempt count."""
        article = self.repository.get_article(item_id)
        if article is None:
            self.logger.warning(
                f"Cannot fail unknown article {item_id}",
                extra={"category": "processing_queue", "article_id": item_id},
            )
            return False

        self._fail_permanently(item_id, error, article.retry_count)
        self.logger.info(
            f"Article {item_id} marked as permanently failed: {error}",
            extra={"category": "processing_queue", "article_id": item_id, "outcome": "permanent"},
        )
        return True

    def find_due(self, now: Optional[datetime] = None, limit: Optional[int] = None) -> List[Article]:
        """Items whose scheduled retry time has passed, earliest first."""
        return self.repository.find_pending_retries(now or self.clock(), limit)

    def get_item(self, item_id: int) -> Optional[RetryableItem]:
        article = self.repository.get_article(item_id)
        return RetryableItem.from_article(article) if article else None

    def get_statistics(self) -> Dict[str, Any]:
        """Counts of items per retry state."""
        counts = self.repository.count_by_retry_state()
        return {
            "states": counts,
            "total": sum(counts.values()),
            "max_retries": self.max_retries,
        }

    def is_retryable(self, error: str) -> bool:
        return self.classifier.is_retryable(error)

    def compute_backoff(self, attempt_count: int) -> float:
        return self.scheduler.delay(attempt_count)

    def _fail_permanently(self, item_id: int, error: str, retry_count: int) -> None:
        self.repository.record_retry_state(
            item_id,
            retry_count=min(retry_count, self.max_retries),
            next_retry_at=None,
            last_error=error,
        )
