"""
Processing Pipeline Orchestrator
================================

Drives feeds through link resolution:

1. fetch each enabled feed and create a pending article per new item
2. resolve the item's aggregator link
3. mark the article resolved, or hand the failure to the retry queue

A separate pass re-resolves articles whose retry is due.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from ..config.settings import FeedLinkSettings, get_settings
from ..database.connection import DatabaseConnection
from ..database.models import Article, Feed
from ..recovery.error_handler import FailureClassifier
from ..recovery.retry_logic import BackoffConfig, BackoffScheduler
from ..recovery.retry_queue import RetryQueue
from ..resolution.link_resolver import LinkResolver
from ..resolution.transport import AiohttpTransport
from ..storage.article_repository import ArticleRepository
from ..storage.feed_repository import FeedRepository
from ..utils.exceptions import (
    DuplicateResourceError,
    FeedLinkError,
    SecurityViolation,
    handle_exception,
)
from ..utils.logging import PerformanceLogger, get_logger_for_component
from .feed_fetcher import FeedFetcher, FeedItem


@dataclass
class PipelineResult:
    """Counts from one pipeline run."""
    feeds_processed: int = 0
    feeds_failed: int = 0
    articles_created: int = 0
    articles_resolved: int = 0
    articles_skipped: int = 0
    retries_scheduled: int = 0
    permanent_failures: int = 0
    errors: List[str] = field(default_factory=list)
    processing_time_seconds: float = 0.0

    @property
    def articles_failed(self) -> int:
        return self.retries_scheduled + self.permanent_failures

    def merge(self, other: "PipelineResult") -> None:
        self.feeds_processed += other.feeds_processed
        self.feeds_failed += other.feeds_failed
        self.articles_created += other.articles_created
        self.articles_resolved += other.articles_resolved
        self.articles_skipped += other.articles_skipped
        self.retries_scheduled += other.retries_scheduled
        self.permanent_failures += other.permanent_failures
        self.errors.extend(other.errors)


class ProcessingPipeline:
    """Feed processing and retry orchestrator."""

    def __init__(
        self,
        db_connection: DatabaseConnection,
        resolver: Optional[LinkResolver] = None,
        feed_fetcher: Optional[FeedFetcher] = None,
        retry_queue: Optional[RetryQueue] = None,
        settings: Optional[FeedLinkSettings] = None,
    ):
        """Initialize processing pipeline.

        Args:
            db_connection: Database connection manager
            resolver: Link resolver; built from settings by default
            feed_fetcher: Feed fetcher; built from settings by default
            retry_queue: Retry queue; built from settings by default
            settings: Application settings
        """
        self.db = db_connection
        self.settings = settings or get_settings()
        self.logger = get_logger_for_component("pipeline")

        self.article_repo = ArticleRepository(db_connection)
        self.feed_repo = FeedRepository(db_connection)

        self.resolver = resolver or LinkResolver.from_settings(self.settings)
        self.feed_fetcher = feed_fetcher or FeedFetcher(
            AiohttpTransport(
                boundary=self.resolver.boundary,
                timeout=self.settings.processing.feed_timeout,
                user_agent=self.settings.resolver.user_agent,
            )
        )
        self.retry_queue = retry_queue or RetryQueue(
            self.article_repo,
            classifier=FailureClassifier(),
            scheduler=BackoffScheduler(BackoffConfig(
                base_delay=self.settings.retry.backoff_base_seconds,
                jitter_ceiling=self.settings.retry.jitter_ceiling_seconds,
            )),
            max_retries=self.settings.retry.max_retries,
        )

    async def process_enabled_feeds(self) -> PipelineResult:
        """Process every enabled feed."""
        start = time.time()
        total = PipelineResult()

        feeds = self.feed_repo.find_enabled()
        if not feeds:
            self.logger.warning("No feeds to process", extra={"category": "cli"})

        for feed in feeds:
            total.merge(await self.process_feed(feed))

        total.processing_time_seconds = time.time() - start
        self.logger.info(
            f"Processed {total.feeds_processed} feeds: {total.articles_resolved} resolved, "
            f"{total.retries_scheduled} scheduled for retry, {total.permanent_failures} failed",
            extra={"category": "processing", "feeds": total.feeds_processed},
        )
        return total

    async def process_feed(self, feed: Feed, limit: Optional[int] = None) -> PipelineResult:
        """Fetch one feed and resolve its new items.

        Args:
            feed: Feed to process
            limit: Items to take; defaults to the feed's result_limit

        Returns:
            PipelineResult for this feed
        """
        start = time.time()
        result = PipelineResult()
        limit = limit or feed.result_limit or self.settings.processing.default_result_limit

        self.logger.info(
            f"Processing feed {feed.id}: {feed.url}",
            extra={"category": "processing", "feed_id": feed.id},
        )

        try:
            with PerformanceLogger(self.logger, f"fetch feed {feed.id}", category="processing"):
                items = await self.feed_fetcher.fetch_items(feed.url, limit)
        except FeedLinkError as e:
            result.feeds_failed += 1
            result.errors.append(f"Feed {feed.id}: {e}")
            self.logger.error(
                f"Feed {feed.id} failed: {e}",
                extra={"category": "processing", "feed_id": feed.id, **e.to_dict()},
            )
            return result

        for item in items:
            await self._process_item(feed, item, result)

        if feed.id is not None:
            self.feed_repo.update_last_processed_at(feed.id)
        result.feeds_processed += 1
        result.processing_time_seconds = time.time() - start
        return result

    async def process_due_retries(
        self, now: Optional[datetime] = None, limit: Optional[int] = None
    ) -> PipelineResult:
        """Re-resolve articles whose scheduled retry time has passed."""
        start = time.time()
        result = PipelineResult()
        limit = limit or self.settings.retry.batch_size

        due = self.retry_queue.find_due(now=now, limit=limit)
        self.logger.info(
            f"Found {len(due)} articles due for retry",
            extra={"category": "processing_queue", "due": len(due)},
        )

        for article in due:
            await self._attempt(article, article.retry_count + 1, result)

        result.processing_time_seconds = time.time() - start
        return result

    async def _process_item(self, feed: Feed, item: FeedItem, result: PipelineResult) -> None:
        try:
            if self.article_repo.find_by_aggregator_url(item.aggregator_url):
                result.articles_skipped += 1
                return

            article_id = self.article_repo.create_article(Article(
                feed_id=feed.id,
                source_feed=feed.url,
                aggregator_url=item.aggregator_url,
                rss_title=item.title,
                rss_description=item.description,
                rss_source=item.source,
                pub_date=item.published_at,
            ))
        except DuplicateResourceError:
            result.articles_skipped += 1
            return
        except (PydanticValidationError, FeedLinkError) as e:
            # One bad entry must not abort the rest of the feed
            error = str(e).splitlines()[0]
            result.articles_skipped += 1
            result.errors.append(f"Feed {feed.id} item {item.aggregator_url[:100]}: {error}")
            self.logger.warning(
                f"Skipping feed {feed.id} item: {error}",
                extra={"category": "processing", "feed_id": feed.id, "link": item.aggregator_url[:200]},
            )
            return

        result.articles_created += 1
        article = self.article_repo.get_article(article_id)
        await self._attempt(article, 0, result)

    async def _attempt(self, article: Article, attempt_count: int, result: PipelineResult) -> None:
        """Resolve one article and record the outcome.

        attempt_count is the number of earlier failed attempts recorded for it.
        """
        try:
            final_url = await self.resolver.resolve(article.aggregator_url)
        except SecurityViolation as e:
            self.logger.warning(
                f"Security rejection for article {article.id}: {e}",
                extra={"category": "security", "article_id": article.id},
            )
            self._enqueue(article, str(e), attempt_count, result)
            return
        except FeedLinkError as e:
            self._enqueue(article, str(e), attempt_count, result)
            return
        except Exception as e:
            error = handle_exception(
                e, self.logger, f"resolve article {article.id}", {"article_id": article.id}
            )
            self._enqueue(article, str(error), attempt_count, result)
            return

        try:
            self.retry_queue.mark_complete(article.id, final_url)
            result.articles_resolved += 1
        except DuplicateResourceError:
            self.retry_queue.mark_permanent_failure(
                article.id, f"Duplicate final URL already stored: {final_url}"
            )
            result.articles_skipped += 1

    def _enqueue(self, article: Article, error: str, attempt_count: int, result: PipelineResult) -> None:
        outcome = self.retry_queue.enqueue_for_retry(article.id, error, attempt_count)
        if outcome.scheduled:
            result.retries_scheduled += 1
        else:
            result.permanent_failures += 1
            result.errors.append(f"Article {article.id}: {error}")

    async def close(self) -> None:
        await self.resolver.close()
        await self.feed_fetcher.close()
