"""
RSS Feed Fetcher
================

Fetches an aggregator RSS feed through the SSRF-guarded transport and turns
its entries into FeedItem records.
"""

import calendar
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, List, Optional

import feedparser

from ..resolution.transport import HttpTransport, AiohttpTransport
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import FeedFetchError, TransportError, ErrorCode


@dataclass
class FeedItem:
    """One RSS entry pointing at an aggregator link."""

    aggregator_url: str
    title: Optional[str] = None
    description: Optional[str] = None
    source: Optional[str] = None
    published_at: Optional[datetime] = None


class FeedFetcher:
    """RSS feed fetcher built on the resolution transport."""

    def __init__(self, transport: Optional[HttpTransport] = None):
        """Initialize feed fetcher.

        Args:
            transport: HTTP transport; an AiohttpTransport by default
        """
        self.transport = transport or AiohttpTransport(timeout=30.0)
        self.logger = get_logger_for_component("feed_fetcher")

    async def fetch_items(self, feed_url: str, limit: Optional[int] = None) -> List[FeedItem]:
        """Fetch and parse a feed.

        Args:
            feed_url: RSS feed URL
            limit: Maximum number of items returned

        Returns:
            Feed items in document order

        Raises:
            SecurityViolation: If the feed URL fails the SSRF boundary
            FeedFetchError: If the feed cannot be fetched or parsed
        """
        self.logger.debug(f"Fetching feed: {feed_url}")

        try:
            outcome = await self.transport.fetch(feed_url, read_body=True)
        except TransportError as e:
            raise FeedFetchError(
                f"Feed fetch failed: {e.message}",
                url=feed_url,
                status_code=e.status_code,
                error_code=ErrorCode.FEED_FETCH_FAILED,
            ) from e

        feed_data = feedparser.parse(outcome.body or b"")

        if getattr(feed_data, "bozo", False) and not feed_data.entries:
            reason = getattr(feed_data, "bozo_exception", "Invalid XML structure")
            raise FeedFetchError(
                f"Feed parse error, no parseable content: {reason}",
                url=feed_url,
                error_code=ErrorCode.FEED_PARSE_ERROR,
                recoverable=False,
            )

        if getattr(feed_data, "bozo", False):
            self.logger.info(f"Feed has parse warnings but contains entries: {feed_url}")

        items = self._parse_entries(feed_data, feed_url)
        if limit is not None:
            items = items[:limit]

        self.logger.info(
            f"Fetched {len(items)} items from {feed_url}",
            extra={"category": "feed", "feed_url": feed_url, "item_count": len(items)},
        )
        return items

    def _parse_entries(self, feed_data: Any, feed_url: str) -> List[FeedItem]:
        items = []

        for entry in feed_data.entries:
            link = (entry.get("link") or "").strip()
            if not link:
                self.logger.warning(f"Entry missing link in feed {feed_url}, skipping")
                continue

            source = entry.get("source")
            source_title = source.get("title") if source else None

            items.append(FeedItem(
                aggregator_url=link,
                title=entry.get("title"),
                description=entry.get("description") or entry.get("summary"),
                source=source_title,
                published_at=self._parse_date(entry),
            ))

        return items

    def _parse_date(self, entry: Any) -> Optional[datetime]:
        """Parse publication date from entry as UTC."""
        for field in ("published_parsed", "updated_parsed"):
            date_tuple = entry.get(field)
            if date_tuple:
                try:
                    return datetime.fromtimestamp(calendar.timegm(date_tuple), tz=timezone.utc)
                except (ValueError, OverflowError):
                    continue

        return None

    async def close(self) -> None:
        await self.transport.close()
