"""
feedlink Storage Layer
======================

Repository pattern implementations for data access abstraction.

This module provides:
- Article repository for article rows and their retry state
- Feed repository for the polled aggregator feeds
- Log repository for persisted log events
"""

from .article_repository import ArticleRepository
from .feed_repository import FeedRepository
from .log_repository import LogRepository

__all__ = [
    "ArticleRepository",
    "FeedRepository",
    "LogRepository",
]
