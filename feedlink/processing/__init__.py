"""
feedlink Processing Module
==========================

Feed ingestion and the resolution pipeline built on top of it.
"""

from .feed_fetcher import FeedFetcher, FeedItem
from .pipeline import ProcessingPipeline, PipelineResult

__all__ = [
    'FeedFetcher',
    'FeedItem',
    'ProcessingPipeline',
    'PipelineResult',
]
