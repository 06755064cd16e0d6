"""
Feed Repository
===============

Repository for the aggregator RSS feeds the pipeline polls.
"""

import sqlite3
from typing import List, Optional

from ..database.connection import DatabaseConnection
from ..database.models import Feed, utc_now, to_db_timestamp
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, DuplicateResourceError, ErrorCode


class FeedRepository:
    """Repository for managing feed rows."""

    def __init__(self, db_connection: DatabaseConnection):
        """Initialize feed repository.

        Args:
            db_connection: Database connection manager
        """
        self.db = db_connection
        self.logger = get_logger_for_component("feed_repository")

    def create_feed(self, feed: Feed) -> int:
        """Create a new feed.

        Args:
            feed: Feed object to create

        Returns:
            Feed ID

        Raises:
            DuplicateResourceError: If the feed URL is already registered
            DatabaseError: If database operation fails
        """
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO feeds (url, title, enabled, result_limit,
                                       last_processed_at, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                """,
                    (
                        feed.url,
                        feed.title,
                        feed.enabled,
                        feed.result_limit,
                        to_db_timestamp(feed.last_processed_at),
                        to_db_timestamp(feed.created_at or utc_now()),
                    ),
                )

                feed_id = cursor.lastrowid
                conn.commit()

            self.logger.info(f"Created feed {feed_id}: {feed.url}")
            return feed_id

        except sqlite3.IntegrityError as e:
            raise DuplicateResourceError(
                f"Feed already registered: {feed.url}",
                context={"url": feed.url}
            ) from e
        except sqlite3.Error as e:
            self.logger.error(f"Failed to create feed: {e}")
            raise DatabaseError(
                f"Failed to create feed: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e

    def get_feed_by_id(self, feed_id: int) -> Optional[Feed]:
        """Get feed by ID, or None if missing or unreadable."""
        try:
            with self.db.get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM feeds WHERE id = ?", (feed_id,)
                ).fetchone()

                return Feed.from_db_row(row) if row else None

        except sqlite3.Error as e:
            self.logger.error(f"Failed to get feed {feed_id}: {e}")
            return None

    def get_feed_by_url(self, url: str) -> Optional[Feed]:
        try:
            with self.db.get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM feeds WHERE url = ?", (url,)
                ).fetchone()

                return Feed.from_db_row(row) if row else None

        except sqlite3.Error as e:
            self.logger.error(f"Failed to get feed by URL {url}: {e}")
            return None

    def find_enabled(self) -> List[Feed]:
        """Get all enabled feeds, oldest processed first."""
        try:
            with self.db.get_connection() as conn:
                rows = conn.execute(
                    """
                    SELECT * FROM feeds
                    WHERE enabled = 1
                    ORDER BY last_processed_at IS NOT NULL, last_processed_at, id
                """
                ).fetchall()

                return [Feed.from_db_row(row) for row in rows]

        except sqlite3.Error as e:
            self.logger.error(f"Failed to list enabled feeds: {e}")
            return []

    def set_enabled(self, feed_id: int, enabled: bool) -> bool:
        """Enable or disable a feed."""
        return self._update(
            "UPDATE feeds SET enabled = ? WHERE id = ?", (enabled, feed_id), feed_id
        )

    def update_last_processed_at(self, feed_id: int) -> bool:
        """Stamp the feed as processed now."""
        return self._update(
            "UPDATE feeds SET last_processed_at = ? WHERE id = ?",
            (to_db_timestamp(utc_now()), feed_id),
            feed_id,
        )

    def _update(self, query: str, params: tuple, feed_id: int) -> bool:
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(query, params)
                conn.commit()

                if cursor.rowcount > 0:
                    return True
                self.logger.warning(f"No feed found with ID {feed_id}")
                return False

        except sqlite3.Error as e:
            self.logger.error(f"Failed to update feed {feed_id}: {e}")
            return False
