"""
Article Repository
==================

Repository for article rows. Every state change is a single UPDATE
statement so concurrent runners never observe a half-written retry state.
"""

import sqlite3
from datetime import datetime
from typing import List, Optional, Dict, Any

from ..database.models import Article, ArticleStatus, RetryState, utc_now, to_db_timestamp
from ..database.connection import DatabaseConnection
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, DuplicateResourceError, ErrorCode

# Columns update_article may touch
UPDATABLE_COLUMNS = {
    "rss_title",
    "rss_description",
    "rss_source",
    "pub_date",
    "final_url",
    "status",
    "retry_count",
    "next_retry_at",
    "last_error",
    "processed_at",
}


def _db_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return to_db_timestamp(value)
    if isinstance(value, ArticleStatus):
        return value.value
    return value


class ArticleRepository:
    """Repository for Article CRUD and retry-state operations."""

    def __init__(self, db_connection: DatabaseConnection):
        """Initialize article repository.

        Args:
            db_connection: Database connection manager
        """
        self.db = db_connection
        self.logger = get_logger_for_component("article_repository")

    def create_article(self, article: Article) -> int:
        """Insert a new article.

        Args:
            article: Article model to create

        Returns:
            Created article ID

        Raises:
            DuplicateResourceError: If the aggregator URL is already stored
            DatabaseError: If creation fails
        """
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO articles (feed_id, source_feed, aggregator_url, rss_title,
                                          rss_description, rss_source, pub_date, final_url,
                                          status, retry_count, next_retry_at, last_error,
                                          processed_at, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        article.feed_id, article.source_feed, article.aggregator_url,
                        article.rss_title, article.rss_description, article.rss_source,
                        to_db_timestamp(article.pub_date), article.final_url,
                        article.status.value, article.retry_count,
                        to_db_timestamp(article.next_retry_at), article.last_error,
                        to_db_timestamp(article.processed_at),
                        to_db_timestamp(article.created_at), to_db_timestamp(article.updated_at)
                    )
                )
                conn.commit()
                article_id = cursor.lastrowid

            self.logger.debug(f"Created article: {article_id}")
            return article_id

        except sqlite3.IntegrityError as e:
            raise DuplicateResourceError(
                f"Article already exists for {article.aggregator_url[:100]}: {e}",
                context={"aggregator_url": article.aggregator_url[:200]}
            ) from e
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to create article: {e}",
                error_code=ErrorCode.DATABASE_ERROR
            ) from e

    def get_article(self, article_id: int) -> Optional[Article]:
        """Get article by ID, or None if it does not exist."""
        row = self._fetch_one("SELECT * FROM articles WHERE id = ?", (article_id,))
        return Article.from_db_row(row) if row else None

    def find_by_aggregator_url(self, aggregator_url: str) -> Optional[Article]:
        """Find the article stored for an aggregator link."""
        row = self._fetch_one(
            "SELECT * FROM articles WHERE aggregator_url = ?", (aggregator_url,)
        )
        return Article.from_db_row(row) if row else None

    def find_by_final_url(self, final_url: str) -> Optional[Article]:
        row = self._fetch_one("SELECT * FROM articles WHERE final_url = ?", (final_url,))
        return Article.from_db_row(row) if row else None

    def update_article(self, article_id: int, **fields: Any) -> bool:
        """Update selected columns of an article in one statement.

        Args:
            article_id: Article to update
            **fields: Column values; only UPDATABLE_COLUMNS are accepted

        Returns:
            True if a row was updated
        """
        unknown = set(fields) - UPDATABLE_COLUMNS
        if unknown:
            raise DatabaseError(
                f"Cannot update article columns: {sorted(unknown)}",
                error_code=ErrorCode.DATABASE_CONSTRAINT,
                recoverable=False
            )
        if not fields:
            return False

        assignments = ", ".join(f"{column} = ?" for column in fields)
        params = [_db_value(value) for value in fields.values()]
        params.extend([to_db_timestamp(utc_now()), article_id])

        try:
            return self._execute_update(
                f"UPDATE articles SET {assignments}, updated_at = ? WHERE id = ?",
                tuple(params),
                operation="update article"
            )
        except sqlite3.IntegrityError as e:
            raise DuplicateResourceError(
                f"Article update violates a unique column: {e}",
                context={"article_id": article_id}
            ) from e

    def record_retry_state(
        self,
        article_id: int,
        retry_count: int,
        next_retry_at: Optional[datetime],
        last_error: Optional[str],
    ) -> bool:
        """Record a failed attempt on an article.

        Status becomes failed. The stored retry_count never decreases. A null
        next_retry_at marks the article as permanently failed.

        Returns:
            True if the article exists and was updated
        """
        return self._execute_update(
            """
            UPDATE articles
            SET status = ?,
                retry_count = MAX(retry_count, ?),
                next_retry_at = ?,
                last_error = ?,
                updated_at = ?
            WHERE id = ?
            """,
            (
                ArticleStatus.FAILED.value, retry_count, to_db_timestamp(next_retry_at),
                last_error, to_db_timestamp(utc_now()), article_id
            ),
            operation="record retry state"
        )

    def mark_as_processed(
        self,
        article_id: int,
        final_url: Optional[str] = None,
        processed_at: Optional[datetime] = None,
    ) -> bool:
        """Mark an article resolved, keeping its retry count.

        Raises:
            DuplicateResourceError: If another article already has final_url
        """
        processed_at = processed_at or utc_now()
        try:
            return self._execute_update(
                """
                UPDATE articles
                SET status = ?,
                    final_url = COALESCE(?, final_url),
                    next_retry_at = NULL,
                    last_error = NULL,
                    processed_at = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (
                    ArticleStatus.SUCCESS.value, final_url, to_db_timestamp(processed_at),
                    to_db_timestamp(utc_now()), article_id
                ),
                operation="mark article processed"
            )
        except sqlite3.IntegrityError as e:
            raise DuplicateResourceError(
                f"Final URL already stored for another article: {final_url}",
                context={"article_id": article_id}
            ) from e

    def find_pending_retries(
        self, now: Optional[datetime] = None, limit: Optional[int] = None
    ) -> List[Article]:
        """Failed articles whose retry is due, earliest first."""
        now = now or utc_now()
        rows = self._fetch_all(
            """
            SELECT * FROM articles
            WHERE status = ?
              AND next_retry_at IS NOT NULL
              AND next_retry_at <= ?
            ORDER BY next_retry_at ASC
            LIMIT ?
            """,
            (ArticleStatus.FAILED.value, to_db_timestamp(now), -1 if limit is None else limit)
        )
        return [Article.from_db_row(row) for row in rows]

    def get_articles_by_status(self, status: ArticleStatus, limit: int = 100) -> List[Article]:
        rows = self._fetch_all(
            "SELECT * FROM articles WHERE status = ? ORDER BY created_at DESC LIMIT ?",
            (status.value, limit)
        )
        return [Article.from_db_row(row) for row in rows]

    def count_by_status(self) -> Dict[str, int]:
        """Count articles per stored status."""
        rows = self._fetch_all(
            "SELECT status, COUNT(*) AS total FROM articles GROUP BY status", ()
        )
        counts = {status.value: 0 for status in ArticleStatus}
        for row in rows:
            counts[row["status"]] = row["total"]
        return counts

    def count_by_retry_state(self) -> Dict[str, int]:
        """Count articles per derived retry state."""
        rows = self._fetch_all(
            """
            SELECT CASE
                       WHEN status = 'failed' AND next_retry_at IS NOT NULL THEN 'scheduled'
                       WHEN status = 'failed' THEN 'permanent_failure'
                       ELSE status
                   END AS retry_state,
                   COUNT(*) AS total
            FROM articles
            GROUP BY retry_state
            """,
            ()
        )
        counts = {state.value: 0 for state in RetryState}
        for row in rows:
            counts[row["retry_state"]] = row["total"]
        return counts

    def _fetch_one(self, query: str, params: tuple) -> Optional[sqlite3.Row]:
        try:
            with self.db.get_connection() as conn:
                return conn.execute(query, params).fetchone()
        except sqlite3.Error as e:
            self.logger.error(f"Article query failed: {e}")
            raise DatabaseError(f"Failed to query articles: {e}", query=query) from e

    def _fetch_all(self, query: str, params: tuple) -> List[sqlite3.Row]:
        try:
            with self.db.get_connection() as conn:
                return conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            self.logger.error(f"Article query failed: {e}")
            raise DatabaseError(f"Failed to query articles: {e}", query=query) from e

    def _execute_update(self, query: str, params: tuple, operation: str) -> bool:
        """Run one write statement; IntegrityError is left to the caller."""
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(query, params)
                conn.commit()
                return cursor.rowcount > 0
        except sqlite3.IntegrityError:
            raise
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to {operation}: {e}",
                error_code=ErrorCode.DATABASE_ERROR
            ) from e
