"""
feedlink Database Schema
========================

SQLite schema for the link acquisition core:
- feeds: aggregator RSS feeds to poll
- articles: one row per aggregator link, carrying resolution and retry state
- logs: structured log events written by DatabaseLogHandler
"""

import sqlite3
import logging
from contextlib import closing
from pathlib import Path

logger = logging.getLogger(__name__)

EXPECTED_TABLES = {"articles", "feeds", "logs"}


class DatabaseSchema:
    """Database schema manager for the feedlink SQLite database."""

    def __init__(self, db_path: str = "data/feedlink.db"):
        """Initialize database schema manager.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all tables, apply migrations, then indexes."""
        with closing(sqlite3.connect(self.db_path)) as conn:
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute("PRAGMA journal_mode = WAL")

            self._create_feeds_table(conn)
            self._create_articles_table(conn)
            self._create_logs_table(conn)

            self._run_migrations(conn)
            self._create_indexes(conn)

            conn.commit()
            logger.info("Database schema created successfully")

    def _create_feeds_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS feeds (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                url TEXT UNIQUE NOT NULL,
                title TEXT,
                enabled BOOLEAN DEFAULT TRUE,
                result_limit INTEGER DEFAULT 10 CHECK (result_limit > 0),
                last_processed_at TIMESTAMP,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

    def _create_articles_table(self, conn: sqlite3.Connection) -> None:
        """Create articles table.

        retry_count is bounded by the retry queue; a failed row with a null
        next_retry_at is a permanent failure.
        """
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS articles (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                feed_id INTEGER,
                source_feed TEXT,
                aggregator_url TEXT UNIQUE NOT NULL,
                rss_title TEXT,
                rss_description TEXT,
                rss_source TEXT,
                pub_date TIMESTAMP,
                final_url TEXT UNIQUE,
                status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'success', 'failed')),
                retry_count INTEGER NOT NULL DEFAULT 0 CHECK (retry_count >= 0),
                next_retry_at TIMESTAMP,
                last_error TEXT,
                processed_at TIMESTAMP,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (feed_id) REFERENCES feeds(id) ON DELETE SET NULL
            )
        """
        )

    def _create_logs_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                level TEXT NOT NULL CHECK (level IN ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')),
                category TEXT NOT NULL,
                message TEXT NOT NULL,
                context TEXT,  -- JSON object
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

    def _create_indexes(self, conn: sqlite3.Connection) -> None:
        indexes = [
            # Feed indexes
            "CREATE INDEX IF NOT EXISTS idx_feeds_enabled ON feeds(enabled)",
            "CREATE INDEX IF NOT EXISTS idx_feeds_last_processed ON feeds(last_processed_at)",
            # Article indexes
            "CREATE INDEX IF NOT EXISTS idx_articles_feed ON articles(feed_id)",
            "CREATE INDEX IF NOT EXISTS idx_articles_status ON articles(status)",
            "CREATE INDEX IF NOT EXISTS idx_articles_retry ON articles(status, next_retry_at)",
            "CREATE INDEX IF NOT EXISTS idx_articles_processed ON articles(processed_at)",
            # Log indexes
            "CREATE INDEX IF NOT EXISTS idx_logs_category ON logs(category)",
            "CREATE INDEX IF NOT EXISTS idx_logs_level_category ON logs(level, category)",
            "CREATE INDEX IF NOT EXISTS idx_logs_created ON logs(created_at)",
        ]

        for index_sql in indexes:
            conn.execute(index_sql)

    def _run_migrations(self, conn: sqlite3.Connection) -> None:
        """Add retry columns to article tables created before retry tracking."""
        cursor = conn.execute("PRAGMA table_info(articles)")
        columns = [column[1] for column in cursor.fetchall()]

        retry_columns = {
            "retry_count": "INTEGER NOT NULL DEFAULT 0",
            "next_retry_at": "TIMESTAMP",
            "last_error": "TEXT",
        }
        for name, definition in retry_columns.items():
            if name not in columns:
                logger.info(f"Adding {name} column to articles table")
                conn.execute(f"ALTER TABLE articles ADD COLUMN {name} {definition}")

    def drop_tables(self) -> None:
        """Drop all tables (for testing/reset purposes)."""
        with closing(sqlite3.connect(self.db_path)) as conn:
            for table in ("logs", "articles", "feeds"):
                conn.execute(f"DROP TABLE IF EXISTS {table}")

            conn.commit()
            logger.info("All database tables dropped")

    def get_connection(self) -> sqlite3.Connection:
        """Get database connection with foreign keys enabled."""
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA foreign_keys = ON")
        conn.row_factory = sqlite3.Row
        return conn

    def verify_schema(self) -> bool:
        """Verify database schema is correctly created."""
        try:
            with closing(self.get_connection()) as conn:
                cursor = conn.execute(
                    """
                    SELECT name FROM sqlite_master
                    WHERE type='table' AND name NOT LIKE 'sqlite_%'
                    ORDER BY name
                """
                )

                tables = {row[0] for row in cursor.fetchall()}
                missing = EXPECTED_TABLES - tables
                if missing:
                    logger.error(f"Missing tables: {sorted(missing)}")
                    return False

                conn.execute("PRAGMA foreign_key_check")

                logger.info("Database schema verification passed")
                return True

        except sqlite3.Error as e:
            logger.error(f"Schema verification failed: {e}")
            return False


def create_tables(db_path: str = "data/feedlink.db") -> None:
    """Convenience function to create database tables."""
    DatabaseSchema(db_path).create_tables()
