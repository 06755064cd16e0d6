"""
Log Repository
==============

Stores structured log events in the logs table. Used by DatabaseLogHandler;
writes go straight through a pooled connection.
"""

import json
import sqlite3
from typing import Any, Dict, List, Optional

from ..database.connection import DatabaseConnection
from ..database.models import LogEntry, utc_now, to_db_timestamp
from ..utils.exceptions import DatabaseError, ErrorCode


class LogRepository:
    """Repository for log rows."""

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection

    def create_log(
        self,
        level: str,
        category: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Insert a log event and return its ID.

        Raises:
            DatabaseError: If the insert fails
        """
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO logs (level, category, message, context, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        level.upper(),
                        category[:50],
                        message,
                        json.dumps(context or {}, default=str),
                        to_db_timestamp(utc_now()),
                    ),
                )
                conn.commit()
                return cursor.lastrowid

        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to store log entry: {e}",
                error_code=ErrorCode.DATABASE_ERROR
            ) from e

    def get_recent(
        self, category: Optional[str] = None, limit: int = 100
    ) -> List[LogEntry]:
        """Most recent log entries, optionally for one category."""
        if category:
            query = "SELECT * FROM logs WHERE category = ? ORDER BY id DESC LIMIT ?"
            params: tuple = (category, limit)
        else:
            query = "SELECT * FROM logs ORDER BY id DESC LIMIT ?"
            params = (limit,)

        try:
            with self.db.get_connection() as conn:
                rows = conn.execute(query, params).fetchall()
            return [LogEntry.from_db_row(row) for row in rows]

        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to read log entries: {e}", query=query) from e
