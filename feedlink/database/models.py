"""
feedlink Data Models
====================

Pydantic models for the rows stored in the feeds, articles and logs tables.
Timestamps are stored as UTC ISO-8601 strings with microseconds so that
string comparison in SQL matches chronological order.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator
import json


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_db_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime for storage (naive values are taken as UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class ArticleStatus(str, Enum):
    """Resolution status stored on the article row."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class RetryState(str, Enum):
    """Retry lifecycle derived from status and next_retry_at."""
    PENDING = "pending"
    SCHEDULED = "scheduled"
    SUCCESS = "success"
    PERMANENT_FAILURE = "permanent_failure"


def derive_retry_state(status: ArticleStatus, next_retry_at: Optional[datetime]) -> RetryState:
    if status == ArticleStatus.SUCCESS:
        return RetryState.SUCCESS
    if status == ArticleStatus.PENDING:
        return RetryState.PENDING
    return RetryState.SCHEDULED if next_retry_at is not None else RetryState.PERMANENT_FAILURE


class Article(BaseModel):
    """Aggregator article with resolution and retry state."""
    id: Optional[int] = Field(default=None, description="Database primary key")
    feed_id: Optional[int] = Field(default=None, description="Owning feed, if any")
    source_feed: Optional[str] = Field(default=None, description="Feed URL the item came from")
    aggregator_url: str = Field(..., min_length=1, max_length=4000, description="Aggregator link")
    rss_title: Optional[str] = Field(default=None, description="Title from the RSS item")
    rss_description: Optional[str] = Field(default=None, description="Description from the RSS item")
    rss_source: Optional[str] = Field(default=None, description="Publisher name from the RSS item")
    pub_date: Optional[datetime] = Field(default=None, description="Publication date from the RSS item")
    final_url: Optional[str] = Field(default=None, description="Resolved publisher URL")
    status: ArticleStatus = Field(default=ArticleStatus.PENDING)
    retry_count: int = Field(default=0, ge=0, description="Failed resolution attempts recorded")
    next_retry_at: Optional[datetime] = Field(default=None, description="When the next retry is due")
    last_error: Optional[str] = Field(default=None, description="Most recent failure description")
    processed_at: Optional[datetime] = Field(default=None)
    created_at: Optional[datetime] = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = Field(default_factory=utc_now)

    @field_validator('rss_description')
    @classmethod
    def validate_description_length(cls, v):
        """Keep RSS descriptions bounded."""
        if v and len(v) > 10000:
            return v[:10000] + "... [truncated]"
        return v

    @property
    def retry_state(self) -> RetryState:
        return derive_retry_state(self.status, self.next_retry_at)

    @classmethod
    def from_db_row(cls, row) -> "Article":
        """Create Article from a sqlite3.Row."""
        return cls(**dict(row))

    def __str__(self) -> str:
        return f"Article({self.id}:{self.status.value}:{self.aggregator_url[:60]})"


class RetryableItem(BaseModel):
    """Read-only retry view over an article."""
    item_id: int
    attempt_count: int = Field(ge=0)
    next_retry_at: Optional[datetime] = None
    last_error: Optional[str] = None
    status: ArticleStatus

    model_config = {"frozen": True}

    @property
    def retry_state(self) -> RetryState:
        return derive_retry_state(self.status, self.next_retry_at)

    @property
    def is_terminal(self) -> bool:
        return self.retry_state in (RetryState.SUCCESS, RetryState.PERMANENT_FAILURE)

    @classmethod
    def from_article(cls, article: Article) -> "RetryableItem":
        return cls(
            item_id=article.id,
            attempt_count=article.retry_count,
            next_retry_at=article.next_retry_at,
            last_error=article.last_error,
            status=article.status,
        )


class Feed(BaseModel):
    """Aggregator RSS feed to poll."""
    id: Optional[int] = Field(default=None, description="Database primary key")
    url: str = Field(..., min_length=1, description="RSS feed URL")
    title: Optional[str] = Field(default=None, max_length=500, description="Feed title or topic")
    enabled: bool = Field(default=True, description="Whether the feed is processed")
    result_limit: int = Field(default=10, ge=1, le=500, description="Items taken per run")
    last_processed_at: Optional[datetime] = Field(default=None)
    created_at: Optional[datetime] = Field(default_factory=utc_now)

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        v = v.strip()
        if not v.lower().startswith(("http://", "https://")):
            raise ValueError("Feed URL must be http or https")
        return v

    @classmethod
    def from_db_row(cls, row) -> "Feed":
        data = dict(row)
        data['enabled'] = bool(data.get('enabled', True))
        return cls(**data)

    def __str__(self) -> str:
        return f"Feed({self.title or self.url})"


class LogEntry(BaseModel):
    """Stored log event."""
    id: Optional[int] = Field(default=None)
    level: str = Field(..., description="Log level name")
    category: str = Field(..., min_length=1, max_length=50, description="Event category")
    message: str = Field(..., description="Log message")
    context: Dict[str, Any] = Field(default_factory=dict, description="Structured context")
    created_at: Optional[datetime] = Field(default_factory=utc_now)

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        v = v.upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return v

    def context_json(self) -> str:
        """Get context as JSON string for database storage."""
        return json.dumps(self.context, default=str)

    @classmethod
    def from_db_row(cls, row) -> "LogEntry":
        """Create LogEntry from database row with JSON parsing."""
        data = dict(row)
        if isinstance(data.get('context'), str):
            data['context'] = json.loads(data['context'])
        elif data.get('context') is None:
            data['context'] = {}
        return cls(**data)
