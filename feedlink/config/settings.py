"""
feedlink Configuration System
=============================

Simple configuration management with environment variables and Pydantic models.
Environment variables override Field defaults with clear precedence, e.g.
``FEEDLINK_RESOLVER__REQUEST_TIMEOUT=15``.
"""

from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from ..utils.exceptions import ConfigurationError, ErrorCode


class LogLevel(str, Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ResolverSettings(BaseModel):
    """Aggregator link resolution configuration."""
    request_timeout: float = Field(default=10.0, gt=0, le=120, description="Per-attempt HTTP timeout in seconds")
    max_redirects: int = Field(default=10, ge=1, le=50, description="Maximum redirect hops to follow")
    rate_limit_delay: float = Field(default=0.5, ge=0.0, le=60.0, description="Minimum spacing between outbound fetches")
    max_fetch_retries: int = Field(default=3, ge=1, le=10, description="Local attempts per redirect fetch")
    retry_pause_base: float = Field(default=0.2, ge=0.0, le=10.0, description="First pause between local fetch attempts")
    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        ),
        description="User-Agent header for outbound requests",
    )
    aggregator_hosts: List[str] = Field(
        default_factory=list,
        description="Hosts accepted as aggregator links, e.g. news.google.com (empty accepts any host)",
    )
    legacy_prefixes: List[str] = Field(
        default_factory=lambda: ["CBM", "CWM"],
        description="Article id prefixes marking the legacy base64 encoding",
    )
    legacy_max_id_length: int = Field(default=150, ge=10, le=2000, description="Longer article ids use redirects")

    @field_validator('legacy_prefixes')
    @classmethod
    def validate_prefixes(cls, v):
        """Legacy prefixes share a single width so they can be stripped uniformly."""
        if not v:
            raise ValueError("At least one legacy prefix is required")
        if len({len(p) for p in v}) != 1:
            raise ValueError("Legacy prefixes must all have the same length")
        return v


class RetrySettings(BaseModel):
    """Persistent retry queue configuration."""
    max_retries: int = Field(default=3, ge=1, le=10, description="Attempts before permanent failure")
    backoff_base_seconds: float = Field(default=60.0, gt=0, le=3600, description="Backoff base delay")
    jitter_ceiling_seconds: float = Field(default=10.0, ge=0, le=600, description="Upper bound of random jitter")
    batch_size: int = Field(default=50, ge=1, le=1000, description="Due retries handled per run")


class SecuritySettings(BaseModel):
    """SSRF boundary configuration."""
    max_url_length: int = Field(default=2000, ge=100, le=10000, description="Maximum accepted URL length")
    allowed_schemes: List[str] = Field(default_factory=lambda: ["http", "https"])

    @field_validator('allowed_schemes')
    @classmethod
    def normalize_schemes(cls, v):
        """Schemes are compared lower-case."""
        return [scheme.lower() for scheme in v]


class ProcessingSettings(BaseModel):
    """Feed processing configuration."""
    feed_timeout: float = Field(default=30.0, gt=0, le=300, description="RSS feed fetch timeout in seconds")
    default_result_limit: int = Field(default=10, ge=1, le=500, description="Items taken from each feed per run")


class DatabaseSettings(BaseModel):
    """Database configuration."""
    path: str = Field(default="data/feedlink.db", description="SQLite database file path")
    pool_size: int = Field(default=5, ge=1, le=20, description="Connection pool size")


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    file_path: Optional[str] = Field(default="logs/feedlink.log", description="Log file path")
    max_file_size_mb: int = Field(default=10, ge=1, le=100, description="Max log file size in MB")
    backup_count: int = Field(default=5, ge=1, le=20, description="Number of log backup files")
    structured_logging: bool = Field(default=False, description="Use structured JSON logging")
    console_logging: bool = Field(default=True, description="Enable console logging")
    database_logging: bool = Field(default=False, description="Also store log events in the logs table")


class FeedLinkSettings(BaseSettings):
    """Main application settings."""

    resolver: ResolverSettings = Field(default_factory=ResolverSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    processing: ProcessingSettings = Field(default_factory=ProcessingSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    app_name: str = Field(default="feedlink", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_nested_delimiter": "__",
        "env_prefix": "FEEDLINK_",
        "extra": "ignore",
    }

    def validate_configuration(self) -> None:
        """Validate complete configuration."""
        errors = []

        if self.resolver.rate_limit_delay >= self.resolver.request_timeout * self.resolver.max_fetch_retries:
            errors.append("rate_limit_delay must be shorter than the total fetch budget")

        unknown_schemes = set(self.security.allowed_schemes) - {"http", "https"}
        if unknown_schemes:
            errors.append(f"Only http/https may be allowed, got: {sorted(unknown_schemes)}")

        try:
            db_path = Path(self.database.path)
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except Exception as e:
            errors.append(f"Invalid database path: {e}")

        if self.logging.file_path:
            try:
                log_path = Path(self.logging.file_path)
                log_path.parent.mkdir(parents=True, exist_ok=True)
            except Exception as e:
                errors.append(f"Invalid log file path: {e}")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                error_code=ErrorCode.CONFIG_INVALID
            )

    def get_effective_log_level(self) -> str:
        """Get effective log level considering debug mode."""
        if self.debug:
            return "DEBUG"
        return self.logging.level.value


def load_settings() -> FeedLinkSettings:
    """Load settings from environment variables and defaults.

    Returns:
        Loaded and validated settings

    Raises:
        ConfigurationError: If configuration is invalid
    """
    from dotenv import load_dotenv
    load_dotenv()

    try:
        settings = FeedLinkSettings()
        settings.validate_configuration()
        return settings

    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(
            f"Failed to initialize settings: {e}",
            error_code=ErrorCode.CONFIG_INVALID
        ) from e


# Global settings instance
_settings: Optional[FeedLinkSettings] = None


def get_settings(reload: bool = False) -> FeedLinkSettings:
    """Get global settings instance (singleton pattern).

    Args:
        reload: Force reload of settings

    Returns:
        Global settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = load_settings()

    return _settings
