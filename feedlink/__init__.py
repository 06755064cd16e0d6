"""
feedlink - Aggregator Link Acquisition
======================================

Resolves news-aggregator links to publisher URLs and retries failed
resolutions with bounded, jittered backoff.

Main Components:
- Resolution: legacy envelope decoding, redirect following, rate limiting
- Security: SSRF boundary applied to every fetched or returned URL
- Recovery: failure classification, backoff, persistent retry queue
- Database: SQLite with connection pooling and schema management
- Configuration: environment variables with Pydantic validation
"""

__version__ = "1.0.0"
__author__ = "feedlink Development Team"
__description__ = "Aggregator link resolution with persistent retry"

# Core imports for easy access
from .config.settings import get_settings
from .database.connection import get_db_manager
from .database.schema import DatabaseSchema
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import FeedLinkError
from .utils.validators import validate_url
from .recovery.error_handler import is_retryable
from .recovery.retry_logic import compute_backoff

__all__ = [
    "get_settings",
    "get_db_manager",
    "DatabaseSchema",
    "configure_application_logging",
    "get_logger_for_component",
    "FeedLinkError",
    "validate_url",
    "is_retryable",
    "compute_backoff",
]
