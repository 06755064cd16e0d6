"""
feedlink Custom Exceptions
==========================

Custom exception hierarchy for feedlink with error codes, context
information, and user-friendly error messages.

The resolution errors carry the wording the failure classifier keys on, so
forwarding ``str(error)`` to the retry queue classifies it correctly.
"""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    # Configuration errors (C001-C099)
    CONFIG_INVALID = "C001"
    CONFIG_MISSING = "C002"

    # Database errors (D001-D099)
    DATABASE_CONNECTION = "D001"
    DATABASE_SCHEMA = "D002"
    DATABASE_CONSTRAINT = "D003"
    DATABASE_TRANSACTION = "D004"
    DATABASE_ERROR = "D006"

    # Security errors (S001-S099)
    SECURITY_URL_LENGTH = "S001"
    SECURITY_INVALID_SCHEME = "S002"
    SECURITY_PRIVATE_ADDRESS = "S003"
    SECURITY_MALFORMED_URL = "S004"
    SECURITY_DNS_FAILURE = "S005"

    # Link resolution errors (R001-R099)
    RESOLUTION_NOT_AGGREGATOR = "R001"
    RESOLUTION_INVALID_ENCODING = "R002"
    RESOLUTION_MALFORMED_ENVELOPE = "R003"
    RESOLUTION_EMPTY_RESULT = "R004"
    RESOLUTION_NO_REDIRECT = "R005"

    # Transport errors (T001-T099)
    TRANSPORT_TIMEOUT = "T001"
    TRANSPORT_CONNECTION = "T002"
    TRANSPORT_HTTP_STATUS = "T003"
    TRANSPORT_TOO_MANY_REDIRECTS = "T004"
    TRANSPORT_RETRIES_EXHAUSTED = "T005"

    # Feed errors (F001-F099)
    FEED_FETCH_FAILED = "F001"
    FEED_PARSE_ERROR = "F002"

    # Resource management errors (X001-X099)
    DUPLICATE_RESOURCE = "X001"


class FeedLinkError(Exception):
    """Base exception for all feedlink errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        recoverable: bool = False,
    ):
        """Initialize feedlink error.

        Args:
            message: Technical error message for logging
            error_code: Categorized error code
            context: Additional context information
            user_message: User-friendly error message
            recoverable: Whether the error is worth retrying
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.user_message = user_message or message
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": str(self),
            "user_message": self.user_message,
            "context": self.context,
            "recoverable": self.recoverable,
        }

    def __str__(self) -> str:
        """String representation with error code."""
        if self.error_code:
            return f"[{self.error_code.value}] {super().__str__()}"
        return super().__str__()


def _split_kwargs(kwargs: Dict[str, Any], *names: str) -> Dict[str, Any]:
    return {k: v for k, v in kwargs.items() if k not in names}


class ConfigurationError(FeedLinkError):
    """Configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if config_key:
            context["config_key"] = config_key

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.CONFIG_INVALID),
            context=context,
            user_message=kwargs.get("user_message", f"Configuration error: {message}"),
            **_split_kwargs(kwargs, "context", "error_code", "user_message"),
        )


class DatabaseError(FeedLinkError):
    """Database-related errors."""

    def __init__(self, message: str, query: Optional[str] = None, **kwargs):
        """Initialize database error.

        Args:
            message: Error message
            query: SQL query that caused the error
            **kwargs: Additional arguments for FeedLinkError
        """
        context = kwargs.get("context", {})
        if query:
            context["query"] = query

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.DATABASE_CONNECTION),
            context=context,
            user_message=kwargs.get("user_message", "Database operation failed"),
            recoverable=kwargs.get("recoverable", True),
            **_split_kwargs(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class DuplicateResourceError(DatabaseError):
    """A unique column already holds the value being written."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            error_code=kwargs.pop("error_code", ErrorCode.DUPLICATE_RESOURCE),
            recoverable=kwargs.pop("recoverable", False),
            **kwargs,
        )


class SecurityViolation(FeedLinkError):
    """A URL failed the SSRF boundary (scheme, length or network address)."""

    def __init__(self, message: str, url: Optional[str] = None, **kwargs):
        """Initialize security violation.

        Args:
            message: Error message
            url: URL that was rejected
            **kwargs: Additional arguments for FeedLinkError
        """
        context = kwargs.get("context", {})
        if url:
            context["url"] = url[:200]

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.SECURITY_PRIVATE_ADDRESS),
            context=context,
            user_message=kwargs.get("user_message", "URL rejected by security policy"),
            recoverable=kwargs.get("recoverable", False),
            **_split_kwargs(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class HostResolutionError(SecurityViolation):
    """Hostname could not be resolved, so it could not be vetted.

    Still a security violation for callers of the boundary (the URL is not
    trusted), but DNS outages are transient so the error is recoverable.
    """

    def __init__(self, message: str, url: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            url=url,
            error_code=kwargs.pop("error_code", ErrorCode.SECURITY_DNS_FAILURE),
            user_message=kwargs.pop("user_message", "Hostname could not be resolved"),
            recoverable=kwargs.pop("recoverable", True),
            **kwargs,
        )


class ResolutionError(FeedLinkError):
    """Aggregator link could not be decoded into a publisher URL."""

    def __init__(self, message: str, link: Optional[str] = None, **kwargs):
        """Initialize resolution error.

        Args:
            message: Error message
            link: Aggregator link being resolved
            **kwargs: Additional arguments for FeedLinkError
        """
        context = kwargs.get("context", {})
        if link:
            context["link"] = link[:200]

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.RESOLUTION_MALFORMED_ENVELOPE),
            context=context,
            user_message=kwargs.get("user_message", f"Link could not be resolved: {message}"),
            recoverable=kwargs.get("recoverable", False),
            **_split_kwargs(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class TransportError(FeedLinkError):
    """Outbound HTTP request failed (timeout, connection, bad status)."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs,
    ):
        """Initialize transport error.

        Args:
            message: Error message
            url: URL being fetched
            status_code: HTTP status code, when a response was received
            **kwargs: Additional arguments for FeedLinkError
        """
        context = kwargs.get("context", {})
        if url:
            context["url"] = url[:200]
        if status_code is not None:
            context["status_code"] = status_code

        # Client errors other than 429 will not change on retry
        default_recoverable = status_code is None or status_code == 429 or status_code >= 500
        self.status_code = status_code

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.TRANSPORT_CONNECTION),
            context=context,
            user_message=kwargs.get("user_message", "Network request failed"),
            recoverable=kwargs.get("recoverable", default_recoverable),
            **_split_kwargs(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class FeedFetchError(TransportError):
    """RSS feed fetching errors."""

    pass


# Exception handling utilities


def handle_exception(
    exception: Exception,
    logger,
    operation: str,
    context: Optional[Dict[str, Any]] = None,
) -> FeedLinkError:
    """Convert generic exceptions to feedlink exceptions with proper logging.

    Args:
        exception: Original exception
        logger: Logger instance for error logging
        operation: Operation that was being performed
        context: Additional context information

    Returns:
        feedlink exception with proper categorization
    """
    context = context or {}
    context["operation"] = operation
    context["original_exception_type"] = type(exception).__name__

    if isinstance(exception, FeedLinkError):
        logger.error(f"Operation '{operation}' failed", extra=exception.to_dict())
        return exception

    elif isinstance(exception, TimeoutError):
        error = TransportError(
            f"Network timeout during {operation}: {exception}",
            error_code=ErrorCode.TRANSPORT_TIMEOUT,
            context=context,
        )

    elif isinstance(exception, ConnectionError):
        error = TransportError(
            f"Network connection error during {operation}: {exception}",
            error_code=ErrorCode.TRANSPORT_CONNECTION,
            context=context,
        )

    elif isinstance(exception, FileNotFoundError):
        error = ConfigurationError(
            f"Required file not found during {operation}: {exception}",
            error_code=ErrorCode.CONFIG_MISSING,
            context=context,
            user_message="Configuration file missing",
        )

    else:
        error = FeedLinkError(
            message=f"Unexpected error during {operation}: {exception}",
            context=context,
            user_message="An unexpected error occurred",
            recoverable=True,
        )

    logger.error(f"Operation '{operation}' failed", extra=error.to_dict())
    return error


def get_user_friendly_message(exception: Exception) -> str:
    """Get user-friendly error message for any exception."""
    if isinstance(exception, FeedLinkError):
        return exception.user_message

    return "An unexpected error occurred. Please try again later."
