#!/usr/bin/env python3
"""
Error Handling Tests for feedlink
=================================

Tests for failure classification, backoff computation and the exception
hierarchy the classifier relies on.
"""

import random
import statistics
from unittest.mock import Mock

import pytest

from feedlink.recovery.error_handler import (
    FailureClassifier,
    FailureKind,
    is_retryable,
)
from feedlink.recovery.retry_logic import BackoffConfig, BackoffScheduler, compute_backoff
from feedlink.utils.exceptions import (
    FeedLinkError,
    TransportError,
    HostResolutionError,
    ErrorCode,
    handle_exception,
)


class TestFailureClassifier:
    """Classification by failure description."""

    @pytest.mark.parametrize("description", [
        "Network timeout",
        "[T001] Network timeout after 10.0s fetching https://news.example/x",
        "Connection error fetching https://news.example/x: reset by peer",
        "Request timed out",
        "HTTP 503 from https://news.example/x",
        "HTTP 429 from https://news.example/x",
        "[S005] DNS resolution failed for news.example: Name or service not known",
    ])
    def test_retryable(self, description):
        assert is_retryable(description)

    @pytest.mark.parametrize("description", [
        "HTTP 404 from https://news.example/x",
        "[T003] HTTP 403 from https://news.example/x",
        "Invalid URL: empty aggregator link",
        "[R003] Malformed envelope: expected tag 0x08, found 0x09",
        "[S003] SSRF blocked: private address 10.0.0.5",
        "Feed parse error, no parseable content",
    ])
    def test_permanent(self, description):
        assert not is_retryable(description)

    def test_unknown_description_defaults_to_retryable(self):
        classifier = FailureClassifier()
        assert classifier.classify("something odd happened") is FailureKind.RETRYABLE
        assert classifier.classify("") is FailureKind.RETRYABLE

    def test_permanent_patterns_take_precedence(self):
        classifier = FailureClassifier()
        assert classifier.classify("HTTP 404 after connection reuse") is FailureKind.PERMANENT

    @pytest.mark.parametrize("description", [
        "Network timeout",
        "HTTP 404 from https://news.example/x",
        "something odd happened",
        "",
    ])
    def test_classification_is_pure(self, description):
        expected = is_retryable(description)

        assert all(is_retryable(description) is expected for _ in range(20))
        assert FailureClassifier().is_retryable(description) is expected
        assert FailureClassifier().is_retryable(description) is expected

    def test_case_insensitive(self):
        assert not is_retryable("MALFORMED ARTICLE ID")

    def test_custom_patterns(self):
        classifier = FailureClassifier(permanent_patterns=["gone forever"], retryable_patterns=["busy"])
        assert classifier.classify("Gone forever") is FailureKind.PERMANENT
        assert classifier.classify("HTTP 404") is FailureKind.RETRYABLE


class TestBackoffScheduler:
    """Exponential backoff with additive jitter."""

    @pytest.mark.parametrize("attempt, low, high", [
        (0, 60, 70),
        (1, 120, 130),
        (2, 240, 250),
    ])
    def test_delay_ranges(self, attempt, low, high):
        scheduler = BackoffScheduler()
        for _ in range(50):
            delay = scheduler.delay(attempt)
            assert low <= delay < high

    def test_jitter_varies_between_calls(self):
        delays = [compute_backoff(0) for _ in range(100)]
        assert len(set(delays)) > 1
        assert statistics.pstdev(delays) > 0

    def test_seeded_rng_is_reproducible(self):
        first = BackoffScheduler(rng=random.Random(7))
        second = BackoffScheduler(rng=random.Random(7))
        assert [first.delay(1) for _ in range(5)] == [second.delay(1) for _ in range(5)]

    def test_custom_config(self):
        scheduler = BackoffScheduler(BackoffConfig(base_delay=1.0, jitter_ceiling=0.0))
        assert scheduler.delay(3) == 8.0

    def test_negative_attempt_rejected(self):
        with pytest.raises(ValueError):
            BackoffScheduler().delay(-1)


class TestExceptions:
    """Exception hierarchy details used by resolution and retry."""

    def test_error_code_prefixes_message(self):
        error = TransportError("HTTP 404 from https://x.example", status_code=404,
                               error_code=ErrorCode.TRANSPORT_HTTP_STATUS)
        assert str(error) == "[T003] HTTP 404 from https://x.example"
        assert error.message == "HTTP 404 from https://x.example"
        assert error.status_code == 404

    @pytest.mark.parametrize("status, recoverable", [
        (None, True), (404, False), (403, False), (429, True), (500, True), (503, True),
    ])
    def test_transport_recoverability_follows_status(self, status, recoverable):
        assert TransportError("failed", status_code=status).recoverable is recoverable

    def test_host_resolution_error_is_recoverable(self):
        error = HostResolutionError("DNS resolution failed for x.example")
        assert error.recoverable
        assert is_retryable(str(error))

    def test_handle_exception_wraps_unknown_errors(self):
        logger = Mock()
        wrapped = handle_exception(RuntimeError("boom"), logger, "resolve")

        assert isinstance(wrapped, FeedLinkError)
        assert "boom" in str(wrapped)
        assert wrapped.context["operation"] == "resolve"
        logger.error.assert_called_once()

    def test_handle_exception_maps_timeouts(self):
        wrapped = handle_exception(TimeoutError("slow"), Mock(), "fetch")
        assert isinstance(wrapped, TransportError)
        assert wrapped.error_code == ErrorCode.TRANSPORT_TIMEOUT
        assert is_retryable(str(wrapped))

    def test_to_dict(self):
        data = TransportError("HTTP 500", status_code=500).to_dict()
        assert data["error_type"] == "TransportError"
        assert data["recoverable"] is True
        assert data["context"]["status_code"] == 500
