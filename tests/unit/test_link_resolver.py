"""
Link Resolver Tests
===================

Legacy decoding, redirect following with local retries, and the SSRF
check on every resolved URL. No test performs real network access.
"""

import base64

import pytest

from conftest import build_envelope, legacy_link
from feedlink.recovery.error_handler import is_retryable
from feedlink.resolution.link_resolver import LinkResolver
from feedlink.resolution.rate_limiter import RateLimiter
from feedlink.resolution.transport import HttpTransport, FetchOutcome
from feedlink.utils.exceptions import (
    ErrorCode,
    HostResolutionError,
    ResolutionError,
    SecurityViolation,
    TransportError,
)


class FakeTransport(HttpTransport):
    """Replays scripted outcomes; exceptions in the script are raised."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []
        self.closed = False

    async def fetch(self, url, read_body=False):
        self.calls.append(url)
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    async def close(self):
        self.closed = True


class SpyBoundary:
    """Wraps a real boundary and records every validated URL."""

    def __init__(self, boundary):
        self.boundary = boundary
        self.validated = []

    def validate(self, url):
        self.validated.append(url)
        return self.boundary.validate(url)


def make_resolver(boundary, transport=None, **kwargs):
    sleeps = []

    async def fake_sleep(delay):
        sleeps.append(delay)

    resolver = LinkResolver(
        boundary=boundary,
        rate_limiter=RateLimiter(min_interval=0.0),
        transport=transport or FakeTransport(),
        sleep=fake_sleep,
        **kwargs,
    )
    resolver.sleeps = sleeps
    return resolver


class TestLegacyLinks:

    @pytest.mark.asyncio
    async def test_decodes_without_network(self, boundary):
        transport = FakeTransport()
        resolver = make_resolver(boundary, transport)

        result = await resolver.resolve(legacy_link("https://publisher.example/a"))

        assert result == "https://publisher.example/a"
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_multiple_urls_return_the_first(self, boundary):
        resolver = make_resolver(boundary)
        link = legacy_link("https://publisher.example/first", "https://publisher.example/second")

        for _ in range(3):
            assert await resolver.resolve(link) == "https://publisher.example/first"

    @pytest.mark.asyncio
    async def test_cwm_prefix(self, boundary):
        resolver = make_resolver(boundary)
        link = legacy_link("https://publisher.example/a", prefix="CWM")
        assert await resolver.resolve(link) == "https://publisher.example/a"

    @pytest.mark.asyncio
    async def test_decoded_private_url_is_rejected(self, boundary):
        resolver = make_resolver(boundary)
        with pytest.raises(SecurityViolation, match="SSRF blocked"):
            await resolver.resolve(legacy_link("http://169.254.169.254/latest/meta-data"))

    @pytest.mark.asyncio
    async def test_malformed_legacy_id(self, boundary):
        resolver = make_resolver(boundary)
        with pytest.raises(ResolutionError, match="Malformed"):
            await resolver.resolve("https://news.example/rss/articles/CBM!!!notbase64")

    def test_long_ids_use_redirect_resolution(self, boundary):
        resolver = make_resolver(boundary, legacy_max_id_length=150)
        long_link = "https://news.example/rss/articles/CBM" + "A" * 200
        short_link = legacy_link("https://publisher.example/a")

        assert resolver.legacy_article_id(long_link) is None
        assert resolver.legacy_article_id(short_link).startswith("CBM")
        assert resolver.legacy_article_id("https://news.example/rss/articles/XYZabc") is None


class TestRedirectLinks:

    @pytest.mark.asyncio
    async def test_follows_redirects_and_validates_result(self, boundary):
        spy = SpyBoundary(boundary)
        link = "https://news.example/rss/articles/AU_yqLxyz"
        transport = FakeTransport(
            FetchOutcome(final_url="https://publisher.example/b", status=200, redirect_count=2)
        )
        resolver = make_resolver(spy, transport)

        result = await resolver.resolve(link)

        assert result == "https://publisher.example/b"
        assert transport.calls == [link]
        assert spy.validated[-1] == "https://publisher.example/b"

    @pytest.mark.asyncio
    async def test_transient_failures_are_retried_locally(self, boundary):
        transport = FakeTransport(
            TransportError("Network timeout", error_code=ErrorCode.TRANSPORT_TIMEOUT),
            TransportError("Connection error: reset"),
            FetchOutcome(final_url="https://publisher.example/c", status=200, redirect_count=1),
        )
        resolver = make_resolver(boundary, transport, max_fetch_retries=3, retry_pause_base=0.2)

        assert await resolver.resolve("https://news.example/read/abc") == "https://publisher.example/c"
        assert len(transport.calls) == 3
        assert resolver.sleeps == [pytest.approx(0.2), pytest.approx(0.4)]

    @pytest.mark.asyncio
    async def test_exhausted_retries(self, boundary):
        transport = FakeTransport(*[TransportError("Network timeout") for _ in range(3)])
        resolver = make_resolver(boundary, transport, max_fetch_retries=3)

        with pytest.raises(TransportError) as exc_info:
            await resolver.resolve("https://news.example/read/abc")

        assert exc_info.value.error_code == ErrorCode.TRANSPORT_RETRIES_EXHAUSTED
        assert "Network timeout" in str(exc_info.value)
        assert len(resolver.sleeps) == 2

    @pytest.mark.asyncio
    async def test_not_found_is_not_retried(self, boundary):
        transport = FakeTransport(
            TransportError("HTTP 404 from https://news.example/read/abc", status_code=404)
        )
        resolver = make_resolver(boundary, transport)

        with pytest.raises(TransportError, match="HTTP 404"):
            await resolver.resolve("https://news.example/read/abc")
        assert len(transport.calls) == 1

    @pytest.mark.asyncio
    async def test_security_violation_is_not_retried(self, boundary):
        transport = FakeTransport(SecurityViolation("SSRF blocked: private address 10.0.0.5"))
        resolver = make_resolver(boundary, transport)

        with pytest.raises(SecurityViolation, match="SSRF blocked"):
            await resolver.resolve("https://news.example/read/abc")
        assert len(transport.calls) == 1
        assert resolver.sleeps == []

    @pytest.mark.asyncio
    async def test_dns_failure_is_retried_locally(self, boundary):
        transport = FakeTransport(
            HostResolutionError("DNS resolution failed for news.example"),
            FetchOutcome(final_url="https://publisher.example/e", status=200, redirect_count=1),
        )
        resolver = make_resolver(boundary, transport, retry_pause_base=0.2)

        assert await resolver.resolve("https://news.example/read/abc") == "https://publisher.example/e"
        assert len(transport.calls) == 2
        assert resolver.sleeps == [pytest.approx(0.2)]

    @pytest.mark.asyncio
    async def test_persistent_dns_failure_stays_retryable(self, boundary):
        transport = FakeTransport(
            *[HostResolutionError("DNS resolution failed for news.example") for _ in range(3)]
        )
        resolver = make_resolver(boundary, transport, max_fetch_retries=3)

        with pytest.raises(TransportError) as exc_info:
            await resolver.resolve("https://news.example/read/abc")

        assert exc_info.value.error_code == ErrorCode.TRANSPORT_RETRIES_EXHAUSTED
        assert is_retryable(str(exc_info.value))

    @pytest.mark.asyncio
    async def test_no_redirect(self, boundary):
        link = "https://news.example/read/abc"
        resolver = make_resolver(boundary, FakeTransport(FetchOutcome(final_url=link, status=200)))

        with pytest.raises(ResolutionError, match="no redirect") as exc_info:
            await resolver.resolve(link)

        assert exc_info.value.error_code == ErrorCode.RESOLUTION_NO_REDIRECT
        assert not is_retryable(str(exc_info.value))

    @pytest.mark.asyncio
    async def test_rate_limiter_consulted_per_attempt(self, boundary):
        acquired = []

        class CountingLimiter(RateLimiter):
            async def acquire(self, sleep=None):
                acquired.append(True)

        transport = FakeTransport(
            TransportError("Network timeout"),
            FetchOutcome(final_url="https://publisher.example/d", status=200, redirect_count=1),
        )
        resolver = make_resolver(boundary, transport)
        resolver.rate_limiter = CountingLimiter(min_interval=0.0)

        await resolver.resolve("https://news.example/read/abc")
        assert len(acquired) == 2


class TestLinkChecks:

    @pytest.mark.asyncio
    async def test_empty_link(self, boundary):
        resolver = make_resolver(boundary)
        with pytest.raises(ResolutionError, match="Invalid URL"):
            await resolver.resolve("   ")

    @pytest.mark.asyncio
    async def test_aggregator_host_restriction(self, boundary):
        resolver = make_resolver(boundary, aggregator_hosts=["news.google.com"])

        with pytest.raises(ResolutionError) as exc_info:
            await resolver.resolve(legacy_link("https://publisher.example/a"))
        assert exc_info.value.error_code == ErrorCode.RESOLUTION_NOT_AGGREGATOR

        link = legacy_link("https://publisher.example/a", host="NEWS.GOOGLE.COM")
        assert await resolver.resolve(link) == "https://publisher.example/a"

    @pytest.mark.asyncio
    async def test_close_closes_transport(self, boundary):
        transport = FakeTransport()
        resolver = make_resolver(boundary, transport)
        await resolver.close()
        assert transport.closed


def _raw_legacy_link(payload: bytes) -> str:
    article_id = base64.urlsafe_b64encode(payload).decode("ascii").rstrip("=")
    return f"https://news.example/rss/articles/CBM{article_id}"


class TestResolutionErrorsArePermanent:
    """Every ResolutionError the resolver raises must classify as permanent."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("link", [
        "   ",
        "https://news.example/rss/articles/CBM!!!notbase64",
        "https://news.example/rss/articles/CBM%20",
        _raw_legacy_link(b"\x09\x13\x22\x01a"),
        _raw_legacy_link(b"\x08\x13\x21\x01a"),
        _raw_legacy_link(b"\x08\x13\x22\x10short"),
        _raw_legacy_link(b"\x08\x13\x22\x02\xff\xfe"),
        _raw_legacy_link(b"\x08\x13"),
        _raw_legacy_link(build_envelope("   ")),
        _raw_legacy_link(build_envelope("/relative/path")),
    ])
    async def test_decoding_failures(self, boundary, link):
        resolver = make_resolver(boundary)

        with pytest.raises(ResolutionError) as exc_info:
            await resolver.resolve(link)

        assert not is_retryable(str(exc_info.value))

    @pytest.mark.asyncio
    async def test_foreign_host(self, boundary):
        resolver = make_resolver(boundary, aggregator_hosts=["news.google.com"])

        with pytest.raises(ResolutionError) as exc_info:
            await resolver.resolve("https://elsewhere.example/read/abc")

        assert not is_retryable(str(exc_info.value))
