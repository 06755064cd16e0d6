"""
Aggregator Link Resolver
========================

Turns an aggregator link into the publisher URL it points at.

Two link styles exist. Legacy links carry the publisher URL inside a base64
article id and are decoded locally without any network access. Newer links
are opaque and are resolved by following the aggregator's redirects. Either
way the resulting URL goes through the SSRF boundary before it is returned.
"""

import asyncio
import re
from typing import Awaitable, Callable, Iterable, Optional, Sequence
from urllib.parse import urlsplit

from .envelope import decode_legacy_id
from .rate_limiter import RateLimiter, get_rate_limiter
from .transport import HttpTransport, AiohttpTransport
from ..utils.exceptions import (
    FeedLinkError,
    HostResolutionError,
    ResolutionError,
    TransportError,
    ErrorCode,
)
from ..utils.logging import get_logger_for_component
from ..utils.validators import SsrfBoundary, get_ssrf_boundary

DEFAULT_AGGREGATOR_HOSTS = ()
DEFAULT_LEGACY_PREFIXES = ("CBM", "CWM")


class LinkResolver:
    """Resolve aggregator links to canonical publisher URLs."""

    def __init__(
        self,
        boundary: Optional[SsrfBoundary] = None,
        rate_limiter: Optional[RateLimiter] = None,
        transport: Optional[HttpTransport] = None,
        aggregator_hosts: Iterable[str] = DEFAULT_AGGREGATOR_HOSTS,
        legacy_prefixes: Sequence[str] = DEFAULT_LEGACY_PREFIXES,
        legacy_max_id_length: int = 150,
        max_fetch_retries: int = 3,
        retry_pause_base: float = 0.2,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the resolver.

        Args:
            boundary: SSRF boundary for decoded and fetched URLs
            rate_limiter: Limiter consulted before every outbound fetch
            transport: HTTP transport used for redirect-style links
            aggregator_hosts: Accepted link hosts; empty accepts any host
            legacy_prefixes: Article id prefixes of the legacy encoding
            legacy_max_id_length: Ids this long or longer use redirects
            max_fetch_retries: Attempts per redirect fetch
            retry_pause_base: Pause before the second attempt, doubled after
            sleep: Coroutine used for pauses between attempts
        """
        self.boundary = boundary or get_ssrf_boundary()
        self.rate_limiter = rate_limiter or get_rate_limiter()
        self.transport = transport or AiohttpTransport(boundary=self.boundary)
        self.aggregator_hosts = {host.lower() for host in aggregator_hosts}
        self.legacy_prefixes = tuple(legacy_prefixes)
        self.legacy_max_id_length = legacy_max_id_length
        self.max_fetch_retries = max(1, max_fetch_retries)
        self.retry_pause_base = retry_pause_base
        self.sleep = sleep
        self.logger = get_logger_for_component("link_resolver")

        prefixes = "|".join(re.escape(p) for p in self.legacy_prefixes)
        self._legacy_pattern = re.compile(
            rf"/rss/articles/((?:{prefixes})[^/?#]*)", re.IGNORECASE
        )

    @classmethod
    def from_settings(cls, settings, **overrides) -> "LinkResolver":
        """Build a resolver from FeedLinkSettings."""
        boundary = overrides.pop("boundary", None) or SsrfBoundary(
            max_url_length=settings.security.max_url_length,
            allowed_schemes=settings.security.allowed_schemes,
        )
        resolver_settings = settings.resolver
        transport = overrides.pop("transport", None) or AiohttpTransport(
            boundary=boundary,
            timeout=resolver_settings.request_timeout,
            max_redirects=resolver_settings.max_redirects,
            user_agent=resolver_settings.user_agent,
        )
        rate_limiter = overrides.pop("rate_limiter", None) or get_rate_limiter(
            resolver_settings.rate_limit_delay
        )
        return cls(
            boundary=boundary,
            rate_limiter=rate_limiter,
            transport=transport,
            aggregator_hosts=resolver_settings.aggregator_hosts,
            legacy_prefixes=resolver_settings.legacy_prefixes,
            legacy_max_id_length=resolver_settings.legacy_max_id_length,
            max_fetch_retries=resolver_settings.max_fetch_retries,
            retry_pause_base=resolver_settings.retry_pause_base,
            **overrides,
        )

    def legacy_article_id(self, link: str) -> Optional[str]:
        """Return the article id if link uses the legacy encoding."""
        match = self._legacy_pattern.search(urlsplit(link).path)
        if not match:
            return None
        article_id = match.group(1)
        if len(article_id) >= self.legacy_max_id_length:
            return None
        return article_id

    async def resolve(self, link: str) -> str:
        """Resolve an aggregator link to its publisher URL.

        Args:
            link: Aggregator link

        Returns:
            Publisher URL that passed the SSRF boundary

        Raises:
            ResolutionError: If the link is not an aggregator link or cannot be decoded
            SecurityViolation: If the link or the result fails the SSRF boundary
            TransportError: If redirect resolution fails
        """
        link = (link or "").strip()
        if not link:
            raise ResolutionError(
                "Invalid URL: empty aggregator link",
                error_code=ErrorCode.RESOLUTION_NOT_AGGREGATOR,
            )

        self._check_aggregator_host(link)

        article_id = self.legacy_article_id(link)
        if article_id is not None:
            prefix_length = len(self.legacy_prefixes[0])
            candidate = decode_legacy_id(article_id, prefix_length)
            method = "legacy"
        else:
            candidate = await self._resolve_by_redirect(link)
            method = "redirect"

        self.boundary.validate(candidate)

        self.logger.info(
            f"Resolved link via {method}: {candidate}",
            extra={"category": "resolution", "method": method, "link": link[:200]},
        )
        return candidate

    def _check_aggregator_host(self, link: str) -> None:
        if not self.aggregator_hosts:
            return

        try:
            host = (urlsplit(link).hostname or "").lower()
        except ValueError:
            host = ""

        if host not in self.aggregator_hosts:
            raise ResolutionError(
                f"Invalid URL: {host or 'missing host'} is not an aggregator host",
                link=link,
                error_code=ErrorCode.RESOLUTION_NOT_AGGREGATOR,
            )

    async def _resolve_by_redirect(self, link: str) -> str:
        last_error: Optional[FeedLinkError] = None

        for attempt in range(1, self.max_fetch_retries + 1):
            await self.rate_limiter.acquire()
            try:
                outcome = await self.transport.fetch(link)
            except (TransportError, HostResolutionError) as e:
                if not e.recoverable:
                    raise
                last_error = e
                self.logger.warning(
                    f"Fetch attempt {attempt}/{self.max_fetch_retries} failed: {e.message}",
                    extra={"category": "resolution", "link": link[:200], "attempt": attempt},
                )
                if attempt < self.max_fetch_retries:
                    await self.sleep(self.retry_pause_base * 2 ** (attempt - 1))
                continue

            if outcome.final_url == link:
                raise ResolutionError(
                    "Invalid URL: no redirect, aggregator returned the link itself",
                    link=link,
                    error_code=ErrorCode.RESOLUTION_NO_REDIRECT,
                )
            return outcome.final_url

        raise TransportError(
            f"Redirect resolution failed after {self.max_fetch_retries} attempts: "
            f"{last_error.message if last_error else 'unknown error'}",
            url=link,
            status_code=getattr(last_error, "status_code", None),
            error_code=ErrorCode.TRANSPORT_RETRIES_EXHAUSTED,
        )

    async def close(self) -> None:
        await self.transport.close()
