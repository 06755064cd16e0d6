"""
HTTP transport for link resolution and feed fetching.

Redirects are followed hop by hop. Every hop is checked by the SSRF
boundary, and the connection for that hop is pinned to the address the
boundary vetted, so a hostname cannot resolve to something else between
the check and the connect.
"""

import asyncio
import ipaddress
import socket
import ssl
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
from urllib.parse import urljoin

import aiohttp
import certifi
from aiohttp.abc import AbstractResolver

from ..utils.exceptions import TransportError, ErrorCode
from ..utils.logging import get_logger_for_component
from ..utils.validators import SsrfBoundary, ValidatedTarget, get_ssrf_boundary

REDIRECT_STATUSES = {301, 302, 303, 307, 308}

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@dataclass
class FetchOutcome:
    """Result of a fetch after redirects were followed."""

    final_url: str
    status: int
    redirect_count: int = 0
    body: Optional[bytes] = None


class HttpTransport:
    """Interface the resolver and feed fetcher use for outbound HTTP."""

    async def fetch(self, url: str, read_body: bool = False) -> FetchOutcome:
        """Fetch url, following redirects.

        Raises:
            SecurityViolation: If any hop fails the SSRF boundary
            TransportError: On timeout, connection failure, HTTP status >= 400
                or too many redirects
        """
        raise NotImplementedError

    async def close(self) -> None:
        pass


class PinnedResolver(AbstractResolver):
    """aiohttp resolver that only answers with pre-validated addresses."""

    def __init__(self, pins: Dict[str, str]):
        self._pins = dict(pins)

    async def resolve(self, host: str, port: int = 0, family: int = socket.AF_INET) -> List[Dict]:
        address = self._pins.get(host)
        if address is None:
            raise OSError(f"Host {host} was not validated for this request")

        ip = ipaddress.ip_address(address)
        return [{
            "hostname": host,
            "host": address,
            "port": port,
            "family": socket.AF_INET6 if ip.version == 6 else socket.AF_INET,
            "proto": 0,
            "flags": socket.AI_NUMERICHOST,
        }]

    async def close(self) -> None:
        pass


class AiohttpTransport(HttpTransport):
    """aiohttp transport with per-hop SSRF validation and address pinning."""

    def __init__(
        self,
        boundary: Optional[SsrfBoundary] = None,
        timeout: float = 10.0,
        max_redirects: int = 10,
        user_agent: str = DEFAULT_USER_AGENT,
        max_body_bytes: int = 5 * 1024 * 1024,
    ):
        """Initialize the transport.

        Args:
            boundary: SSRF boundary applied to every hop
            timeout: Total timeout per hop in seconds
            max_redirects: Redirect hops allowed before giving up
            user_agent: User-Agent header value
            max_body_bytes: Largest response body read when read_body is set
        """
        self.boundary = boundary or get_ssrf_boundary()
        self.timeout = timeout
        self.max_redirects = max_redirects
        self.max_body_bytes = max_body_bytes
        self.headers = {
            "User-Agent": user_agent,
            "Accept": "text/html,application/xhtml+xml,application/rss+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
        }
        self.ssl_context = ssl.create_default_context(cafile=certifi.where())
        self.logger = get_logger_for_component("http_transport")

    async def fetch(self, url: str, read_body: bool = False) -> FetchOutcome:
        current = url

        for redirect_count in range(self.max_redirects + 1):
            target = self.boundary.validate(current)
            status, location, body = await self._request(target, read_body)

            if status in REDIRECT_STATUSES and location:
                next_url = urljoin(current, location)
                self.logger.debug(
                    f"Redirect {status}: {current} -> {next_url}",
                    extra={"category": "transport", "hop": redirect_count + 1},
                )
                current = next_url
                continue

            if status >= 400:
                raise TransportError(
                    f"HTTP {status} from {current}",
                    url=current,
                    status_code=status,
                    error_code=ErrorCode.TRANSPORT_HTTP_STATUS,
                )

            return FetchOutcome(
                final_url=current, status=status, redirect_count=redirect_count, body=body
            )

        raise TransportError(
            f"Too many redirects (more than {self.max_redirects}) for {url}",
            url=url,
            error_code=ErrorCode.TRANSPORT_TOO_MANY_REDIRECTS,
            recoverable=False,
        )

    async def _request(
        self, target: ValidatedTarget, read_body: bool
    ) -> Tuple[int, Optional[str], Optional[bytes]]:
        connector = aiohttp.TCPConnector(
            ssl=self.ssl_context,
            resolver=PinnedResolver({target.host: target.address}),
            use_dns_cache=False,
            limit=1,
        )
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        try:
            async with aiohttp.ClientSession(
                connector=connector, timeout=timeout, headers=self.headers
            ) as session:
                async with session.get(target.url, allow_redirects=False) as response:
                    location = response.headers.get("Location")
                    body = None
                    if read_body and response.status not in REDIRECT_STATUSES and response.status < 400:
                        body = await self._read_limited(response, target.url)
                    return response.status, location, body

        except asyncio.TimeoutError as e:
            raise TransportError(
                f"Network timeout after {self.timeout}s fetching {target.url}",
                url=target.url,
                error_code=ErrorCode.TRANSPORT_TIMEOUT,
            ) from e
        except aiohttp.ClientError as e:
            raise TransportError(
                f"Connection error fetching {target.url}: {e}",
                url=target.url,
                error_code=ErrorCode.TRANSPORT_CONNECTION,
            ) from e

    async def _read_limited(self, response: aiohttp.ClientResponse, url: str) -> bytes:
        chunks = []
        size = 0
        async for chunk in response.content.iter_chunked(64 * 1024):
            size += len(chunk)
            if size > self.max_body_bytes:
                raise TransportError(
                    f"Response body from {url} exceeds {self.max_body_bytes} bytes",
                    url=url,
                    error_code=ErrorCode.TRANSPORT_HTTP_STATUS,
                    recoverable=False,
                )
            chunks.append(chunk)
        return b"".join(chunks)
