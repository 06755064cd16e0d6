"""
feedlink URL Validators
=======================

SSRF boundary for every URL the service fetches or hands back to callers.

A URL passes when its scheme is http/https, it fits the length limit, and
every address its host resolves to lies outside the blocked networks
(private, loopback, link-local, unspecified). The resolved address is
returned so the HTTP layer can connect to exactly the address that was
vetted instead of resolving the name a second time.
"""

import ipaddress
import socket
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Union
from urllib.parse import urlsplit

from .exceptions import SecurityViolation, HostResolutionError, ErrorCode
from .logging import get_logger_for_component

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]

# Resolver signature matches socket.getaddrinfo(host, port, ...)
Resolver = Callable[..., list]

DEFAULT_BLOCKED_NETWORKS: Sequence[IPNetwork] = tuple(
    ipaddress.ip_network(cidr)
    for cidr in (
        "10.0.0.0/8",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "127.0.0.0/8",
        "169.254.0.0/16",
        "0.0.0.0/8",
        "::1/128",
        "::/128",
        "fc00::/7",
        "fe80::/10",
    )
)

MAX_URL_LENGTH = 2000
ALLOWED_SCHEMES = ("http", "https")


@dataclass(frozen=True)
class ValidatedTarget:
    """A URL that passed the boundary, with the address it was vetted at."""
    url: str
    host: str
    port: int
    address: str


class SsrfBoundary:
    """Reject URLs that could reach internal infrastructure."""

    def __init__(
        self,
        blocked_networks: Optional[Iterable[IPNetwork]] = None,
        resolver: Optional[Resolver] = None,
        max_url_length: int = MAX_URL_LENGTH,
        allowed_schemes: Sequence[str] = ALLOWED_SCHEMES,
    ):
        """Initialize the boundary.

        Args:
            blocked_networks: Networks no URL may resolve into
            resolver: getaddrinfo-compatible callable used for DNS lookups
            max_url_length: Longest accepted URL
            allowed_schemes: Accepted URL schemes (lower case)
        """
        self.blocked_networks: List[IPNetwork] = list(
            DEFAULT_BLOCKED_NETWORKS if blocked_networks is None else blocked_networks
        )
        self.resolver = resolver or socket.getaddrinfo
        self.max_url_length = max_url_length
        self.allowed_schemes = tuple(s.lower() for s in allowed_schemes)
        self.logger = get_logger_for_component("ssrf_boundary")

    def validate(self, url: str) -> ValidatedTarget:
        """Validate a URL and pin the address its host resolves to.

        Args:
            url: Absolute URL to check

        Returns:
            ValidatedTarget carrying the vetted address

        Raises:
            SecurityViolation: If the URL may not be fetched
            HostResolutionError: If the host could not be resolved
        """
        try:
            return self._validate(url)
        except SecurityViolation as e:
            self.logger.warning(
                f"Rejected URL: {e.message}",
                extra={"category": "security", "url": (url or "")[:200],
                       "error_code": e.error_code.value if e.error_code else None},
            )
            raise

    def is_allowed(self, url: str) -> bool:
        """Boolean form of validate()."""
        try:
            self.validate(url)
            return True
        except SecurityViolation:
            return False

    def _validate(self, url: str) -> ValidatedTarget:
        if not url or not isinstance(url, str):
            raise SecurityViolation(
                "SSRF blocked: empty URL",
                error_code=ErrorCode.SECURITY_MALFORMED_URL,
            )

        if len(url) > self.max_url_length:
            raise SecurityViolation(
                f"SSRF blocked: URL exceeds {self.max_url_length} characters",
                url=url,
                error_code=ErrorCode.SECURITY_URL_LENGTH,
            )

        if "://" not in url:
            raise SecurityViolation(
                "SSRF blocked: Invalid URL, not absolute",
                url=url,
                error_code=ErrorCode.SECURITY_MALFORMED_URL,
            )

        try:
            parsed = urlsplit(url)
            port = parsed.port
        except ValueError as e:
            raise SecurityViolation(
                f"SSRF blocked: Invalid URL ({e})",
                url=url,
                error_code=ErrorCode.SECURITY_MALFORMED_URL,
            ) from e

        scheme = parsed.scheme.lower()
        if scheme not in self.allowed_schemes:
            raise SecurityViolation(
                f"SSRF blocked: scheme '{parsed.scheme}' is not allowed",
                url=url,
                error_code=ErrorCode.SECURITY_INVALID_SCHEME,
            )

        host = parsed.hostname
        if not host:
            raise SecurityViolation(
                "SSRF blocked: Invalid URL, missing host",
                url=url,
                error_code=ErrorCode.SECURITY_MALFORMED_URL,
            )

        if port is None:
            port = 443 if scheme == "https" else 80

        literal = self._parse_literal(host)
        if literal is not None:
            self._check_address(literal, url)
            return ValidatedTarget(url=url, host=host, port=port, address=str(literal))

        addresses = self._resolve(host, port, url)
        for address in addresses:
            self._check_address(address, url)

        return ValidatedTarget(url=url, host=host, port=port, address=str(addresses[0]))

    def _resolve(self, host: str, port: int, url: str) -> List[IPAddress]:
        """Resolve host once; every returned address must be checked."""
        try:
            infos = self.resolver(host, port, 0, socket.SOCK_STREAM)
        except (socket.gaierror, OSError, UnicodeError) as e:
            raise HostResolutionError(
                f"DNS resolution failed for {host}: {e}",
                url=url,
            ) from e

        addresses: List[IPAddress] = []
        for info in infos or []:
            sockaddr = info[4]
            try:
                address = ipaddress.ip_address(str(sockaddr[0]).split("%", 1)[0])
            except ValueError:
                continue
            if address not in addresses:
                addresses.append(address)

        if not addresses:
            raise HostResolutionError(
                f"DNS resolution returned no addresses for {host}",
                url=url,
            )
        return addresses

    def _check_address(self, address: IPAddress, url: str) -> None:
        if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
            address = address.ipv4_mapped

        for network in self.blocked_networks:
            if address.version == network.version and address in network:
                raise SecurityViolation(
                    f"SSRF blocked: private address {address}",
                    url=url,
                    error_code=ErrorCode.SECURITY_PRIVATE_ADDRESS,
                    context={"address": str(address), "network": str(network)},
                )

    @staticmethod
    def _parse_literal(host: str) -> Optional[IPAddress]:
        try:
            return ipaddress.ip_address(host.strip("[]"))
        except ValueError:
            return None


# Global boundary instance
_boundary: Optional[SsrfBoundary] = None


def get_ssrf_boundary() -> SsrfBoundary:
    """Get the process-wide boundary with default settings."""
    global _boundary
    if _boundary is None:
        _boundary = SsrfBoundary()
    return _boundary


def validate_url(url: str) -> None:
    """Raise SecurityViolation unless url is safe to fetch."""
    get_ssrf_boundary().validate(url)
