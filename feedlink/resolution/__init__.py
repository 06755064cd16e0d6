"""
feedlink Link Resolution
========================

Aggregator link decoding and redirect resolution:
- LinkResolver: legacy decoding or redirect following, SSRF checked
- RateLimiter: minimum spacing between outbound fetches
- AiohttpTransport: redirect-following HTTP client with address pinning
"""

from .link_resolver import LinkResolver
from .rate_limiter import RateLimiter, get_rate_limiter
from .transport import HttpTransport, AiohttpTransport, FetchOutcome

__all__ = [
    "LinkResolver",
    "RateLimiter",
    "get_rate_limiter",
    "HttpTransport",
    "AiohttpTransport",
    "FetchOutcome",
]
