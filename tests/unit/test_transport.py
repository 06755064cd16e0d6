"""
HTTP Transport Tests
====================

Runs AiohttpTransport against a local aiohttp test server. The server's
hostname is resolved by a fake resolver to 127.0.0.1, which these tests
remove from the blocked networks; every other network stays blocked.
"""

import asyncio
import ipaddress

import pytest
from aiohttp import web
from aiohttp import test_utils

from conftest import make_fake_resolver
from feedlink.resolution.transport import AiohttpTransport, PinnedResolver
from feedlink.utils.exceptions import ErrorCode, SecurityViolation, TransportError
from feedlink.utils.validators import DEFAULT_BLOCKED_NETWORKS, SsrfBoundary

HOST = "publisher.test"
SEEN_AGENTS = []
FEED_BODY = b"<?xml version='1.0'?><rss version='2.0'><channel><title>t</title></channel></rss>"


def local_boundary() -> SsrfBoundary:
    loopback = ipaddress.ip_network("127.0.0.0/8")
    return SsrfBoundary(
        blocked_networks=[n for n in DEFAULT_BLOCKED_NETWORKS if n != loopback],
        resolver=make_fake_resolver({HOST: "127.0.0.1"}),
    )


def redirect(location: str, status: int = 302) -> web.Response:
    return web.Response(status=status, headers={"Location": location})


async def start_server() -> test_utils.TestServer:
    async def start(request):
        return redirect("/hop")

    async def hop(request):
        return redirect(f"http://{HOST}:{request.url.port}/final", status=301)

    async def final(request):
        SEEN_AGENTS.append(request.headers.get("User-Agent", ""))
        return web.Response(text="article")

    async def feed(request):
        return web.Response(body=FEED_BODY, content_type="application/rss+xml")

    async def loop(request):
        return redirect("/loop")

    async def escape(request):
        return redirect("http://169.254.169.254/latest/meta-data")

    async def missing(request):
        return web.Response(status=404)

    async def slow(request):
        await asyncio.sleep(1)
        return web.Response(text="late")

    app = web.Application()
    app.router.add_get("/start", start)
    app.router.add_get("/hop", hop)
    app.router.add_get("/final", final)
    app.router.add_get("/feed", feed)
    app.router.add_get("/loop", loop)
    app.router.add_get("/escape", escape)
    app.router.add_get("/missing", missing)
    app.router.add_get("/slow", slow)

    server = test_utils.TestServer(app, host="127.0.0.1")
    await server.start_server()
    return server


def url_for(server: test_utils.TestServer, path: str) -> str:
    return f"http://{HOST}:{server.port}{path}"


class TestAiohttpTransport:

    @pytest.mark.asyncio
    async def test_follows_redirect_chain(self):
        server = await start_server()
        expected = url_for(server, "/final")
        try:
            transport = AiohttpTransport(boundary=local_boundary(), timeout=5)
            outcome = await transport.fetch(url_for(server, "/start"))
        finally:
            await server.close()

        assert outcome.final_url == expected
        assert outcome.status == 200
        assert outcome.redirect_count == 2
        assert outcome.body is None

    @pytest.mark.asyncio
    async def test_reads_body_when_asked(self):
        server = await start_server()
        try:
            transport = AiohttpTransport(boundary=local_boundary(), timeout=5)
            outcome = await transport.fetch(url_for(server, "/feed"), read_body=True)
        finally:
            await server.close()

        assert outcome.body == FEED_BODY
        assert outcome.redirect_count == 0

    @pytest.mark.asyncio
    async def test_body_size_limit(self):
        server = await start_server()
        try:
            transport = AiohttpTransport(boundary=local_boundary(), timeout=5, max_body_bytes=10)
            with pytest.raises(TransportError, match="exceeds 10 bytes"):
                await transport.fetch(url_for(server, "/feed"), read_body=True)
        finally:
            await server.close()

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        server = await start_server()
        try:
            transport = AiohttpTransport(boundary=local_boundary(), timeout=5)
            with pytest.raises(TransportError) as exc_info:
                await transport.fetch(url_for(server, "/missing"))
        finally:
            await server.close()

        error = exc_info.value
        assert error.status_code == 404
        assert not error.recoverable
        assert "HTTP 404" in str(error)

    @pytest.mark.asyncio
    async def test_too_many_redirects(self):
        server = await start_server()
        try:
            transport = AiohttpTransport(boundary=local_boundary(), timeout=5, max_redirects=3)
            with pytest.raises(TransportError) as exc_info:
                await transport.fetch(url_for(server, "/loop"))
        finally:
            await server.close()

        assert exc_info.value.error_code == ErrorCode.TRANSPORT_TOO_MANY_REDIRECTS
        assert not exc_info.value.recoverable

    @pytest.mark.asyncio
    async def test_redirect_into_private_network_is_blocked(self):
        server = await start_server()
        try:
            transport = AiohttpTransport(boundary=local_boundary(), timeout=5)
            with pytest.raises(SecurityViolation, match="169.254.169.254"):
                await transport.fetch(url_for(server, "/escape"))
        finally:
            await server.close()

    @pytest.mark.asyncio
    async def test_timeout(self):
        server = await start_server()
        try:
            transport = AiohttpTransport(boundary=local_boundary(), timeout=0.2)
            with pytest.raises(TransportError) as exc_info:
                await transport.fetch(url_for(server, "/slow"))
        finally:
            await server.close()

        assert exc_info.value.error_code == ErrorCode.TRANSPORT_TIMEOUT
        assert exc_info.value.recoverable
        assert "Network timeout" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_sends_user_agent(self):
        server = await start_server()
        try:
            transport = AiohttpTransport(boundary=local_boundary(), timeout=5, user_agent="feedlink-test")
            await transport.fetch(url_for(server, "/final"))
        finally:
            await server.close()

        assert SEEN_AGENTS[-1] == "feedlink-test"

    @pytest.mark.asyncio
    async def test_unvalidated_url_never_connects(self):
        transport = AiohttpTransport(boundary=local_boundary(), timeout=5)
        with pytest.raises(SecurityViolation):
            await transport.fetch("http://10.0.0.1/")


class TestPinnedResolver:

    @pytest.mark.asyncio
    async def test_returns_pinned_address(self):
        resolver = PinnedResolver({HOST: "127.0.0.1"})
        results = await resolver.resolve(HOST, 8080)

        assert len(results) == 1
        assert results[0]["host"] == "127.0.0.1"
        assert results[0]["hostname"] == HOST
        assert results[0]["port"] == 8080

    @pytest.mark.asyncio
    async def test_unknown_host_refused(self):
        resolver = PinnedResolver({HOST: "127.0.0.1"})
        with pytest.raises(OSError):
            await resolver.resolve("other.test", 80)
