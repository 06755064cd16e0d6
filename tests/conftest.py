"""
PyTest Configuration and Fixtures
=================================

Shared fixtures and configuration for feedlink tests.

- Session-scoped database schema, cleared between tests
- Fake DNS resolver and SSRF boundary so no test touches the network
- Envelope builder for legacy aggregator links
"""

import base64
import os
import socket
import sys
import tempfile
from pathlib import Path

import pytest

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables before any imports
_test_dir = Path(tempfile.mkdtemp(prefix="feedlink_tests_"))
os.environ["FEEDLINK_DATABASE__PATH"] = str(_test_dir / "settings.db")
os.environ["FEEDLINK_LOGGING__FILE_PATH"] = str(_test_dir / "feedlink_test.log")
os.environ["FEEDLINK_LOGGING__CONSOLE_LOGGING"] = "false"
os.environ["FEEDLINK_DEBUG"] = "true"


# ============================================================================
# Network Fakes
# ============================================================================


PUBLIC_HOSTS = {
    "news.example": "93.184.216.34",
    "news.google.com": "142.250.80.46",
    "publisher.example": "93.184.216.35",
    "feeds.example": "93.184.216.36",
}


def make_fake_resolver(mapping):
    """getaddrinfo-compatible resolver backed by a host -> address(es) dict."""

    def resolve(host, port, *args, **kwargs):
        if host not in mapping:
            raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")
        addresses = mapping[host]
        if isinstance(addresses, str):
            addresses = [addresses]
        infos = []
        for address in addresses:
            family = socket.AF_INET6 if ":" in address else socket.AF_INET
            infos.append((family, socket.SOCK_STREAM, 6, "", (address, port)))
        return infos

    return resolve


@pytest.fixture
def fake_resolver():
    """Resolver that knows a handful of public test hosts."""
    return make_fake_resolver(PUBLIC_HOSTS)


@pytest.fixture
def boundary(fake_resolver):
    """SSRF boundary with default blocked networks and fake DNS."""
    from feedlink.utils.validators import SsrfBoundary

    return SsrfBoundary(resolver=fake_resolver)


def build_envelope(*urls: str, wire_type: int = 0x13, separator: bool = False) -> bytes:
    """Build a legacy envelope payload holding the given URLs."""
    payload = b""
    for index, url in enumerate(urls):
        raw = url.encode("utf-8")
        if index and separator:
            payload += b"\x00"
        payload += bytes([0x08, wire_type, 0x22, len(raw)]) + raw
    return payload


def legacy_link(*urls: str, host: str = "news.example", prefix: str = "CBM") -> str:
    """Build a legacy aggregator link whose article id encodes the URLs."""
    article_id = base64.urlsafe_b64encode(build_envelope(*urls)).decode("ascii").rstrip("=")
    return f"https://{host}/rss/articles/{prefix}{article_id}?oc=5"


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(scope="session")
def session_test_db():
    """Session-scoped test database (created once for all tests).

    Tests use the clean_db fixture to clear data between tests.
    """
    from feedlink.database.schema import DatabaseSchema

    _test_dir.mkdir(exist_ok=True)
    db_path = _test_dir / "feedlink_test.db"

    if db_path.exists():
        db_path.unlink()

    schema = DatabaseSchema(str(db_path))
    schema.create_tables()

    yield str(db_path)

    try:
        db_path.unlink()
    except FileNotFoundError:
        pass


@pytest.fixture
def clean_db(session_test_db):
    """Clear all rows but keep the schema."""
    from feedlink.database.connection import DatabaseConnection

    conn = DatabaseConnection(session_test_db, pool_size=2)

    with conn.get_connection() as db:
        # Order matters for foreign keys
        db.execute("DELETE FROM articles")
        db.execute("DELETE FROM feeds")
        db.execute("DELETE FROM logs")
        db.commit()

    conn.close_all_connections()

    yield session_test_db


@pytest.fixture
def db_connection(clean_db):
    """Create a database connection manager for testing."""
    from feedlink.database.connection import DatabaseConnection

    connection = DatabaseConnection(clean_db, pool_size=2)
    yield connection

    connection.close_all_connections()


@pytest.fixture
def article_repo(db_connection):
    from feedlink.storage.article_repository import ArticleRepository

    return ArticleRepository(db_connection)


@pytest.fixture
def sample_article():
    """Unsaved article for a legacy aggregator link."""
    from feedlink.database.models import Article

    return Article(
        source_feed="https://news.example/rss/search?q=python",
        aggregator_url=legacy_link("https://publisher.example/a"),
        rss_title="Python 3.14 released",
        rss_description="The new release brings...",
        rss_source="Publisher Example",
    )


@pytest.fixture
def sample_feeds():
    """Generate sample feeds for testing."""
    from feedlink.database.models import Feed

    return [
        Feed(url="https://news.example/rss/search?q=python", title="Python", result_limit=5),
        Feed(url="https://news.example/rss/search?q=rust", title="Rust", result_limit=5),
    ]
