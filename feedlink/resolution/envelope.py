"""
Legacy aggregator link decoding.

Legacy article ids are base64 payloads wrapping a small length-prefixed
record:

    0x08  <wire type>  0x22  <length>  <length bytes of UTF-8 URL>

A payload may carry further records, optionally separated by 0x00 bytes.
Only the first record's URL is used; trailing records are parsed best
effort and ignored when malformed.
"""

import base64
import binascii
from typing import List
from urllib.parse import unquote, urlsplit

from ..utils.exceptions import ResolutionError, ErrorCode

RECORD_TAG = 0x08
LENGTH_MARKER = 0x22
SEPARATOR = 0x00


class ByteCursor:
    """Bounds-checked reader over a bytes payload."""

    def __init__(self, data: bytes):
        self.data = data
        self.position = 0

    @property
    def remaining(self) -> int:
        return len(self.data) - self.position

    def at_end(self) -> bool:
        return self.position >= len(self.data)

    def peek(self) -> int:
        if self.at_end():
            raise ResolutionError(
                "Malformed envelope: unexpected end of payload",
                error_code=ErrorCode.RESOLUTION_MALFORMED_ENVELOPE,
            )
        return self.data[self.position]

    def read_byte(self) -> int:
        value = self.peek()
        self.position += 1
        return value

    def read(self, count: int) -> bytes:
        if count > self.remaining:
            raise ResolutionError(
                f"Malformed envelope: record needs {count} bytes, {self.remaining} left",
                error_code=ErrorCode.RESOLUTION_MALFORMED_ENVELOPE,
            )
        chunk = self.data[self.position:self.position + count]
        self.position += count
        return chunk


def decode_article_id(article_id: str) -> bytes:
    """Decode a base64 article id (standard or URL-safe, padding optional)."""
    text = unquote(article_id).strip()
    if not text:
        raise ResolutionError(
            "Malformed article id: empty payload",
            error_code=ErrorCode.RESOLUTION_INVALID_ENCODING,
        )

    text = text.replace("-", "+").replace("_", "/")
    text += "=" * (-len(text) % 4)

    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ResolutionError(
            f"Malformed article id: not base64 ({e})",
            error_code=ErrorCode.RESOLUTION_INVALID_ENCODING,
        ) from e


def _read_record(cursor: ByteCursor) -> str:
    tag = cursor.read_byte()
    if tag != RECORD_TAG:
        raise ResolutionError(
            f"Malformed envelope: expected tag 0x08, found 0x{tag:02x}",
            error_code=ErrorCode.RESOLUTION_MALFORMED_ENVELOPE,
        )

    cursor.read_byte()  # wire type, any value

    marker = cursor.read_byte()
    if marker != LENGTH_MARKER:
        raise ResolutionError(
            f"Malformed envelope: expected length marker 0x22, found 0x{marker:02x}",
            error_code=ErrorCode.RESOLUTION_MALFORMED_ENVELOPE,
        )

    length = cursor.read_byte()
    raw = cursor.read(length)

    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ResolutionError(
            "Malformed envelope: URL bytes are not valid UTF-8",
            error_code=ErrorCode.RESOLUTION_MALFORMED_ENVELOPE,
        ) from e


def parse_envelope(payload: bytes) -> List[str]:
    """Parse every record in a payload.

    The first record must be well formed. Parsing stops silently at the
    first malformed trailing record.

    Returns:
        URLs in payload order (at least one)
    """
    cursor = ByteCursor(payload)
    urls = [_read_record(cursor)]

    while not cursor.at_end():
        while not cursor.at_end() and cursor.peek() == SEPARATOR:
            cursor.read_byte()
        if cursor.at_end():
            break
        try:
            urls.append(_read_record(cursor))
        except ResolutionError:
            break

    return urls


def _require_absolute(url: str) -> str:
    url = url.strip()
    if not url:
        raise ResolutionError(
            "Malformed envelope: empty URL",
            error_code=ErrorCode.RESOLUTION_EMPTY_RESULT,
        )
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        raise ResolutionError(
            f"Invalid URL in envelope: {url[:100]}",
            error_code=ErrorCode.RESOLUTION_MALFORMED_ENVELOPE,
        )
    return url


def decode_legacy_id(article_id: str, prefix_length: int = 3) -> str:
    """Decode a legacy article id (prefix included) into its publisher URL.

    Raises:
        ResolutionError: On invalid base64 or a malformed envelope
    """
    payload = decode_article_id(article_id[prefix_length:])
    urls = parse_envelope(payload)
    return _require_absolute(urls[0])
