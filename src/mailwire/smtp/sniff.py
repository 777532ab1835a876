"""
Content-type sniffing for attachments.

Implements the WHATWG MIME sniffing algorithm over the first
``SNIFF_LEN`` bytes of a payload: a fixed table of signatures is tried in
order and the first match wins. Content that matches nothing is
``text/plain; charset=utf-8`` when it holds no binary control bytes and
``application/octet-stream`` otherwise.
"""

from collections.abc import Callable
from typing import Optional

SNIFF_LEN = 512
DEFAULT_CONTENT_TYPE = "application/octet-stream"
TEXT_PLAIN_UTF8 = "text/plain; charset=utf-8"

# Bytes that may appear at the start of HTML/XML documents
_WHITESPACE = b"\t\n\x0c\r "

# Bytes that mark content as binary (WHATWG "binary data byte")
_BINARY_BYTES = frozenset(
    list(range(0x00, 0x09)) + [0x0B] + list(range(0x0E, 0x1B)) + list(range(0x1C, 0x20))
)

Matcher = Callable[[bytes], bool]


def _skip_whitespace(data: bytes) -> bytes:
    return data.lstrip(_WHITESPACE)


def _exact(signature: bytes) -> Matcher:
    def match(data: bytes) -> bool:
        return data.startswith(signature)

    return match


def _masked(pattern: bytes, mask: bytes, skip_ws: bool = False) -> Matcher:
    def match(data: bytes) -> bool:
        if skip_ws:
            data = _skip_whitespace(data)
        if len(data) < len(pattern):
            return False
        return all(
            data[i] & mask[i] == pattern[i] for i in range(len(pattern))
        )

    return match


def _html(tag: bytes) -> Matcher:
    """Match an HTML tag case-insensitively, terminated by space or '>'."""

    def match(data: bytes) -> bool:
        data = _skip_whitespace(data)
        if len(data) < len(tag) + 1:
            return False
        if data[: len(tag)].upper() != tag:
            return False
        return data[len(tag)] in b" >"

    return match


def _mp4(data: bytes) -> bool:
    if len(data) < 12:
        return False

    box_size = int.from_bytes(data[:4], "big")
    if len(data) < box_size or box_size % 4 != 0:
        return False
    if data[4:8] != b"ftyp":
        return False

    for start in range(8, box_size, 4):
        if start == 12:
            # Bytes 12-15 hold the minor version, not a brand
            continue
        if data[start:start + 3] == b"mp4":
            return True
    return False


_RIFF_MASK = b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff"

_HTML_TAGS = (
    b"<!DOCTYPE HTML", b"<HTML", b"<HEAD", b"<SCRIPT", b"<IFRAME", b"<H1",
    b"<DIV", b"<FONT", b"<TABLE", b"<A", b"<STYLE", b"<TITLE", b"<B",
    b"<BODY", b"<BR", b"<P", b"<!--",
)

SIGNATURES: list[tuple[Matcher, str]] = [
    *((_html(tag), "text/html; charset=utf-8") for tag in _HTML_TAGS),
    (_masked(b"<?xml", b"\xff" * 5, skip_ws=True), "text/xml; charset=utf-8"),
    (_exact(b"%PDF-"), "application/pdf"),
    (_exact(b"%!PS-Adobe-"), "application/postscript"),
    # Byte order marks
    (_masked(b"\xfe\xff\x00\x00", b"\xff\xff\x00\x00"), "text/plain; charset=utf-16be"),
    (_masked(b"\xff\xfe\x00\x00", b"\xff\xff\x00\x00"), "text/plain; charset=utf-16le"),
    (_masked(b"\xef\xbb\xbf\x00", b"\xff\xff\xff\x00"), TEXT_PLAIN_UTF8),
    # Images
    (_exact(b"\x00\x00\x01\x00"), "image/x-icon"),
    (_exact(b"\x00\x00\x02\x00"), "image/x-icon"),
    (_exact(b"BM"), "image/bmp"),
    (_exact(b"GIF87a"), "image/gif"),
    (_exact(b"GIF89a"), "image/gif"),
    (_masked(b"RIFF\x00\x00\x00\x00WEBPVP", _RIFF_MASK + b"\xff\xff"), "image/webp"),
    (_exact(b"\x89PNG\r\n\x1a\n"), "image/png"),
    (_exact(b"\xff\xd8\xff"), "image/jpeg"),
    # Audio and video
    (_masked(b"FORM\x00\x00\x00\x00AIFF", _RIFF_MASK), "audio/aiff"),
    (_exact(b".snd"), "audio/basic"),
    (_exact(b"ID3"), "audio/mpeg"),
    (_exact(b"OggS\x00"), "application/ogg"),
    (_exact(b"MThd\x00\x00\x00\x06"), "audio/midi"),
    (_masked(b"RIFF\x00\x00\x00\x00AVI ", _RIFF_MASK), "video/avi"),
    (_masked(b"RIFF\x00\x00\x00\x00WAVE", _RIFF_MASK), "audio/wave"),
    (_mp4, "video/mp4"),
    (_exact(b"\x1a\x45\xdf\xa3"), "video/webm"),
    # Fonts
    (
        _masked(b"\x00" * 34 + b"LP", b"\x00" * 34 + b"\xff\xff"),
        "application/vnd.ms-fontobject",
    ),
    (_exact(b"\x00\x01\x00\x00"), "font/ttf"),
    (_exact(b"OTTO"), "font/otf"),
    (_exact(b"ttcf"), "font/collection"),
    (_exact(b"wOFF"), "font/woff"),
    (_exact(b"wOF2"), "font/woff2"),
    # Archives
    (_exact(b"\x1f\x8b\x08"), "application/x-gzip"),
    (_exact(b"PK\x03\x04"), "application/zip"),
    (_exact(b"Rar!\x1a\x07\x00"), "application/x-rar-compressed"),
    (_exact(b"Rar!\x1a\x07\x01\x00"), "application/x-rar-compressed"),
    (_exact(b"\x00asm"), "application/wasm"),
]


def _is_text(data: bytes) -> bool:
    return not any(b in _BINARY_BYTES for b in data)


def detect_content_type(data: bytes) -> str:
    """
    Determine the MIME type of a payload from its leading bytes.

    Args:
        data: Payload; only the first ``SNIFF_LEN`` bytes are inspected.

    Returns:
        A MIME type string, never empty.
    """
    head = bytes(data[:SNIFF_LEN])

    match = _first_match(head)
    if match is not None:
        return match

    if _is_text(head):
        return TEXT_PLAIN_UTF8
    return DEFAULT_CONTENT_TYPE


def _first_match(head: bytes) -> Optional[str]:
    for matcher, content_type in SIGNATURES:
        if matcher(head):
            return content_type
    return None
