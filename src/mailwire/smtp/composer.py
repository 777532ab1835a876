"""
Message encoder for mailwire.

This module turns an :class:`~mailwire.smtp.message.Envelope` into the
exact byte sequence sent as the SMTP DATA payload: a fixed-order header
block followed by either a single text/plain body or a multipart/mixed
body carrying base64 attachments.
"""

import base64
import logging
from collections.abc import Callable
from typing import Optional

from .message import Envelope
from .sniff import detect_content_type

logger = logging.getLogger(__name__)

DEFAULT_BOUNDARY = "frontier"
ADDRESS_SEPARATOR = ";"
MULTIPART_PREAMBLE = "This is a multi-part message in MIME format."

ContentSniffer = Callable[[bytes], str]


class MessageEncoder:
    """
    Serializes an envelope to RFC-822 style MIME bytes.

    The encoder never mutates the envelope; every call to
    :meth:`serialize` reads its current state. Attachments are emitted in
    file name order, so equal envelopes always serialize to equal bytes.
    """

    def __init__(
        self,
        envelope: Envelope,
        boundary: str = DEFAULT_BOUNDARY,
        sniffer: Optional[ContentSniffer] = None,
    ) -> None:
        """
        Initialize the encoder.

        Args:
            envelope: The message to serialize.
            boundary: Multipart boundary token.
            sniffer: Content-type detector for attachment bytes.
        """
        if not boundary:
            raise ValueError("Boundary token must not be empty")

        self.envelope = envelope
        self.boundary = boundary
        self.sniffer = sniffer or detect_content_type

    def _header(self, name: str, value: str) -> str:
        return f"{name}: {value}\n"

    def _join(self, addresses: list[str]) -> str:
        return ADDRESS_SEPARATOR.join(addresses)

    def _render_headers(self) -> str:
        env = self.envelope
        return "".join([
            self._header("From", env.from_address),
            self._header("To", self._join(env.to)),
            self._header("Cc", self._join(env.cc)),
            self._header("Bcc", self._join(env.bcc)),
            self._header("Subject", env.subject),
            # Legacy: the body is also repeated as a header line
            self._header("Body", env.body),
            self._header("MIME-Version", "1.0"),
        ])

    def _render_text_part(self) -> str:
        return (
            self._header("Content-Type", "text/plain; charset=utf-8")
            + self._header("Content-Transfer-Encoding", "7bit")
            + self.envelope.body
            + "\n"
        )

    def _render_attachment_part(self, filename: str, content: bytes) -> str:
        content_type = self.sniffer(content)
        encoded = base64.b64encode(content).decode("ascii")
        return (
            self._header("Content-Type", f'{content_type}; name="{filename}"')
            + self._header("Content-Transfer-Encoding", "base64")
            + self._header(
                "Content-Disposition", f'attachment; filename="{filename}"'
            )
            + encoded
            + "\n"
        )

    def _render_multipart(self) -> str:
        delimiter = f"--{self.boundary}\n"
        parts = [self._render_text_part()]
        parts.extend(
            self._render_attachment_part(name, content)
            for name, content in self.envelope.attachments.items()
        )

        return (
            self._header(
                "Content-Type", f'multipart/mixed; boundary="{self.boundary}"'
            )
            + MULTIPART_PREAMBLE
            + "\n"
            + delimiter
            + delimiter.join(parts)
            + f"--{self.boundary}--\n"
        )

    def has_attachments(self) -> bool:
        return len(self.envelope.attachments) > 0

    def serialize(self) -> bytes:
        """
        Encode the envelope.

        Returns:
            UTF-8 bytes suitable as the literal SMTP DATA payload.
        """
        if self.has_attachments():
            body = self._render_multipart()
        else:
            body = self._render_text_part()

        payload = (self._render_headers() + body).encode("utf-8")

        logger.debug(
            "Encoded message: subject=%r, attachments=%d, size=%d bytes",
            self.envelope.subject,
            len(self.envelope.attachments),
            len(payload),
        )
        return payload

    def to_bytes(self) -> bytes:
        return self.serialize()


def encode_message(envelope: Envelope, boundary: str = DEFAULT_BOUNDARY) -> bytes:
    """
    Encode an envelope with the default sniffer.

    Args:
        envelope: The message to serialize.
        boundary: Multipart boundary token.

    Returns:
        The encoded message bytes.
    """
    return MessageEncoder(envelope, boundary=boundary).serialize()
