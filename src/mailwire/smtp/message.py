"""
Message envelope for mailwire.

This module holds the structured, pre-serialization form of an outgoing
email: addresses, subject, body and attachments. Serialization lives in
:mod:`mailwire.smtp.composer`.
"""

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from ..common.exceptions import AttachmentReadError, MissingFieldError

logger = logging.getLogger(__name__)

AttachmentReader = Callable[[str], tuple[str, bytes]]


def read_attachment(path: Union[str, Path]) -> tuple[str, bytes]:
    """
    Read a file for attachment.

    Args:
        path: Path to the file.

    Returns:
        Tuple of (base file name, file content).

    Raises:
        AttachmentReadError: If the file cannot be read.
    """
    path = Path(path)
    try:
        content = path.read_bytes()
    except OSError as e:
        raise AttachmentReadError(
            str(path),
            e.strerror or str(e),
            {"path": str(path), "error": str(e)},
        ) from e

    return path.name, content


class AttachmentStore:
    """
    Attachment content keyed by file name.

    Writes are last-write-wins. Iteration is always in lexicographic
    file name order so serialized output is reproducible.
    """

    def __init__(self) -> None:
        self._content: dict[str, bytes] = {}

    def put(self, filename: str, content: bytes) -> None:
        """Store content under a file name, replacing any earlier content."""
        if filename in self._content:
            logger.debug("Replacing attachment %s", filename)
        self._content[filename] = bytes(content)

    def get(self, filename: str) -> Optional[bytes]:
        return self._content.get(filename)

    def names(self) -> list[str]:
        return sorted(self._content)

    def items(self) -> list[tuple[str, bytes]]:
        return [(name, self._content[name]) for name in self.names()]

    def __contains__(self, filename: object) -> bool:
        return filename in self._content

    def __len__(self) -> int:
        return len(self._content)

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def __bool__(self) -> bool:
        return bool(self._content)

    def __repr__(self) -> str:
        sizes = ", ".join(f"{n}={len(c)}B" for n, c in self.items())
        return f"AttachmentStore({sizes})"


@dataclass
class Envelope:
    """
    An outgoing email message before serialization.

    ``subject`` and ``body`` are required (they may be empty strings).
    Addresses are opaque strings and are never validated. Attachments
    start empty and only grow through :meth:`attach` and
    :meth:`attach_file`.
    """

    subject: str
    body: str
    from_address: str = ""
    to: list[str] = field(default_factory=list)
    cc: list[str] = field(default_factory=list)
    bcc: list[str] = field(default_factory=list)
    attachments: AttachmentStore = field(
        default_factory=AttachmentStore, init=False
    )

    def __post_init__(self) -> None:
        if self.subject is None:
            raise MissingFieldError("subject")
        if self.body is None:
            raise MissingFieldError("body")

        self.to = list(self.to)
        self.cc = list(self.cc)
        self.bcc = list(self.bcc)

    @property
    def recipients(self) -> list[str]:
        """All envelope recipients: To, then Cc, then Bcc."""
        return self.to + self.cc + self.bcc

    def attach(self, filename: str, content: bytes) -> None:
        """
        Attach raw bytes under a file name.

        Args:
            filename: Name the attachment is presented under.
            content: Raw attachment content.
        """
        self.attachments.put(filename, content)
        logger.debug("Attached %s (%d bytes)", filename, len(content))

    def attach_file(
        self,
        path: Union[str, Path],
        reader: AttachmentReader = read_attachment,
    ) -> str:
        """
        Attach a file, stored under its base name.

        Args:
            path: Path of the file to attach.
            reader: Collaborator returning (base name, content) for a path.

        Returns:
            The name the content was stored under.

        Raises:
            AttachmentReadError: If the reader cannot supply the content.
        """
        try:
            filename, content = reader(str(path))
        except OSError as e:
            raise AttachmentReadError(
                str(path), e.strerror or str(e), {"path": str(path)}
            ) from e

        self.attach(filename, content)
        return filename
