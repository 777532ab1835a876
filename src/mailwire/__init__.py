"""mailwire - MIME message encoder and SMTP sender."""

from mailwire.__version__ import (
    __description__,
    __license__,
    __title__,
    __version__,
    __version_info__,
    get_version,
)
from mailwire.smtp import (
    Credentials,
    DialerNoAuth,
    DialerTarget,
    Envelope,
    MessageEncoder,
    PlainAuth,
    SendSession,
    encode_message,
)

__all__ = [
    "__version__",
    "__version_info__",
    "__title__",
    "__description__",
    "__license__",
    "get_version",
    "Credentials",
    "DialerNoAuth",
    "DialerTarget",
    "Envelope",
    "MessageEncoder",
    "PlainAuth",
    "SendSession",
    "encode_message",
]
