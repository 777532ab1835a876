"""
SMTP message composition and delivery for mailwire.
"""

from .auth import (
    AuthStrategy,
    Credentials,
    DialerNoAuth,
    DialerTarget,
    PlainAuth,
    PlainAuthToken,
    new_dialer,
    new_plain_auth,
)
from .composer import DEFAULT_BOUNDARY, MessageEncoder, encode_message
from .message import AttachmentStore, Envelope, read_attachment
from .sender import SendResult, SendSession, SessionState, send_mail, send_mail_tls
from .sniff import detect_content_type
from .transport import SMTPTransport, Transport

__all__ = [
    "AttachmentStore",
    "AuthStrategy",
    "Credentials",
    "DEFAULT_BOUNDARY",
    "DialerNoAuth",
    "DialerTarget",
    "Envelope",
    "MessageEncoder",
    "PlainAuth",
    "PlainAuthToken",
    "SMTPTransport",
    "SendResult",
    "SendSession",
    "SessionState",
    "Transport",
    "detect_content_type",
    "encode_message",
    "new_dialer",
    "new_plain_auth",
    "read_attachment",
    "send_mail",
    "send_mail_tls",
]
