"""
SMTP send session for mailwire.

This module drives one message through an SMTP transport:

- Plain path (:meth:`SendSession.send_mail`): dial, SASL PLAIN, MAIL,
  RCPT for every To address, DATA. The first failure aborts the send.
- Dialer path (:meth:`SendSession.send_mail_tls`): STARTTLS on the
  connection opened by :class:`~mailwire.smtp.auth.DialerNoAuth`, MAIL,
  RCPT for To, Cc and Bcc with rejections collected, DATA.

A session sends one message. The connection is released exactly once on
every exit path.
"""

import logging
import ssl
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..common.exceptions import (
    MissingFieldError,
    PartialRecipientError,
    RecipientsRefusedError,
    SendCancelledError,
    SessionStateError,
    SMTPProtocolError,
)
from .auth import AuthStrategy, DialerNoAuth, PlainAuth
from .composer import DEFAULT_BOUNDARY, MessageEncoder
from .message import Envelope
from .transport import DEFAULT_TIMEOUT, SMTPTransport, Transport, TransportFactory

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Lifecycle of a send session."""

    IDLE = "idle"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    TLS_UPGRADED = "tls_upgraded"
    SENDING = "sending"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES = frozenset({SessionState.DONE, SessionState.FAILED})


@dataclass
class SendResult:
    """Outcome of a completed send."""

    sender: str
    accepted: list[str]
    size: int
    tls: bool = False
    rejected: dict[str, tuple[Optional[int], str]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "sender": self.sender,
            "accepted": list(self.accepted),
            "rejected": {k: list(v) for k, v in self.rejected.items()},
            "size": self.size,
            "tls": self.tls,
        }


class SendSession:
    """
    Orchestrates the SMTP command sequence for a single message.

    Args:
        strategy: :class:`PlainAuth` or :class:`DialerNoAuth`.
        timeout: Timeout in seconds for each network operation.
        cancel_event: Checked between protocol steps; when set the send
            stops with :class:`SendCancelledError`.
        transport_factory: Builds the transport on the plain path.
        boundary: Multipart boundary token for the encoder.
        tls_context: SSL context for opportunistic STARTTLS on the
            plain path.
    """

    def __init__(
        self,
        strategy: AuthStrategy,
        timeout: float = DEFAULT_TIMEOUT,
        cancel_event: Optional[threading.Event] = None,
        transport_factory: TransportFactory = SMTPTransport,
        boundary: str = DEFAULT_BOUNDARY,
        tls_context: Optional[ssl.SSLContext] = None,
    ) -> None:
        if not isinstance(strategy, (PlainAuth, DialerNoAuth)):
            raise TypeError(f"Unsupported auth strategy: {type(strategy).__name__}")

        self.strategy = strategy
        self.timeout = timeout
        self.cancel_event = cancel_event
        self.transport_factory = transport_factory
        self.boundary = boundary
        self.tls_context = tls_context

        self.state = SessionState.IDLE
        self._transport: Optional[Transport] = None
        self._released = False

    def __repr__(self) -> str:
        return f"SendSession({self.strategy!r}, state={self.state.value})"

    def __enter__(self) -> "SendSession":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def resolve_sender(self, envelope: Envelope) -> str:
        """
        Pick the MAIL FROM address.

        ``envelope.from_address`` wins when set. Otherwise the plain path
        uses the login name and the dialer path fails.

        Raises:
            MissingFieldError: If the dialer path has no sender address.
        """
        if envelope.from_address:
            return envelope.from_address
        if isinstance(self.strategy, PlainAuth):
            return self.strategy.credentials.username
        raise MissingFieldError("from_address")

    def _begin(self, strategy_type: type, method: str) -> None:
        if self.state in TERMINAL_STATES:
            raise SessionStateError(
                f"Session already {self.state.value}; use a new session per message"
            )
        if self.state != SessionState.IDLE:
            raise SessionStateError(f"Session busy ({self.state.value})")
        if not isinstance(self.strategy, strategy_type):
            raise SessionStateError(
                f"{method}() requires {strategy_type.__name__}, "
                f"session holds {type(self.strategy).__name__}"
            )

    def _checkpoint(self, phase: str) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            logger.info("Send cancelled before %s", phase)
            raise SendCancelledError(phase)

    def _submit_recipients(
        self, recipients: list[str], collect: bool
    ) -> tuple[list[str], dict[str, tuple[Optional[int], str]]]:
        """
        Issue RCPT TO for each recipient.

        With ``collect`` a rejection is recorded and the next recipient is
        tried; without it the rejection propagates.
        """
        accepted: list[str] = []
        rejected: dict[str, tuple[Optional[int], str]] = {}

        for address in recipients:
            self._checkpoint("RCPT TO")
            try:
                self._transport.rcpt_to(address)
            except SMTPProtocolError as e:
                if not collect:
                    raise
                logger.warning("Recipient %s rejected: %s", address, e.message)
                rejected[address] = (e.code, e.reply or "")
            else:
                accepted.append(address)

        return accepted, rejected

    def _write_data(self, payload: bytes) -> None:
        self._checkpoint("DATA")
        writer = self._transport.open_data_writer()
        writer.write(payload)
        writer.close()

    def _release(self, polite: bool) -> None:
        if self._released or self._transport is None:
            return
        self._released = True

        if polite:
            self._transport.quit()
        else:
            self._transport.close()

    def close(self) -> None:
        """Release any connection this session still holds."""
        if self._transport is not None:
            self._release(polite=False)
        elif isinstance(self.strategy, DialerNoAuth) and not self.strategy.claimed:
            self._transport = self.strategy.claim()
            self._release(polite=False)

    def send_mail(self, envelope: Envelope) -> SendResult:
        """
        Send through an authenticated connection.

        Raises:
            SMTPConnectionError: If dialing, STARTTLS or authentication fails.
            SMTPProtocolError: If the server rejects MAIL, RCPT or DATA.
            SendTimeoutError: If a network step times out.
            SendCancelledError: If the cancel event is set.
            SessionStateError: If the session cannot send.
        """
        self._begin(PlainAuth, "send_mail")
        credentials = self.strategy.credentials
        sender = self.resolve_sender(envelope)
        payload = MessageEncoder(envelope, boundary=self.boundary).serialize()

        delivered = False
        try:
            self._checkpoint("dial")
            self._transport = self.transport_factory(
                credentials.host,
                credentials.port,
                timeout=self.timeout,
                start_tls=None,
                tls_context=self.tls_context,
            )
            self._transport.dial()
            self.state = SessionState.CONNECTED

            self._checkpoint("auth")
            self._transport.handshake(self.strategy.token())
            self.state = SessionState.AUTHENTICATED

            self._checkpoint("MAIL FROM")
            self._transport.mail_from(sender)
            self.state = SessionState.SENDING

            accepted, _ = self._submit_recipients(envelope.to, collect=False)
            self._write_data(payload)
            delivered = True
        except BaseException as e:
            self.state = SessionState.FAILED
            logger.error("Send to %s failed: %s", credentials.address, e)
            raise
        finally:
            self._release(polite=delivered)

        self.state = SessionState.DONE
        logger.info(
            "Sent %r to %d recipient(s) via %s",
            envelope.subject, len(accepted), credentials.address,
        )
        return SendResult(sender=sender, accepted=accepted, size=len(payload))

    def send_mail_tls(
        self,
        envelope: Envelope,
        tls_context: Optional[ssl.SSLContext] = None,
    ) -> SendResult:
        """
        Upgrade the dialed connection with STARTTLS and send.

        Every recipient in To, Cc and Bcc is tried. If all are refused no
        DATA is sent; if only some are, the message is delivered to the
        rest and the rejections are raised afterwards.

        Args:
            envelope: The message to send.
            tls_context: SSL context for the upgrade.

        Raises:
            StartTLSError: If the upgrade fails.
            MissingFieldError: If the envelope has no sender address.
            RecipientsRefusedError: If every recipient was rejected.
            PartialRecipientError: If some recipients were rejected.
            SMTPProtocolError: If the server rejects MAIL or DATA.
            SendTimeoutError: If a network step times out.
            SendCancelledError: If the cancel event is set.
            SessionStateError: If the session cannot send.
        """
        self._begin(DialerNoAuth, "send_mail_tls")
        target = self.strategy.target
        self._transport = self.strategy.claim()
        self.state = SessionState.CONNECTED

        delivered = False
        try:
            sender = self.resolve_sender(envelope)
            payload = MessageEncoder(envelope, boundary=self.boundary).serialize()

            self._checkpoint("starttls")
            self._transport.starttls(tls_context or self.tls_context)
            self.state = SessionState.TLS_UPGRADED

            self._checkpoint("MAIL FROM")
            self._transport.mail_from(sender)
            self.state = SessionState.SENDING

            recipients = envelope.recipients
            accepted, rejected = self._submit_recipients(recipients, collect=True)
            if recipients and not accepted:
                raise RecipientsRefusedError(rejected)

            self._write_data(payload)
            delivered = True

            if rejected:
                result = SendResult(
                    sender=sender, accepted=accepted, size=len(payload),
                    tls=True, rejected=rejected,
                )
                raise PartialRecipientError(rejected, accepted, result=result)
        except BaseException as e:
            self.state = SessionState.FAILED
            logger.error("TLS send to %s failed: %s", target.address, e)
            raise
        finally:
            self._release(polite=delivered)

        self.state = SessionState.DONE
        logger.info(
            "Sent %r to %d recipient(s) via %s (STARTTLS)",
            envelope.subject, len(accepted), target.address,
        )
        return SendResult(
            sender=sender, accepted=accepted, size=len(payload), tls=True
        )

    def send(self, envelope: Envelope,
             tls_context: Optional[ssl.SSLContext] = None) -> SendResult:
        """Send with the path matching the session's strategy."""
        if isinstance(self.strategy, DialerNoAuth):
            return self.send_mail_tls(envelope, tls_context)
        return self.send_mail(envelope)


def send_mail(strategy: PlainAuth, envelope: Envelope, **kwargs: Any) -> SendResult:
    """Send one message over a fresh authenticated session."""
    return SendSession(strategy, **kwargs).send_mail(envelope)


def send_mail_tls(
    strategy: DialerNoAuth,
    envelope: Envelope,
    tls_context: Optional[ssl.SSLContext] = None,
    **kwargs: Any,
) -> SendResult:
    """Send one message over the strategy's dialed connection."""
    return SendSession(strategy, **kwargs).send_mail_tls(envelope, tls_context)
