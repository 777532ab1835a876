"""
SMTP transport for mailwire.

This module exposes the protocol primitives a send session orchestrates:
dial, SASL handshake, STARTTLS, MAIL, RCPT and a DATA writer. The
concrete :class:`SMTPTransport` drives ``aiosmtplib`` coroutines on a
private event loop so each primitive is a plain blocking call, and
translates library errors into the mailwire exception taxonomy.
"""

import asyncio
import logging
import ssl
from collections.abc import Coroutine
from typing import TYPE_CHECKING, Any, Optional, Protocol, Union

import aiosmtplib

from ..common.exceptions import (
    InvalidConfigError,
    SendTimeoutError,
    SessionStateError,
    SMTPAuthError,
    SMTPConnectionError,
    SMTPProtocolError,
    StartTLSError,
)

if TYPE_CHECKING:
    from .auth import PlainAuthToken

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

# Phases that run before the server holds any transaction state
RETRYABLE_PHASES = frozenset({"dial", "ehlo", "auth", "starttls"})

AUTH_SUCCESSFUL = 235


class DataWriter(Protocol):
    """Stream for the DATA payload; closing it ends the message."""

    def write(self, data: bytes) -> None: ...

    def close(self) -> None: ...


class Transport(Protocol):
    """Primitives of an SMTP client connection, in the order they are used."""

    host: str

    @property
    def tls_active(self) -> bool: ...

    def dial(self) -> None: ...

    def handshake(self, token: "PlainAuthToken") -> None: ...

    def starttls(self, tls_context: Optional[ssl.SSLContext] = None) -> None: ...

    def mail_from(self, address: str) -> None: ...

    def rcpt_to(self, address: str) -> None: ...

    def open_data_writer(self) -> DataWriter: ...

    def quit(self) -> None: ...

    def close(self) -> None: ...


class TransportFactory(Protocol):
    def __call__(
        self,
        host: str,
        port: Union[str, int],
        *,
        timeout: float = DEFAULT_TIMEOUT,
        start_tls: Optional[bool] = False,
        tls_context: Optional[ssl.SSLContext] = None,
    ) -> Transport: ...


def parse_port(port: Union[str, int]) -> int:
    """
    Convert a port given as text to an integer.

    Raises:
        InvalidConfigError: If the port is not a number in 1-65535.
    """
    try:
        value = int(port)
    except (TypeError, ValueError):
        raise InvalidConfigError("port", port, "must be an integer")

    if not 1 <= value <= 65535:
        raise InvalidConfigError("port", port, "must be between 1 and 65535")
    return value


class SMTPDataWriter:
    """
    Buffers the DATA payload and submits it when closed.

    aiosmtplib issues the DATA command together with the payload, so the
    command goes out on :meth:`close`.
    """

    def __init__(self, transport: "SMTPTransport") -> None:
        self._transport = transport
        self._buffer = bytearray()
        self._closed = False

    def write(self, data: bytes) -> None:
        if self._closed:
            raise SessionStateError("Write to a closed DATA writer")
        self._buffer.extend(data)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._transport._send_data(bytes(self._buffer))

    @property
    def size(self) -> int:
        return len(self._buffer)


class SMTPTransport:
    """
    Blocking SMTP client connection built on aiosmtplib.

    Each instance owns one connection and one event loop. It must not be
    used from inside a running event loop or from several threads at
    once.
    """

    def __init__(
        self,
        host: str,
        port: Union[str, int],
        *,
        timeout: float = DEFAULT_TIMEOUT,
        start_tls: Optional[bool] = False,
        tls_context: Optional[ssl.SSLContext] = None,
        local_hostname: Optional[str] = None,
    ) -> None:
        """
        Initialize the transport without connecting.

        Args:
            host: SMTP server hostname.
            port: SMTP server port.
            timeout: Timeout in seconds for each network operation.
            start_tls: Upgrade on connect: True forces, None upgrades when
                offered, False never upgrades (STARTTLS left to the caller).
            tls_context: SSL context for TLS upgrades.
            local_hostname: Name announced in EHLO.
        """
        self.host = host
        self.port = parse_port(port)
        self.timeout = timeout
        self.start_tls = start_tls
        self.tls_context = tls_context
        self.local_hostname = local_hostname

        self._runner: Optional[asyncio.Runner] = None
        self._smtp: Optional[aiosmtplib.SMTP] = None
        self._closed = False

    def __repr__(self) -> str:
        return f"SMTPTransport({self.host}:{self.port}, tls={self.tls_active})"

    @property
    def connected(self) -> bool:
        return self._smtp is not None and self._smtp.is_connected

    @property
    def _client(self) -> aiosmtplib.SMTP:
        if self._smtp is None or self._closed:
            raise SessionStateError("Transport not connected")
        return self._smtp

    @property
    def tls_active(self) -> bool:
        if not self.connected:
            return False
        return self._smtp.get_transport_info("sslcontext") is not None

    def _run(self, coro: Coroutine[Any, Any, Any], phase: str) -> Any:
        if self._runner is None or self._smtp is None:
            coro.close()
            raise SessionStateError(f"Transport not connected ({phase})")

        try:
            return self._runner.run(coro)
        except TimeoutError as e:
            logger.warning(
                "Timeout during %s with %s:%d", phase, self.host, self.port
            )
            raise SendTimeoutError(
                phase,
                retryable=phase in RETRYABLE_PHASES,
                details={"host": self.host, "port": self.port},
            ) from e

    def dial(self) -> None:
        """
        Open the connection and read the server greeting.

        Raises:
            SMTPConnectionError: If the server cannot be reached.
            SendTimeoutError: If connecting times out (retryable).
        """
        if self._smtp is not None:
            raise SessionStateError("Transport already dialed")

        logger.debug("Dialing %s:%d", self.host, self.port)

        kwargs: dict[str, Any] = {
            "hostname": self.host,
            "port": self.port,
            "timeout": self.timeout,
            "start_tls": self.start_tls,
            "local_hostname": self.local_hostname,
        }
        if self.tls_context is not None:
            kwargs["tls_context"] = self.tls_context

        self._runner = asyncio.Runner()
        self._smtp = aiosmtplib.SMTP(**kwargs)

        try:
            self._run(self._smtp.connect(), "dial")
        except SendTimeoutError:
            self.close()
            raise
        except (aiosmtplib.SMTPException, ssl.SSLError, OSError) as e:
            self.close()
            logger.error("Failed to connect to %s:%d: %s", self.host, self.port, e)
            raise SMTPConnectionError(
                f"Failed to connect to {self.host}:{self.port}",
                {"error": str(e)},
            ) from e

        logger.info(
            "Connected to %s:%d (TLS=%s)", self.host, self.port, self.tls_active
        )

    async def _authenticate(self, token: "PlainAuthToken") -> None:
        smtp = self._smtp
        if smtp.is_ehlo_or_helo_needed:
            await smtp.ehlo()

        if not smtp.supports_extension("auth"):
            raise SMTPAuthError(
                f"Server {self.host} does not support AUTH",
                {"host": self.host},
            )

        methods = [m.upper() for m in smtp.server_auth_methods]
        if token.mechanism not in methods:
            raise SMTPAuthError(
                f"Server {self.host} does not offer AUTH {token.mechanism}",
                {"offered": methods},
            )

        token.check_server(self.host, self.tls_active)

        response = await smtp.execute_command(
            b"AUTH", token.mechanism.encode("ascii"),
            token.initial_response().encode("ascii"),
        )
        if response.code != AUTH_SUCCESSFUL:
            raise SMTPAuthError(
                f"Authentication failed for {self.host}",
                {"code": response.code, "reply": response.message},
            )

    def handshake(self, token: "PlainAuthToken") -> None:
        """
        Authenticate with a SASL PLAIN token.

        Raises:
            SMTPAuthError: If the server refuses or cannot take the token.
        """
        logger.debug("Authenticating as %s with %s", token.username, self.host)
        try:
            self._run(self._authenticate(token), "auth")
        except (aiosmtplib.SMTPException, OSError) as e:
            raise SMTPAuthError(
                f"Authentication failed for {self.host}", {"error": str(e)}
            ) from e

    def starttls(self, tls_context: Optional[ssl.SSLContext] = None) -> None:
        """
        Upgrade the connection with STARTTLS.

        Raises:
            StartTLSError: If the server refuses or the TLS handshake fails.
        """
        logger.debug("Starting TLS with %s", self.host)

        kwargs: dict[str, Any] = {}
        context = tls_context or self.tls_context
        if context is not None:
            kwargs["tls_context"] = context

        try:
            self._run(self._client.starttls(**kwargs), "starttls")
        except SendTimeoutError:
            raise
        except (aiosmtplib.SMTPException, ssl.SSLError, OSError) as e:
            logger.error("STARTTLS with %s failed: %s", self.host, e)
            raise StartTLSError(
                f"STARTTLS failed with {self.host}", {"error": str(e)}
            ) from e

    def _command(self, command: str, coro: Coroutine[Any, Any, Any]) -> Any:
        try:
            return self._run(coro, command)
        except aiosmtplib.SMTPResponseException as e:
            raise SMTPProtocolError(command, e.code, e.message) from e
        except (aiosmtplib.SMTPServerDisconnected, OSError) as e:
            raise SMTPConnectionError(
                f"Connection to {self.host} lost during {command}",
                {"error": str(e)},
            ) from e

    def mail_from(self, address: str) -> None:
        logger.debug("MAIL FROM:<%s>", address)
        self._command("MAIL FROM", self._client.mail(address))

    def rcpt_to(self, address: str) -> None:
        logger.debug("RCPT TO:<%s>", address)
        try:
            address.encode("ascii")
        except UnicodeEncodeError:
            raise SMTPProtocolError(
                "RCPT TO", reply="address is not ASCII", details={"address": address}
            )
        self._command("RCPT TO", self._client.rcpt(address))

    def open_data_writer(self) -> SMTPDataWriter:
        if not self.connected:
            raise SessionStateError("Transport not connected (DATA)")
        return SMTPDataWriter(self)

    def _send_data(self, payload: bytes) -> None:
        logger.debug("DATA (%d bytes)", len(payload))
        self._command("DATA", self._client.data(payload))

    def quit(self) -> None:
        """Say QUIT and close; the message is already accepted at this point."""
        if not self.connected:
            self.close()
            return

        try:
            self._run(self._smtp.quit(), "quit")
        except (aiosmtplib.SMTPException, SendTimeoutError, OSError) as e:
            logger.warning("QUIT to %s failed: %s", self.host, e)
        finally:
            self.close()

    def close(self) -> None:
        """Release the connection and the event loop. Safe to call twice."""
        if self._closed:
            return
        self._closed = True

        if self._smtp is not None:
            self._smtp.close()
        if self._runner is not None:
            self._runner.close()
            self._runner = None

        logger.debug("Closed connection to %s:%d", self.host, self.port)
