"""
Authentication strategies for mailwire.

A send session is built around exactly one strategy:

- :class:`PlainAuth` carries credentials and authenticates with SASL
  PLAIN after connecting.
- :class:`DialerNoAuth` holds a connection opened up front, without
  authentication, that is later upgraded with STARTTLS.
"""

import base64
import logging
import ssl
from dataclasses import dataclass, field
from typing import Optional, Union

from ..common.exceptions import SessionStateError, SMTPAuthError
from .transport import DEFAULT_TIMEOUT, SMTPTransport, Transport, TransportFactory

logger = logging.getLogger(__name__)

PLAIN_MECHANISM = "PLAIN"

LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})


@dataclass(frozen=True)
class Credentials:
    """Login and server address for authenticated submission."""

    username: str
    password: str = field(repr=False)
    host: str
    port: str

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class DialerTarget:
    """Server address for dialer-based submission."""

    host: str
    port: str

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class PlainAuthToken:
    """
    SASL PLAIN token (RFC 4616) bound to the host it was issued for.
    """

    username: str
    password: str = field(repr=False)
    host: str
    identity: str = ""
    mechanism: str = PLAIN_MECHANISM

    def initial_response(self) -> str:
        """Return ``base64(identity NUL username NUL password)``."""
        raw = f"{self.identity}\0{self.username}\0{self.password}"
        return base64.b64encode(raw.encode("utf-8")).decode("ascii")

    def check_server(self, server_host: str, tls_active: bool) -> None:
        """
        Refuse to hand the token to the wrong server.

        Credentials only go over an encrypted link, except to a loopback
        host, and only to the host the token was issued for.

        Raises:
            SMTPAuthError: If the server is not an acceptable recipient.
        """
        if not tls_active and server_host not in LOOPBACK_HOSTS:
            logger.error("Refusing to authenticate over unencrypted link to %s",
                         server_host)
            raise SMTPAuthError(
                "Refusing to send credentials over an unencrypted connection",
                {"host": server_host},
            )
        if server_host != self.host:
            logger.error("Refusing to authenticate: token issued for %s, "
                         "server is %s", self.host, server_host)
            raise SMTPAuthError(
                "Wrong host name for credentials",
                {"expected": self.host, "server": server_host},
            )


class PlainAuth:
    """Credentials-based strategy. Construction does no I/O."""

    def __init__(self, credentials: Credentials) -> None:
        self.credentials = credentials

    def __repr__(self) -> str:
        return f"PlainAuth({self.credentials.username}@{self.credentials.address})"

    def token(self) -> PlainAuthToken:
        return PlainAuthToken(
            username=self.credentials.username,
            password=self.credentials.password,
            host=self.credentials.host,
        )


class DialerNoAuth:
    """
    Dialer-based strategy holding an already open, unauthenticated
    connection.

    Use :meth:`dial` to build one. The connection can be claimed by a
    single send session only.
    """

    def __init__(self, target: DialerTarget, transport: Transport) -> None:
        self.target = target
        self._transport: Optional[Transport] = transport

    def __repr__(self) -> str:
        state = "claimed" if self._transport is None else "open"
        return f"DialerNoAuth({self.target.address}, {state})"

    @classmethod
    def dial(
        cls,
        target: DialerTarget,
        timeout: float = DEFAULT_TIMEOUT,
        transport_factory: TransportFactory = SMTPTransport,
        tls_context: Optional[ssl.SSLContext] = None,
    ) -> "DialerNoAuth":
        """
        Open a connection to the target.

        Args:
            target: Server to connect to.
            timeout: Timeout in seconds for each network operation.
            transport_factory: Callable building the transport.
            tls_context: Default SSL context for the later STARTTLS.

        Raises:
            SMTPConnectionError: If the server cannot be reached.
            SendTimeoutError: If connecting times out.
        """
        transport = transport_factory(
            target.host,
            target.port,
            timeout=timeout,
            start_tls=False,
            tls_context=tls_context,
        )
        transport.dial()
        logger.info("Dialed %s", target.address)
        return cls(target, transport)

    @property
    def claimed(self) -> bool:
        return self._transport is None

    def claim(self) -> Transport:
        """Hand the open connection over; a second claim fails."""
        if self._transport is None:
            raise SessionStateError(
                f"Connection to {self.target.address} already used"
            )
        transport, self._transport = self._transport, None
        return transport


AuthStrategy = Union[PlainAuth, DialerNoAuth]


def new_plain_auth(username: str, password: str, host: str,
                   port: Union[str, int]) -> PlainAuth:
    return PlainAuth(Credentials(username, password, host, str(port)))


def new_dialer(
    host: str,
    port: Union[str, int],
    timeout: float = DEFAULT_TIMEOUT,
    transport_factory: TransportFactory = SMTPTransport,
) -> DialerNoAuth:
    """Dial ``host:port`` and return the strategy holding the connection."""
    return DialerNoAuth.dial(
        DialerTarget(host, str(port)),
        timeout=timeout,
        transport_factory=transport_factory,
    )
