"""
Pytest fixtures for mailwire tests.

Provides a recording fake transport, a self-signed certificate pair and
a local aiosmtpd server for end-to-end sends.
"""

import os
import socket
import sys
from dataclasses import dataclass, field
from typing import Optional

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from aiosmtpd.controller import Controller  # noqa: E402
from aiosmtpd.smtp import AuthResult, LoginPassword  # noqa: E402

from mailwire.common.config import get_settings  # noqa: E402
from mailwire.common.exceptions import SMTPProtocolError  # noqa: E402
from mailwire.crypto.tls import (  # noqa: E402
    TLSConfig,
    TLSContextFactory,
    write_certificate_pair,
)


class FakeDataWriter:
    def __init__(self, transport):
        self.transport = transport
        self.closed = False

    def write(self, data):
        self.transport.data += data

    def close(self):
        self.closed = True
        self.transport.calls.append(("DATA-END",))
        self.transport._maybe_fail("DATA-END")


class FakeTransport:
    """Records every primitive call; rejects and fails on demand."""

    def __init__(self, host, port, *, timeout=30.0, start_tls=False,
                 tls_context=None, reject=(), fail_on=None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.start_tls = start_tls
        self.tls_context = tls_context
        self.reject = set(reject)
        self.fail_on = dict(fail_on or {})

        self.calls = []
        self.close_count = 0
        self.tls_active = False
        self.data = b""

    @property
    def commands(self):
        return [call[0] for call in self.calls]

    def _maybe_fail(self, phase):
        exc = self.fail_on.get(phase)
        if exc is not None:
            raise exc

    def dial(self):
        self.calls.append(("DIAL",))
        self._maybe_fail("DIAL")

    def handshake(self, token):
        self.calls.append(("AUTH", token.username))
        self._maybe_fail("AUTH")

    def starttls(self, tls_context=None):
        self.calls.append(("STARTTLS", tls_context))
        self._maybe_fail("STARTTLS")
        self.tls_active = True

    def mail_from(self, address):
        self.calls.append(("MAIL", address))
        self._maybe_fail("MAIL")

    def rcpt_to(self, address):
        self.calls.append(("RCPT", address))
        if address in self.reject:
            raise SMTPProtocolError("RCPT TO", 550, "5.1.1 No such user")
        self._maybe_fail("RCPT")

    def open_data_writer(self):
        self.calls.append(("DATA",))
        self._maybe_fail("DATA")
        return FakeDataWriter(self)

    def quit(self):
        self.calls.append(("QUIT",))
        self.close()

    def close(self):
        self.close_count += 1


class FakeTransportFactory:
    """Transport factory handing out :class:`FakeTransport` instances."""

    def __init__(self, **options):
        self.options = options
        self.created = []

    def __call__(self, host, port, **kwargs):
        transport = FakeTransport(host, port, **kwargs, **self.options)
        self.created.append(transport)
        return transport

    @property
    def last(self):
        return self.created[-1]


@pytest.fixture
def transport_factory():
    """Build a fake transport factory; options go to every transport."""
    return FakeTransportFactory


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Isolate tests from MAILWIRE_* variables and the settings cache."""
    for name in list(os.environ):
        if name.startswith("MAILWIRE_") or name.startswith("LOG_"):
            monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(scope="session")
def cert_pair(tmp_path_factory):
    """Self-signed certificate for localhost / 127.0.0.1."""
    return write_certificate_pair(
        tmp_path_factory.mktemp("certs"), "localhost", ["127.0.0.1"]
    )


@pytest.fixture(scope="session")
def server_tls_context(cert_pair):
    cert_file, key_file = cert_pair
    config = TLSConfig(cert_file=str(cert_file), key_file=str(key_file))
    return TLSContextFactory(config).create_server_context()


@pytest.fixture
def client_tls_context():
    """Client context accepting the self-signed test certificate."""
    return TLSContextFactory(TLSConfig(verify=False)).create_client_context()


def free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def unused_port():
    return free_port()


@dataclass
class ReceivedMessage:
    mail_from: str
    rcpt_tos: list
    content: bytes


@dataclass
class RecordingHandler:
    """aiosmtpd handler that stores messages and refuses chosen recipients."""

    reject: set = field(default_factory=set)
    messages: list = field(default_factory=list)

    async def handle_RCPT(self, server, session, envelope, address, rcpt_options):
        if address in self.reject:
            return "550 5.1.1 No such user"
        envelope.rcpt_tos.append(address)
        return "250 OK"

    async def handle_DATA(self, server, session, envelope):
        self.messages.append(
            ReceivedMessage(envelope.mail_from, list(envelope.rcpt_tos),
                            envelope.content)
        )
        return "250 Message accepted for delivery"


class Authenticator:
    def __init__(self, username, password):
        self.username = username.encode()
        self.password = password.encode()
        self.attempts = []

    def __call__(self, server, session, envelope, mechanism, auth_data):
        self.attempts.append(mechanism)
        ok = (
            isinstance(auth_data, LoginPassword)
            and auth_data.login == self.username
            and auth_data.password == self.password
        )
        return AuthResult(success=ok, handled=False)


@dataclass
class LocalServer:
    host: str
    port: int
    handler: RecordingHandler
    authenticator: Optional[Authenticator]


@pytest.fixture
def smtp_server_factory(server_tls_context):
    """
    Start local SMTP servers.

    Call with ``starttls=True`` to offer STARTTLS, ``auth=(user, pass)``
    to offer AUTH PLAIN and ``reject={...}`` to refuse recipients.
    """
    controllers = []

    def start(starttls=False, auth=None, reject=()):
        handler = RecordingHandler(reject=set(reject))
        authenticator = Authenticator(*auth) if auth else None

        kwargs = {}
        if starttls:
            kwargs["tls_context"] = server_tls_context
        if authenticator is not None:
            kwargs["authenticator"] = authenticator
            kwargs["auth_require_tls"] = False

        port = free_port()
        controller = Controller(handler, hostname="127.0.0.1", port=port, **kwargs)
        controller.start()
        controllers.append(controller)
        return LocalServer("127.0.0.1", port, handler, authenticator)

    yield start

    for controller in controllers:
        controller.stop()
