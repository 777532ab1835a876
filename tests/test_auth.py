"""Tests for authentication strategies."""

import base64

import pytest

from mailwire.common.exceptions import (
    SendTimeoutError,
    SessionStateError,
    SMTPAuthError,
    SMTPConnectionError,
)
from mailwire.smtp.auth import (
    Credentials,
    DialerNoAuth,
    DialerTarget,
    PlainAuth,
    PlainAuthToken,
    new_dialer,
    new_plain_auth,
)


class TestPlainAuth:
    def test_construction_is_pure(self):
        auth = PlainAuth(Credentials("user", "secret", "smtp.example.com", "587"))
        assert auth.credentials.address == "smtp.example.com:587"

    def test_token_initial_response(self):
        token = PlainAuth(
            Credentials("user", "secret", "smtp.example.com", "587")
        ).token()

        assert token.mechanism == "PLAIN"
        assert token.host == "smtp.example.com"
        assert base64.b64decode(token.initial_response()) == b"\0user\0secret"

    def test_password_not_in_repr(self):
        credentials = Credentials("user", "secret", "h", "25")
        assert "secret" not in repr(credentials)
        assert "secret" not in repr(PlainAuth(credentials).token())

    def test_new_plain_auth(self):
        auth = new_plain_auth("user", "pw", "smtp.example.com", 465)
        assert auth.credentials == Credentials("user", "pw", "smtp.example.com", "465")


class TestCheckServer:
    def test_tls_and_matching_host(self):
        token = PlainAuthToken("user", "pw", "smtp.example.com")
        token.check_server("smtp.example.com", tls_active=True)

    def test_loopback_without_tls(self):
        for host in ("localhost", "127.0.0.1", "::1"):
            PlainAuthToken("user", "pw", host).check_server(host, tls_active=False)

    def test_refuses_unencrypted_remote(self):
        token = PlainAuthToken("user", "pw", "smtp.example.com")
        with pytest.raises(SMTPAuthError, match="unencrypted"):
            token.check_server("smtp.example.com", tls_active=False)

    def test_refuses_wrong_host(self):
        token = PlainAuthToken("user", "pw", "smtp.example.com")
        with pytest.raises(SMTPAuthError, match="Wrong host"):
            token.check_server("mx.other.org", tls_active=True)


class TestDialerNoAuth:
    def test_dial_connects_immediately(self, transport_factory):
        factory = transport_factory()
        dialer = DialerNoAuth.dial(
            DialerTarget("mail.example.com", "25"),
            timeout=5.0,
            transport_factory=factory,
        )

        transport = factory.last
        assert transport.commands == ["DIAL"]
        assert transport.start_tls is False
        assert transport.timeout == 5.0
        assert not dialer.claimed

    def test_dial_failure_surfaces_at_construction(self, transport_factory):
        factory = transport_factory(
            fail_on={"DIAL": SMTPConnectionError("Connection refused")}
        )
        with pytest.raises(SMTPConnectionError):
            DialerNoAuth.dial(DialerTarget("h", "25"), transport_factory=factory)

    def test_dial_timeout_is_retryable(self, transport_factory):
        factory = transport_factory(
            fail_on={"DIAL": SendTimeoutError("dial", retryable=True)}
        )
        with pytest.raises(SendTimeoutError) as exc_info:
            new_dialer("h", 25, transport_factory=factory)
        assert exc_info.value.retryable is True

    def test_claim_once(self, transport_factory):
        factory = transport_factory()
        dialer = new_dialer("h", 25, transport_factory=factory)

        assert dialer.claim() is factory.last
        assert dialer.claimed
        with pytest.raises(SessionStateError):
            dialer.claim()
