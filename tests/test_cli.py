"""Tests for the mailwire command line."""

import logging

import pytest

from mailwire import __version__, cli
from mailwire.smtp.sender import SendResult


@pytest.fixture(autouse=True)
def restore_logging():
    """setup_logging() replaces root handlers; put pytest's back."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def test_prints_encoded_message(capsysbinary):
    code = cli.main([
        "--subject", "Test", "--body", "Body message.", "--to", "a@b.com",
    ])

    out = capsysbinary.readouterr().out
    assert code == 0
    assert b"Subject: Test\n" in out
    assert b"To: a@b.com\n" in out
    assert b"boundary=" not in out


def test_repeatable_recipients_and_attachments(capsysbinary, tmp_path):
    attachment = tmp_path / "test.txt"
    attachment.write_bytes(b"hello")

    code = cli.main([
        "--subject", "s", "--body", "b",
        "--to", "a@x", "--to", "b@x", "--bcc", "c@x",
        "--attach", str(attachment), "--boundary", "XYZ",
    ])

    out = capsysbinary.readouterr().out
    assert code == 0
    assert b"To: a@x;b@x\n" in out
    assert b"Bcc: c@x\n" in out
    assert b'boundary="XYZ"' in out
    assert b"aGVsbG8=" in out


def test_missing_attachment_reports_error(capsys, tmp_path):
    code = cli.main([
        "--subject", "s", "--body", "b", "--attach", str(tmp_path / "none"),
    ])

    captured = capsys.readouterr()
    assert code == 1
    assert "Failed to read attachment" in captured.err
    assert "Traceback" not in captured.err


def test_subject_required(capsys):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["--body", "b"])
    assert exc_info.value.code == 2


def test_version(capsys):
    with pytest.raises(SystemExit):
        cli.main(["--version"])
    assert __version__ in capsys.readouterr().out


@pytest.mark.parametrize(
    "env, flags, expected",
    [
        (None, [], False),
        ("true", [], True),
        ("false", ["--debug"], True),
    ],
)
def test_debug_from_flag_or_environment(monkeypatch, capsysbinary, env, flags,
                                        expected):
    levels = []
    monkeypatch.setattr(
        cli, "setup_logging", lambda debug, settings: levels.append(debug)
    )
    if env is not None:
        monkeypatch.setenv("MAILWIRE_DEBUG", env)

    code = cli.main(["--subject", "s", "--body", "b", *flags])

    assert code == 0
    assert levels == [expected]


def test_send_uses_selected_mode(monkeypatch, capsys):
    calls = []

    def fake_send(envelope, mode, settings, boundary):
        calls.append((envelope.to, mode, boundary))
        return SendResult(sender="me@x", accepted=list(envelope.to), size=10)

    monkeypatch.setattr(cli, "send", fake_send)
    code = cli.main([
        "--subject", "s", "--body", "b", "--from", "me@x", "--to", "a@x",
        "--send", "tls",
    ])

    assert code == 0
    assert calls == [(["a@x"], "tls", "frontier")]
    assert "Sent to 1 recipient(s)" in capsys.readouterr().out


def test_plain_send_without_credentials(capsys):
    code = cli.main([
        "--subject", "s", "--body", "b", "--to", "a@x", "--send", "plain",
    ])

    assert code == 1
    assert "MAILWIRE_SMTP_USERNAME" in capsys.readouterr().err


def test_send_against_local_server(monkeypatch, smtp_server_factory, capsys):
    server = smtp_server_factory(starttls=True)
    monkeypatch.setenv("MAILWIRE_SMTP_HOST", server.host)
    monkeypatch.setenv("MAILWIRE_SMTP_PORT", str(server.port))
    monkeypatch.setenv("MAILWIRE_SMTP_VERIFY_CERTS", "false")
    monkeypatch.setenv("MAILWIRE_SMTP_TIMEOUT", "5")

    code = cli.main([
        "--subject", "cli", "--body", "b", "--from", "me@example.com",
        "--to", "a@example.com", "--send", "tls",
    ])

    assert code == 0
    [message] = server.handler.messages
    assert message.rcpt_tos == ["a@example.com"]
