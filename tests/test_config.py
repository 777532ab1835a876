"""Tests for settings loading."""

import pytest
from pydantic import ValidationError

from mailwire.common.config import (
    LoggingSettings,
    Settings,
    SMTPSettings,
    get_settings,
    reload_settings,
)
from mailwire.common.exceptions import InvalidConfigError, MissingConfigError
from mailwire.smtp.auth import Credentials, DialerTarget


def test_defaults():
    settings = Settings()
    assert settings.smtp.host == "localhost"
    assert settings.smtp.port == 587
    assert settings.smtp.timeout == 30.0
    assert settings.smtp.boundary == "frontier"
    assert settings.logging.level == "INFO"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("MAILWIRE_SMTP_HOST", "smtp.example.com")
    monkeypatch.setenv("MAILWIRE_SMTP_PORT", "2525")
    monkeypatch.setenv("MAILWIRE_SMTP_VERIFY_CERTS", "false")

    smtp = SMTPSettings()
    assert smtp.host == "smtp.example.com"
    assert smtp.port == 2525
    assert smtp.verify_certs is False


def test_debug_from_environment(monkeypatch):
    assert Settings().debug is False
    monkeypatch.setenv("MAILWIRE_DEBUG", "true")
    assert Settings().debug is True


def test_invalid_port(monkeypatch):
    monkeypatch.setenv("MAILWIRE_SMTP_PORT", "70000")
    with pytest.raises(ValidationError):
        SMTPSettings()


def test_invalid_boundary():
    with pytest.raises(ValidationError):
        SMTPSettings(boundary="has space")


def test_log_level_normalized():
    assert LoggingSettings(level="debug").level == "DEBUG"
    with pytest.raises(ValidationError):
        LoggingSettings(level="loud")


def test_from_toml(tmp_path):
    path = tmp_path / "mailwire.toml"
    path.write_text(
        '[app]\ndebug = true\n\n'
        '[smtp]\nhost = "mx.example.com"\nport = 25\nusername = "bot"\n'
        'password = "pw"\n\n'
        '[logging]\nlevel = "warning"\n'
    )

    settings = Settings.from_toml(path)
    assert settings.debug is True
    assert settings.smtp.host == "mx.example.com"
    assert settings.smtp.port == 25
    assert settings.logging.level == "WARNING"
    settings.validate_required()


def test_from_toml_missing_file(tmp_path):
    with pytest.raises(MissingConfigError):
        Settings.from_toml(tmp_path / "absent.toml")


def test_from_toml_invalid(tmp_path):
    path = tmp_path / "broken.toml"
    path.write_text("[smtp\nhost=")
    with pytest.raises(InvalidConfigError):
        Settings.from_toml(path)


def test_validate_required():
    settings = Settings(smtp=SMTPSettings(host="mx.example.com"))
    settings.validate_required(authenticated=False)

    with pytest.raises(MissingConfigError) as exc_info:
        settings.validate_required()
    assert exc_info.value.config_key == "MAILWIRE_SMTP_USERNAME"


def test_credentials_and_target():
    smtp = SMTPSettings(host="mx.example.com", port=465, username="u", password="p")
    assert smtp.credentials() == Credentials("u", "p", "mx.example.com", "465")
    assert smtp.dialer_target() == DialerTarget("mx.example.com", "465")

    with pytest.raises(MissingConfigError):
        SMTPSettings(host="h").credentials()


def test_get_settings_reads_config_file(monkeypatch, tmp_path):
    path = tmp_path / "mailwire.toml"
    path.write_text('[smtp]\nhost = "from-file.example.com"\n')
    monkeypatch.setenv("MAILWIRE_CONFIG_FILE", str(path))

    assert get_settings().smtp.host == "from-file.example.com"
    assert get_settings() is get_settings()

    path.write_text('[smtp]\nhost = "changed.example.com"\n')
    assert reload_settings().smtp.host == "changed.example.com"
