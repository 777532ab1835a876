"""
Configuration management for mailwire.

This module provides configuration loading from environment variables
and TOML files, with type-safe settings classes.
"""

import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import InvalidConfigError, MissingConfigError

if TYPE_CHECKING:
    from ..smtp.auth import Credentials, DialerTarget


class SMTPSettings(BaseSettings):
    """Outgoing SMTP server settings."""

    model_config = SettingsConfigDict(
        env_prefix="MAILWIRE_SMTP_",
        extra="ignore",
    )

    host: str = Field(default="localhost", description="SMTP server host")
    port: int = Field(default=587, ge=1, le=65535, description="SMTP server port")
    username: Optional[str] = Field(None, description="Login for SASL PLAIN")
    password: Optional[str] = Field(
        None, repr=False, description="Password for SASL PLAIN"
    )
    timeout: float = Field(
        default=30.0, gt=0, description="Timeout in seconds per network step"
    )
    verify_certs: bool = Field(
        default=True, description="Verify server certificates on STARTTLS"
    )
    ca_file: Optional[str] = Field(None, description="Extra CA bundle path")
    boundary: str = Field(default="frontier", description="Multipart boundary")

    @field_validator("boundary")
    @classmethod
    def validate_boundary(cls, v: str) -> str:
        """Validate the boundary token."""
        if not v or any(c.isspace() or c == '"' for c in v):
            raise ValueError("Boundary must be non-empty, without spaces or quotes")
        return v

    def credentials(self) -> "Credentials":
        """
        Build PLAIN credentials from these settings.

        Raises:
            MissingConfigError: If username or password is not set.
        """
        from ..smtp.auth import Credentials

        if not self.username:
            raise MissingConfigError("MAILWIRE_SMTP_USERNAME")
        if self.password is None:
            raise MissingConfigError("MAILWIRE_SMTP_PASSWORD")
        return Credentials(self.username, self.password, self.host, str(self.port))

    def dialer_target(self) -> "DialerTarget":
        from ..smtp.auth import DialerTarget

        return DialerTarget(self.host, str(self.port))


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        extra="ignore",
    )

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format",
    )
    file: Optional[str] = Field(None, description="Log file path")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(valid_levels)}")
        return v_upper


class Settings(BaseSettings):
    """Main settings aggregating all configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MAILWIRE_",
        extra="ignore",
    )

    debug: bool = Field(default=False, description="Debug mode")

    smtp: SMTPSettings = Field(default_factory=SMTPSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def from_toml(cls, path: str | Path) -> "Settings":
        """
        Load settings from a TOML configuration file.

        Args:
            path: Path to the TOML configuration file.

        Returns:
            Settings instance with loaded configuration.

        Raises:
            MissingConfigError: If the file does not exist.
            InvalidConfigError: If the file cannot be parsed.
        """
        path = Path(path)
        if not path.exists():
            raise MissingConfigError(str(path), {"reason": "file not found"})

        try:
            with open(path, "rb") as f:
                config_data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise InvalidConfigError(
                config_key="config_file",
                value=str(path),
                reason=f"Failed to parse TOML: {e}",
            ) from e

        return cls._from_dict(config_data)

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "Settings":
        settings_kwargs: dict[str, Any] = {}

        if "app" in data:
            settings_kwargs.update(data["app"])

        if "smtp" in data:
            settings_kwargs["smtp"] = SMTPSettings(**data["smtp"])

        if "logging" in data:
            settings_kwargs["logging"] = LoggingSettings(**data["logging"])

        return cls(**settings_kwargs)

    def validate_required(self, authenticated: bool = True) -> None:
        """
        Validate that the configuration needed for a send is present.

        Args:
            authenticated: Also require PLAIN credentials.

        Raises:
            MissingConfigError: If required configuration is missing.
        """
        if not self.smtp.host:
            raise MissingConfigError("MAILWIRE_SMTP_HOST")

        if authenticated:
            if not self.smtp.username:
                raise MissingConfigError("MAILWIRE_SMTP_USERNAME")
            if self.smtp.password is None:
                raise MissingConfigError("MAILWIRE_SMTP_PASSWORD")


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings.

    Loads from ``MAILWIRE_CONFIG_FILE`` when it names an existing TOML
    file, otherwise from the environment alone.

    Returns:
        Settings instance.
    """
    config_file = os.getenv("MAILWIRE_CONFIG_FILE")

    if config_file and Path(config_file).exists():
        settings = Settings.from_toml(config_file)
    else:
        settings = Settings()

    return settings


def reload_settings() -> Settings:
    """
    Reload settings, clearing the cache.

    Returns:
        Fresh Settings instance.
    """
    get_settings.cache_clear()
    return get_settings()
