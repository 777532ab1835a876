"""
Custom exceptions for mailwire.

This module defines all custom exceptions raised by the message encoder
and the SMTP send session, so callers can branch on a typed failure
instead of parsing error strings.
"""

from typing import Any, Optional


class MailwireError(Exception):
    """Base exception for all mailwire errors."""

    def __init__(self, message: str,
                 details: Optional[dict[str, Any]] = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error details.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


# Configuration Exceptions
class ConfigError(MailwireError):
    """Base exception for configuration-related errors."""


class MissingFieldError(ConfigError):
    """Raised when a required message field is absent."""

    def __init__(
        self, field: str, details: Optional[dict[str, Any]] = None
    ) -> None:
        """
        Initialize missing field error.

        Args:
            field: Name of the missing field.
            details: Optional dictionary with additional error details.
        """
        super().__init__(f"Missing required field: '{field}'", details)
        self.field = field


class MissingConfigError(ConfigError):
    """Raised when a required configuration value is missing."""

    def __init__(
        self, config_key: str, details: Optional[dict[str, Any]] = None
    ) -> None:
        """
        Initialize missing config error.

        Args:
            config_key: The missing configuration key.
            details: Optional dictionary with additional error details.
        """
        super().__init__(
            f"Missing required configuration: '{config_key}'", details)
        self.config_key = config_key


class InvalidConfigError(ConfigError):
    """Raised when a configuration value is invalid."""

    def __init__(
        self,
        config_key: str,
        value: Any,
        reason: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Initialize invalid config error.

        Args:
            config_key: The configuration key with invalid value.
            value: The invalid value.
            reason: Optional reason why the value is invalid.
            details: Optional dictionary with additional error details.
        """
        message = f"Invalid configuration value for '{config_key}': {value}"
        if reason:
            message += f" - {reason}"
        super().__init__(message, details)
        self.config_key = config_key
        self.value = value
        self.reason = reason


# Email/Message Exceptions
class MessageError(MailwireError):
    """Base exception for message-related errors."""


class AttachmentReadError(MessageError):
    """Raised when attachment content cannot be read from its source."""

    def __init__(
        self,
        path: str,
        reason: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Initialize attachment read error.

        Args:
            path: The path that could not be read.
            reason: Optional reason for the failure.
            details: Optional dictionary with additional error details.
        """
        message = f"Failed to read attachment '{path}'"
        if reason:
            message += f": {reason}"
        super().__init__(message, details)
        self.path = path
        self.reason = reason


# SMTP Exceptions
class SMTPError(MailwireError):
    """Base exception for SMTP-related errors."""


class SMTPConnectionError(SMTPError):
    """Raised when dialing, handshaking or upgrading a connection fails."""


class SMTPAuthError(SMTPConnectionError):
    """Raised when SMTP authentication fails."""


class StartTLSError(SMTPConnectionError):
    """Raised when the STARTTLS upgrade fails."""


class SMTPProtocolError(SMTPError):
    """Raised when the server rejects a MAIL, RCPT or DATA command."""

    def __init__(
        self,
        command: str,
        code: Optional[int] = None,
        reply: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Initialize protocol error.

        Args:
            command: The SMTP command that was rejected.
            code: SMTP reply code, when the server sent one.
            reply: SMTP reply text, when the server sent one.
            details: Optional dictionary with additional error details.
        """
        message = f"Server rejected {command}"
        if code is not None:
            message += f": {code} {reply or ''}".rstrip()
        super().__init__(message, details)
        self.command = command
        self.code = code
        self.reply = reply


class RecipientsRefusedError(SMTPProtocolError):
    """Raised when every recipient of a message was rejected."""

    def __init__(
        self,
        rejected: dict[str, tuple[Optional[int], str]],
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Initialize recipients refused error.

        Args:
            rejected: Mapping of recipient to (code, reply) for each refusal.
            details: Optional dictionary with additional error details.
        """
        super().__init__("RCPT", details=details)
        self.message = f"All recipients rejected: {', '.join(rejected)}"
        self.args = (self.message,)
        self.rejected = dict(rejected)


class PartialRecipientError(SMTPError):
    """
    Raised when some recipients were rejected while others were accepted.

    The message has been delivered to ``accepted``; ``rejected`` maps each
    refused address to the server's (code, reply). ``result`` carries the
    completed send, rejections included, when the sender supplies one.
    """

    def __init__(
        self,
        rejected: dict[str, tuple[Optional[int], str]],
        accepted: list[str],
        details: Optional[dict[str, Any]] = None,
        result: Any = None,
    ) -> None:
        message = (
            f"{len(rejected)} of {len(rejected) + len(accepted)} recipients "
            f"rejected: {', '.join(rejected)}"
        )
        super().__init__(message, details)
        self.rejected = dict(rejected)
        self.accepted = list(accepted)
        self.result = result

    @property
    def failed_recipients(self) -> list[str]:
        """Rejected addresses in submission order."""
        return list(self.rejected)


class SendTimeoutError(SMTPError):
    """
    Raised when a network step exceeds its timeout.

    ``retryable`` is True only when the timeout happened before any
    transaction state (MAIL FROM) existed on the server.
    """

    def __init__(
        self,
        phase: str,
        retryable: bool,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(f"Timed out during {phase}", details)
        self.phase = phase
        self.retryable = retryable


class SendCancelledError(SMTPError):
    """Raised when a send is cancelled between protocol steps."""

    def __init__(
        self, phase: str, details: Optional[dict[str, Any]] = None
    ) -> None:
        super().__init__(f"Send cancelled before {phase}", details)
        self.phase = phase


class SessionStateError(SMTPError):
    """Raised when a send session is used in a state that forbids it."""
