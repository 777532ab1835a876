#!/usr/bin/env python3
"""
Command-line interface for mailwire.

Builds a message from the command line and prints its encoded form, or
sends it with the SMTP settings from the environment / config file.

Usage:
    mailwire --subject TEXT --body TEXT [OPTIONS]

Options:
    --from ADDR         Sender address
    --to/--cc/--bcc     Recipient (repeatable)
    --attach PATH       Attach a file (repeatable)
    --boundary TOKEN    Multipart boundary token
    --send plain|tls    Send instead of printing
    --debug             Enable debug logging
    --version           Show version and exit
"""

import argparse
import logging
import sys
from typing import Optional

from mailwire import __version__
from mailwire.common.config import Settings, get_settings
from mailwire.common.exceptions import MailwireError
from mailwire.crypto.tls import client_context_from_settings
from mailwire.smtp.auth import DialerNoAuth, PlainAuth
from mailwire.smtp.composer import MessageEncoder
from mailwire.smtp.message import Envelope
from mailwire.smtp.sender import SendResult, SendSession


def setup_logging(debug: bool = False, settings: Optional[Settings] = None) -> None:
    """
    Configure logging for the command line.

    Log records go to stderr; stdout carries the encoded message.

    Args:
        debug: Enable debug logging.
        settings: Source of the default level and format.
    """
    if settings is not None:
        log_level = logging.DEBUG if debug else settings.logging.level
        log_format = settings.logging.format
    else:
        log_level = logging.DEBUG if debug else logging.WARNING
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if settings is not None and settings.logging.file:
        handlers.append(logging.FileHandler(settings.logging.file))

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=handlers,
        force=True,
    )

    if not debug:
        logging.getLogger("aiosmtplib").setLevel(logging.WARNING)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        prog="mailwire",
        description="mailwire - MIME message encoder and SMTP sender",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    Print an encoded message:
        mailwire --subject Test --body "Body message." --to a@b.com

    Send it over STARTTLS:
        mailwire --subject Test --body Hi --from me@b.com --to a@b.com --send tls

Environment Variables:
    MAILWIRE_SMTP_HOST      SMTP server host
    MAILWIRE_SMTP_PORT      SMTP server port
    MAILWIRE_SMTP_USERNAME  Login for --send plain
    MAILWIRE_SMTP_PASSWORD  Password for --send plain
    MAILWIRE_CONFIG_FILE    TOML configuration file
    MAILWIRE_DEBUG          Enable debug logging (same as --debug)
        """,
    )

    parser.add_argument("--subject", required=True, help="Message subject")
    parser.add_argument("--body", required=True, help="Message body")
    parser.add_argument(
        "--from", dest="from_address", default="", help="Sender address"
    )
    parser.add_argument(
        "--to", action="append", default=[], metavar="ADDR", help="To recipient"
    )
    parser.add_argument(
        "--cc", action="append", default=[], metavar="ADDR", help="Cc recipient"
    )
    parser.add_argument(
        "--bcc", action="append", default=[], metavar="ADDR", help="Bcc recipient"
    )
    parser.add_argument(
        "--attach", action="append", default=[], metavar="PATH",
        help="File to attach",
    )
    parser.add_argument("--boundary", default=None, help="Multipart boundary token")
    parser.add_argument(
        "--send",
        choices=["plain", "tls"],
        default=None,
        help="Send with PLAIN auth or over a STARTTLS dialer connection",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=None,
        help="Enable debug logging",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"mailwire {__version__}",
    )

    return parser.parse_args(argv)


def build_envelope(args: argparse.Namespace) -> Envelope:
    """Create the envelope described by the arguments."""
    envelope = Envelope(
        subject=args.subject,
        body=args.body,
        from_address=args.from_address,
        to=args.to,
        cc=args.cc,
        bcc=args.bcc,
    )
    for path in args.attach:
        envelope.attach_file(path)
    return envelope


def send(envelope: Envelope, mode: str, settings: Settings,
         boundary: str) -> SendResult:
    """Send the envelope with the strategy named by ``mode``."""
    smtp = settings.smtp
    tls_context = client_context_from_settings(smtp)

    if mode == "plain":
        settings.validate_required(authenticated=True)
        session = SendSession(
            PlainAuth(smtp.credentials()),
            timeout=smtp.timeout,
            boundary=boundary,
            tls_context=tls_context,
        )
        return session.send_mail(envelope)

    settings.validate_required(authenticated=False)
    strategy = DialerNoAuth.dial(smtp.dialer_target(), timeout=smtp.timeout)
    with SendSession(strategy, timeout=smtp.timeout, boundary=boundary) as session:
        return session.send_mail_tls(envelope, tls_context)


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the mailwire command.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    args = parse_args(argv)
    logger = logging.getLogger(__name__)

    try:
        settings = get_settings()
        setup_logging(args.debug or settings.debug, settings)

        boundary = args.boundary or settings.smtp.boundary
        envelope = build_envelope(args)

        if args.send is None:
            payload = MessageEncoder(envelope, boundary=boundary).serialize()
            sys.stdout.buffer.write(payload)
            sys.stdout.flush()
            return 0

        result = send(envelope, args.send, settings, boundary)
        logger.info("Delivered to %s", ", ".join(result.accepted))
        print(f"Sent to {len(result.accepted)} recipient(s)")
        return 0

    except MailwireError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    except ValueError as e:
        # pydantic ValidationError and bad boundary tokens
        print(f"Error: {e}", file=sys.stderr)
        return 1

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
