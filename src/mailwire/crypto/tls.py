"""
TLS support for mailwire.

This module builds SSL contexts for STARTTLS upgrades and generates
self-signed certificates for local SMTP test servers.
"""

import ipaddress
import logging
import ssl
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Union

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from ..common.exceptions import InvalidConfigError

if TYPE_CHECKING:
    from ..common.config import SMTPSettings

logger = logging.getLogger(__name__)


class TLSVersion(Enum):
    """Supported TLS versions."""

    TLS_1_2 = "TLSv1.2"
    TLS_1_3 = "TLSv1.3"


# Modern cipher suites for TLS 1.2; TLS 1.3 suites are not configurable
TLS_1_2_CIPHERS = [
    "ECDHE-ECDSA-AES256-GCM-SHA384",
    "ECDHE-RSA-AES256-GCM-SHA384",
    "ECDHE-ECDSA-CHACHA20-POLY1305",
    "ECDHE-RSA-CHACHA20-POLY1305",
    "ECDHE-ECDSA-AES128-GCM-SHA256",
    "ECDHE-RSA-AES128-GCM-SHA256",
]


@dataclass
class TLSConfig:
    """TLS settings for client and test server contexts."""

    cert_file: Optional[str] = None
    key_file: Optional[str] = None
    ca_file: Optional[str] = None

    min_version: TLSVersion = TLSVersion.TLS_1_2
    ciphers: list[str] = field(default_factory=lambda: TLS_1_2_CIPHERS.copy())

    verify: bool = True
    check_hostname: bool = True

    def get_cipher_string(self) -> str:
        """Get the cipher string for TLS 1.2."""
        return ":".join(self.ciphers)


class TLSContextFactory:
    """Creates SSL contexts from a :class:`TLSConfig`."""

    def __init__(self, config: Optional[TLSConfig] = None) -> None:
        self.config = config or TLSConfig()

    def _apply_min_version(self, context: ssl.SSLContext) -> None:
        if self.config.min_version == TLSVersion.TLS_1_3:
            context.minimum_version = ssl.TLSVersion.TLSv1_3
        else:
            context.minimum_version = ssl.TLSVersion.TLSv1_2

    def create_client_context(
        self,
        verify: Optional[bool] = None,
        check_hostname: Optional[bool] = None,
    ) -> ssl.SSLContext:
        """
        Create an SSL context for STARTTLS.

        Args:
            verify: Whether to verify the server certificate; defaults to
                the config value.
            check_hostname: Whether to check the hostname; defaults to the
                config value.

        Returns:
            Configured SSLContext for client use.

        Raises:
            InvalidConfigError: If the CA file cannot be loaded.
        """
        if verify is None:
            verify = self.config.verify
        if check_hostname is None:
            check_hostname = self.config.check_hostname

        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        self._apply_min_version(context)

        if verify:
            context.verify_mode = ssl.CERT_REQUIRED
            context.check_hostname = check_hostname
            context.load_default_certs()
        else:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE

        if self.config.ca_file:
            try:
                context.load_verify_locations(cafile=self.config.ca_file)
            except (OSError, ssl.SSLError) as e:
                raise InvalidConfigError(
                    "ca_file", self.config.ca_file, f"cannot load CA: {e}"
                ) from e

        try:
            context.set_ciphers(self.config.get_cipher_string())
        except ssl.SSLError as e:
            logger.warning("Failed to set custom ciphers: %s", str(e))

        context.options |= ssl.OP_NO_COMPRESSION

        logger.debug("Created client SSL context (verify=%s)", verify)
        return context

    def create_server_context(self) -> ssl.SSLContext:
        """
        Create an SSL context for a local SMTP server.

        Raises:
            InvalidConfigError: If the certificate pair is missing or invalid.
        """
        if not self.config.cert_file or not self.config.key_file:
            raise InvalidConfigError(
                "cert_file", self.config.cert_file,
                "server context needs cert_file and key_file",
            )

        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        self._apply_min_version(context)

        try:
            context.load_cert_chain(self.config.cert_file, self.config.key_file)
        except (OSError, ssl.SSLError) as e:
            raise InvalidConfigError(
                "cert_file", self.config.cert_file, f"cannot load certificate: {e}"
            ) from e

        context.options |= ssl.OP_NO_COMPRESSION

        logger.debug("Created server SSL context from %s", self.config.cert_file)
        return context


def client_context_from_settings(settings: "SMTPSettings") -> ssl.SSLContext:
    """Build the STARTTLS client context described by SMTP settings."""
    config = TLSConfig(ca_file=settings.ca_file, verify=settings.verify_certs)
    return TLSContextFactory(config).create_client_context()


def generate_self_signed_certificate(
    common_name: str = "localhost",
    domains: Optional[list[str]] = None,
    organization: str = "mailwire",
    validity_days: int = 365,
    key_size: int = 2048,
) -> tuple[bytes, bytes]:
    """
    Generate a self-signed server certificate.

    Names in ``domains`` that parse as IP addresses become IP SAN entries,
    the rest DNS entries.

    Args:
        common_name: Certificate common name (CN).
        domains: Additional names for the SAN extension.
        organization: Organization name.
        validity_days: Certificate validity in days.
        key_size: RSA key size.

    Returns:
        Tuple of (certificate_pem, private_key_pem).
    """
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)

    subject = x509.Name([
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization),
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
    ])

    san_names: list[x509.GeneralName] = []
    for name in [common_name, *(domains or [])]:
        try:
            entry: x509.GeneralName = x509.IPAddress(ipaddress.ip_address(name))
        except ValueError:
            entry = x509.DNSName(name)
        if entry not in san_names:
            san_names.append(entry)

    now = datetime.now(timezone.utc)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=5))
        .not_valid_after(now + timedelta(days=validity_days))
        .add_extension(x509.SubjectAlternativeName(san_names), critical=False)
        .add_extension(
            x509.BasicConstraints(ca=False, path_length=None), critical=True
        )
        .add_extension(
            x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]),
            critical=False,
        )
        .sign(private_key, hashes.SHA256())
    )

    cert_pem = certificate.public_bytes(serialization.Encoding.PEM)
    key_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )

    logger.info("Generated self-signed certificate for %s", common_name)
    return cert_pem, key_pem


def write_certificate_pair(
    output_dir: Union[str, Path],
    common_name: str = "localhost",
    domains: Optional[list[str]] = None,
) -> tuple[Path, Path]:
    """
    Generate a self-signed certificate and write it to ``output_dir``.

    Returns:
        Tuple of (certificate path, private key path).
    """
    cert_pem, key_pem = generate_self_signed_certificate(common_name, domains)

    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)
    cert_file = output_path / f"{common_name}.crt"
    key_file = output_path / f"{common_name}.key"

    cert_file.write_bytes(cert_pem)
    key_file.write_bytes(key_pem)
    key_file.chmod(0o600)

    logger.debug("Wrote certificate pair to %s", output_path)
    return cert_file, key_file
