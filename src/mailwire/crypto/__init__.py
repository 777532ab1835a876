"""TLS contexts and certificates for mailwire."""

from .tls import (
    TLSConfig,
    TLSContextFactory,
    TLSVersion,
    client_context_from_settings,
    generate_self_signed_certificate,
    write_certificate_pair,
)

__all__ = [
    "TLSConfig",
    "TLSContextFactory",
    "TLSVersion",
    "client_context_from_settings",
    "generate_self_signed_certificate",
    "write_certificate_pair",
]
