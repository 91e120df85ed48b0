"""
Certificate Model - Parsed TLS bundles.

Turns the PEM material found in a TLS secret into an immutable
CertificateBundle carrying the leaf certificate, the private key, the chain
and the domain names the certificate covers.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from cryptography import x509
from cryptography.x509.oid import NameOID

logger = logging.getLogger(__name__)

PEM_CERTIFICATE_BEGIN = "-----BEGIN CERTIFICATE-----"


class CertificateParseError(ValueError):
    """Raised when PEM material cannot be turned into a CertificateBundle."""


@dataclass(frozen=True)
class CertificateBundle:
    """A leaf certificate with its key, chain and derived domain list."""

    certificate_pem: str
    private_key_pem: str = field(repr=False)  # Never log the key
    chain_pems: Tuple[str, ...] = ()
    # Common Name first, then DNS SANs in certificate order
    domains: Tuple[str, ...] = ()

    @property
    def primary_domain(self) -> str:
        """The certificate's Common Name."""
        return self.domains[0]

    @property
    def chain_pem(self) -> Optional[str]:
        """Chain members joined into a single PEM string, or None if empty."""
        if not self.chain_pems:
            return None
        return "\n".join(self.chain_pems)


def split_concatenated_pem(raw: str) -> List[str]:
    """
    Split a PEM stream holding several concatenated certificates.

    Each returned element starts with the certificate begin marker and runs
    up to the next marker (or the end of the input), so concatenating the
    result gives back the input minus anything before the first marker.

    Args:
        raw: PEM text, typically the ``tls.crt`` value of a secret

    Returns:
        One PEM block per certificate, in input order. Empty if the input
        contains no certificate.
    """
    blocks: List[str] = []
    start = raw.find(PEM_CERTIFICATE_BEGIN)
    while start != -1:
        end = raw.find(PEM_CERTIFICATE_BEGIN, start + len(PEM_CERTIFICATE_BEGIN))
        if end == -1:
            blocks.append(raw[start:])
        else:
            blocks.append(raw[start:end])
        start = end
    return blocks


def _common_name(cert: x509.Certificate) -> str:
    try:
        attributes = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    except ValueError as e:
        raise CertificateParseError(f"Unable to read certificate subject: {e}") from e

    if not attributes:
        raise CertificateParseError("Certificate subject has no Common Name")

    value = attributes[0].value
    if isinstance(value, bytes):
        try:
            value = value.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CertificateParseError("Common Name is not valid UTF-8") from e
    if not value:
        raise CertificateParseError("Certificate Common Name is empty")
    return value


def _dns_names(cert: x509.Certificate) -> List[str]:
    try:
        extension = cert.extensions.get_extension_for_class(
            x509.SubjectAlternativeName
        )
    except x509.ExtensionNotFound:
        return []
    except ValueError as e:
        logger.warning(f"Ignoring unreadable certificate extensions: {e}")
        return []

    return [name.value for name in extension.value if isinstance(name, x509.DNSName)]


def certificate_domains(certificate_pem: str) -> List[str]:
    """
    Domain names covered by a PEM certificate: the Common Name, then every
    DNS Subject Alternative Name.

    Raises:
        CertificateParseError: If the certificate is not valid PEM X.509 or
            has no usable Common Name
    """
    try:
        cert = x509.load_pem_x509_certificate(certificate_pem.encode("utf-8"))
    except ValueError as e:
        raise CertificateParseError(f"Invalid PEM certificate: {e}") from e

    return [_common_name(cert)] + _dns_names(cert)


def parse_certificate(
    certificate_pem: str,
    private_key_pem: str,
    chain_pems: Iterable[str] = (),
) -> CertificateBundle:
    """
    Parse a leaf certificate into a CertificateBundle.

    Args:
        certificate_pem: PEM-encoded leaf certificate
        private_key_pem: PEM-encoded private key, passed through unchanged
        chain_pems: Intermediate/CA certificates, passed through unchanged

    Returns:
        The parsed bundle. ``domains[0]`` is the Common Name, followed by
        every DNS Subject Alternative Name.

    Raises:
        CertificateParseError: If the certificate is not valid PEM X.509,
            has no usable Common Name, or the key is empty
    """
    if not private_key_pem or not private_key_pem.strip():
        raise CertificateParseError("Private key is empty")

    domains = certificate_domains(certificate_pem)

    return CertificateBundle(
        certificate_pem=certificate_pem,
        private_key_pem=private_key_pem,
        chain_pems=tuple(chain_pems),
        domains=tuple(domains),
    )
