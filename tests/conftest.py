"""Pytest configuration and fixtures."""

import datetime
from typing import List, Optional

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from certificate import certificate_domains
from plugins.base import CertificatePage, CertificateSummary, Tag
from plugins.destinations.base import CertificateStore, CertificateStoreError
from plugins.sources.base import SecretEvent, SecretEventStream, SecretEventType


def _key_pem(key) -> str:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


def _build_certificate(
    subject: x509.Name,
    key,
    issuer: Optional[x509.Name] = None,
    issuer_key=None,
    sans: List[str] = (),
    is_ca: bool = False,
) -> str:
    now = datetime.datetime.now(datetime.timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer or subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
    )
    if sans:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(name) for name in sans]),
            critical=False,
        )
    if is_ca:
        builder = builder.add_extension(
            x509.BasicConstraints(ca=True, path_length=None), critical=True
        )
    cert = builder.sign(issuer_key or key, hashes.SHA256())
    return cert.public_bytes(serialization.Encoding.PEM).decode("utf-8")


class CertificateFactory:
    """Generates throwaway certificates for tests."""

    def __init__(self):
        self.ca_key = ec.generate_private_key(ec.SECP256R1())
        self.ca_name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "Test CA")])
        self.ca_pem = _build_certificate(self.ca_name, self.ca_key, is_ca=True)

    def leaf(self, common_name: str, sans: List[str] = ()):
        """Return (certificate_pem, private_key_pem) for a CA-signed leaf."""
        key = ec.generate_private_key(ec.SECP256R1())
        subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
        pem = _build_certificate(
            subject,
            key,
            issuer=self.ca_name,
            issuer_key=self.ca_key,
            sans=sans,
        )
        return pem, _key_pem(key)

    def without_common_name(self):
        """Return (certificate_pem, private_key_pem) with no CN in the subject."""
        key = ec.generate_private_key(ec.SECP256R1())
        subject = x509.Name([x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Acme")])
        return _build_certificate(subject, key), _key_pem(key)


@pytest.fixture(scope="session")
def cert_factory():
    """Session-wide certificate factory (key generation is slow-ish)."""
    return CertificateFactory()


@pytest.fixture(scope="session")
def leaf_pair(cert_factory):
    """A leaf for example.com with two DNS SANs."""
    return cert_factory.leaf("example.com", ["www.example.com", "api.example.com"])


@pytest.fixture
def tls_secret_data(cert_factory, leaf_pair):
    """Decoded TLS secret payload: leaf + CA chain and key."""
    cert_pem, key_pem = leaf_pair
    return {
        "tls.crt": (cert_pem + cert_factory.ca_pem).encode("utf-8"),
        "tls.key": key_pem.encode("utf-8"),
    }


class FakeCertificateStore(CertificateStore):
    """
    In-memory CertificateStore.

    ``pages`` is a list of pages; the continuation token is the index of
    the next page. Created entries are appended to the last page.
    """

    def __init__(self, pages: Optional[List[List[CertificateSummary]]] = None):
        self.pages = pages if pages is not None else [[]]
        self.list_calls: List[Optional[str]] = []
        self.imports: List[dict] = []
        self.attached: List[tuple] = []
        self.failing_listeners = set()
        self.list_error: Optional[Exception] = None
        self.import_error: Optional[Exception] = None
        self.return_no_id = False
        self._created = 0

    async def list_certificates(self, next_token=None) -> CertificatePage:
        self.list_calls.append(next_token)
        if self.list_error:
            raise self.list_error
        index = int(next_token) if next_token else 0
        has_more = index + 1 < len(self.pages)
        return CertificatePage(
            summaries=list(self.pages[index]),
            next_token=str(index + 1) if has_more else None,
        )

    async def import_certificate(
        self,
        certificate: bytes,
        private_key: bytes,
        chain=None,
        certificate_id=None,
        tags: Optional[List[Tag]] = None,
    ):
        if self.import_error:
            raise self.import_error
        self.imports.append(
            {
                "certificate": certificate,
                "private_key": private_key,
                "chain": chain,
                "certificate_id": certificate_id,
                "tags": tags,
            }
        )
        if self.return_no_id:
            return None
        if certificate_id:
            return certificate_id

        self._created += 1
        new_id = f"arn:aws:acm:eu-west-3:123456789012:certificate/new-{self._created}"
        domains = certificate_domains(certificate.decode("utf-8"))
        self.pages[-1].append(
            CertificateSummary(
                certificate_id=new_id,
                domain_name=domains[0],
                domain_names=tuple(domains),
            )
        )
        return new_id

    async def add_listener_certificate(self, listener_id, certificate_id):
        if listener_id in self.failing_listeners:
            raise CertificateStoreError(f"AccessDenied on {listener_id}")
        self.attached.append((listener_id, certificate_id))


class FakeSecretEventStream(SecretEventStream):
    """SecretEventStream replaying a fixed list of events, then ending or failing."""

    def __init__(self, events: List[SecretEvent] = (), error: Exception = None):
        self._events = list(events)
        self.error = error
        self.opened = 0
        self.requested_labels: List[str] = []
        self.closed = False

    async def events(self, type_label: str):
        self.opened += 1
        self.requested_labels.append(type_label)
        for event in self._events:
            yield event
        if self.error:
            raise self.error

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_store():
    return FakeCertificateStore()


@pytest.fixture
def store_factory():
    """Build a FakeCertificateStore from a list of pages."""
    return FakeCertificateStore


@pytest.fixture
def stream_factory():
    """Build a FakeSecretEventStream from events (and an optional final error)."""
    return FakeSecretEventStream


@pytest.fixture
def make_secret_event():
    """Build a SecretEvent with sensible defaults."""

    def _make(
        data=None,
        event_type=SecretEventType.ADDED,
        name="web-tls",
        namespace="default",
        type_label="kubernetes.io/tls",
    ):
        return SecretEvent(
            event_type=event_type,
            name=name,
            namespace=namespace,
            type_label=type_label,
            data=data,
        )

    return _make
