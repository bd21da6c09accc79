"""Pytest fixtures for the certificate operator test suite."""

import base64
import logging
import logging.handlers
from collections.abc import Callable, Generator
from datetime import timedelta

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import BestAvailableEncryption, pkcs12
from cryptography.x509.oid import NameOID
from helpers import (
    ARCHIVE_PASSWORD,
    NOW,
    FakeIssuanceClient,
    InMemoryClusterStore,
    make_config,
    make_credentials_secret,
)

from certificate_operator.models import DownloadResponse
from certificate_operator.reconciler import CertificateReconciler


# =============================================================================
# Log capture
# =============================================================================


class LogCapture:
    """Helper class to capture and inspect log records."""

    def __init__(self, handler: logging.handlers.MemoryHandler) -> None:
        self._handler = handler

    @property
    def records(self) -> list[logging.LogRecord]:
        """Get all captured log records."""
        return self._handler.buffer

    def get_records(
        self, level: int | None = None, name: str | None = None
    ) -> list[logging.LogRecord]:
        """Get log records filtered by level and/or logger name.

        Args:
            level: Filter by log level (e.g., logging.INFO).
            name: Filter by logger name prefix (e.g., "certificate_operator.reconciler").

        Returns:
            List of matching log records.
        """
        records = self.records
        if level is not None:
            records = [r for r in records if r.levelno == level]
        if name is not None:
            records = [r for r in records if r.name.startswith(name)]
        return records

    def get_messages(self, level: int | None = None, name: str | None = None) -> list[str]:
        """Get log messages filtered by level and/or logger name."""
        return [r.getMessage() for r in self.get_records(level, name)]

    def clear(self) -> None:
        """Clear all captured log records."""
        self._handler.buffer.clear()


@pytest.fixture
def log_capture() -> Generator[LogCapture]:
    """Capture logs from the certificate_operator package during a test.

    Usage:
        def test_something(log_capture):
            # do something that logs
            assert "Certificate issued" in log_capture.get_messages(logging.INFO)
    """
    handler = logging.handlers.MemoryHandler(capacity=1000)
    handler.setLevel(logging.DEBUG)

    package_logger = logging.getLogger("certificate_operator")
    original_level = package_logger.level
    package_logger.setLevel(logging.DEBUG)
    package_logger.addHandler(handler)

    try:
        yield LogCapture(handler)
    finally:
        package_logger.removeHandler(handler)
        package_logger.setLevel(original_level)
        handler.close()


# =============================================================================
# PKCS#12 archives
# =============================================================================


def _self_signed(private_key, common_name: str) -> x509.Certificate:
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(NOW - timedelta(days=1))
        .not_valid_after(NOW + timedelta(days=365))
        .sign(private_key, hashes.SHA256())
    )


@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    """RSA key shared by the session's archives."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def ec_key() -> ec.EllipticCurvePrivateKey:
    """ECDSA P-256 key shared by the session's archives."""
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture(scope="session")
def make_archive(rsa_key, ec_key) -> Callable[..., str]:
    """Build a base64-encoded, password-protected PKCS#12 archive.

    Usage:
        data = make_archive(key_type="rsa", password="secret")
    """

    def _make(key_type: str = "rsa", password: str = ARCHIVE_PASSWORD) -> str:
        private_key = rsa_key if key_type == "rsa" else ec_key
        certificate = _self_signed(private_key, "web.apps.example.com")
        archive = pkcs12.serialize_key_and_certificates(
            b"web",
            private_key,
            certificate,
            None,
            BestAvailableEncryption(password.encode()),
        )
        return base64.b64encode(archive).decode()

    return _make


# =============================================================================
# Reconciler wiring
# =============================================================================


@pytest.fixture
def store() -> InMemoryClusterStore:
    """In-memory cluster holding the default config and its credentials."""
    cluster = InMemoryClusterStore()
    cluster.add_config(make_config())
    cluster.add_secret(make_credentials_secret())
    return cluster


@pytest.fixture
def issuance_client(make_archive) -> FakeIssuanceClient:
    """Fake issuance client whose download returns a valid RSA archive."""
    return FakeIssuanceClient(
        DownloadResponse(
            form="pfx", format="PKCS12", data=make_archive(), password=ARCHIVE_PASSWORD
        )
    )


@pytest.fixture
def reconciler(store, issuance_client) -> CertificateReconciler:
    """Reconciler wired to the in-memory store and the fake client."""
    return CertificateReconciler(
        store,
        client_builder=lambda config, secret_data: issuance_client,
        clock=lambda: NOW,
    )
