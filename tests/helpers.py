"""Shared constants, test doubles and resource factories for the test suite."""

import json
from datetime import UTC, datetime

from certificate_operator.clients.base import IssuanceClient
from certificate_operator.cluster.base import ClusterStore
from certificate_operator.exceptions import ClusterError, ConflictError, NotFoundError
from certificate_operator.models import (
    CREDENTIALS_KEY,
    Certificate,
    CertificateConfig,
    CertificateData,
    DownloadResponse,
    Secret,
    ValidityResponse,
)

# Fixed "now" for renewal decisions
NOW = datetime(2026, 6, 1, 12, 0, 0, tzinfo=UTC)

NAMESPACE = "apps"
CERTIFICATE_NAME = "web"
CONFIG_NAME = "default"
CREDENTIALS_NAMESPACE = "certificate-operator-system"
CREDENTIALS_SECRET = "cert-api-credentials"
ARCHIVE_PASSWORD = "archive-password"

API_ENDPOINT = "https://cert.example.com/api/v1/certificates/"
DOWNLOAD_ENDPOINT = "/download/"


# =============================================================================
# Test doubles
# =============================================================================


class InMemoryClusterStore(ClusterStore):
    """ClusterStore keeping objects in dictionaries.

    Every write bumps a global resource version; a write carrying a
    stale version fails with ConflictError. Setting failures[operation]
    makes that operation raise the given error.
    """

    def __init__(self) -> None:
        self.certificates: dict[tuple[str, str], Certificate] = {}
        self.configs: dict[str, CertificateConfig] = {}
        self.secrets: dict[tuple[str, str], Secret] = {}
        self.failures: dict[str, ClusterError] = {}
        self.calls: list[str] = []
        self._version = 0

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        error = self.failures.get(operation)
        if error is not None:
            raise error

    @staticmethod
    def _check_version(stored_version: str | None, incoming_version: str | None) -> None:
        if incoming_version is not None and incoming_version != stored_version:
            raise ConflictError("the object has been modified")

    # Seeding helpers

    def add_certificate(self, certificate: Certificate) -> Certificate:
        stored = certificate.model_copy(deep=True)
        stored.metadata.resource_version = self._next_version()
        stored.metadata.uid = stored.metadata.uid or f"uid-{stored.metadata.name}"
        self.certificates[(stored.metadata.namespace, stored.metadata.name)] = stored
        return stored.model_copy(deep=True)

    def add_config(self, config: CertificateConfig) -> CertificateConfig:
        stored = config.model_copy(deep=True)
        stored.metadata.resource_version = self._next_version()
        self.configs[stored.metadata.name] = stored
        return stored.model_copy(deep=True)

    def add_secret(self, secret: Secret) -> Secret:
        stored = secret.model_copy(deep=True)
        stored.metadata.resource_version = self._next_version()
        self.secrets[(stored.metadata.namespace, stored.metadata.name)] = stored
        return stored.model_copy(deep=True)

    # ClusterStore

    def get_certificate(self, namespace: str, name: str) -> Certificate:
        self._record("get_certificate")
        try:
            return self.certificates[(namespace, name)].model_copy(deep=True)
        except KeyError:
            raise NotFoundError(f'certificates "{name}" not found') from None

    def list_certificates(self, config_name: str) -> list[Certificate]:
        self._record("list_certificates")
        return [
            c.model_copy(deep=True)
            for c in self.certificates.values()
            if c.spec.config_ref.name == config_name
        ]

    def update_certificate_status(self, certificate: Certificate) -> Certificate:
        self._record("update_certificate_status")
        key = (certificate.metadata.namespace, certificate.metadata.name)
        if key not in self.certificates:
            raise NotFoundError(f'certificates "{certificate.metadata.name}" not found')
        stored = self.certificates[key]
        self._check_version(stored.metadata.resource_version, certificate.metadata.resource_version)
        stored.status = certificate.status.model_copy(deep=True)
        stored.metadata.resource_version = self._next_version()
        return stored.model_copy(deep=True)

    def get_certificate_config(self, name: str) -> CertificateConfig:
        self._record("get_certificate_config")
        try:
            return self.configs[name].model_copy(deep=True)
        except KeyError:
            raise NotFoundError(f'certificateconfigs "{name}" not found') from None

    def update_certificate_config_finalizers(self, config: CertificateConfig) -> CertificateConfig:
        self._record("update_certificate_config_finalizers")
        stored = self.configs[config.metadata.name]
        self._check_version(stored.metadata.resource_version, config.metadata.resource_version)
        stored.metadata.finalizers = list(config.metadata.finalizers)
        stored.metadata.resource_version = self._next_version()
        return stored.model_copy(deep=True)

    def get_secret(self, namespace: str, name: str) -> Secret:
        self._record("get_secret")
        try:
            return self.secrets[(namespace, name)].model_copy(deep=True)
        except KeyError:
            raise NotFoundError(f'secrets "{name}" not found') from None

    def create_secret(self, secret: Secret) -> Secret:
        self._record("create_secret")
        key = (secret.metadata.namespace, secret.metadata.name)
        if key in self.secrets:
            raise ConflictError(f'secrets "{secret.metadata.name}" already exists')
        return self.add_secret(secret)

    def update_secret(self, secret: Secret) -> Secret:
        self._record("update_secret")
        key = (secret.metadata.namespace, secret.metadata.name)
        if key not in self.secrets:
            raise NotFoundError(f'secrets "{secret.metadata.name}" not found')
        stored_version = self.secrets[key].metadata.resource_version
        self._check_version(stored_version, secret.metadata.resource_version)
        stored = secret.model_copy(deep=True)
        stored.metadata.resource_version = self._next_version()
        self.secrets[key] = stored
        return stored.model_copy(deep=True)


class FakeIssuanceClient(IssuanceClient):
    """IssuanceClient answering from canned responses.

    Setting errors[operation] makes issue, fetch_validity or download
    raise the given error. Calls are recorded in order.
    """

    def __init__(self, download: DownloadResponse, guid: str = "guid-0001") -> None:
        self.guid = guid
        self.validity = ValidityResponse(
            valid_from="2026-05-01T00:00:00",
            valid_to="2027-05-01T00:00:00",
            signature_hash_algorithm="SHA256-RSA",
        )
        self.download_response = download
        self.errors: dict[str, Exception] = {}
        self.calls: list[tuple[str, ...]] = []

    def _record(self, operation: str, *args: str) -> None:
        self.calls.append((operation, *args))
        error = self.errors.get(operation)
        if error is not None:
            raise error

    @property
    def operations(self) -> list[str]:
        return [call[0] for call in self.calls]

    def issue(self, certificate_data: CertificateData) -> str:
        self._record("issue")
        return self.guid

    def fetch_validity(self, guid: str) -> ValidityResponse:
        self._record("fetch_validity", guid)
        return self.validity

    def download(self, guid: str, form: str) -> DownloadResponse:
        self._record("download", guid, form)
        return self.download_response


# =============================================================================
# Resources
# =============================================================================


def make_certificate(
    name: str = CERTIFICATE_NAME,
    namespace: str = NAMESPACE,
    secret_name: str = "web-tls",
    status: dict | None = None,
) -> Certificate:
    """Build a Certificate as it would be read from the cluster."""
    return Certificate.model_validate(
        {
            "apiVersion": "cert.dana.io/v1alpha1",
            "kind": "Certificate",
            "metadata": {"name": name, "namespace": namespace, "generation": 1},
            "spec": {
                "certificateData": {
                    "subject": {"commonName": "web.apps.example.com", "organization": "Example"},
                    "san": {"dns": ["web.apps.example.com"], "ips": ["10.0.0.1"]},
                    "template": "WebServer",
                    "form": "pfx",
                },
                "secretName": secret_name,
                "configRef": {"name": CONFIG_NAME},
            },
            "status": status,
        }
    )


def make_config(
    name: str = CONFIG_NAME,
    days_before_renewal: int = 30,
    force_expiration_update: bool = False,
    deleting: bool = False,
) -> CertificateConfig:
    """Build a cluster-scoped CertificateConfig."""
    metadata: dict = {"name": name}
    if deleting:
        metadata["deletionTimestamp"] = "2026-06-01T11:00:00Z"
        metadata["finalizers"] = ["cert.dana.io/check-dependencies"]
    return CertificateConfig.model_validate(
        {
            "metadata": metadata,
            "spec": {
                "secretRef": {"name": CREDENTIALS_SECRET, "namespace": CREDENTIALS_NAMESPACE},
                "daysBeforeRenewal": days_before_renewal,
                "waitTimeout": "30s",
                "forceExpirationUpdate": force_expiration_update,
            },
        }
    )


def make_credentials_secret(**overrides: str | None) -> Secret:
    """Build the Secret holding the Cert API credentials bundle."""
    credentials = {
        "apiEndpoint": API_ENDPOINT,
        "downloadEndpoint": DOWNLOAD_ENDPOINT,
        "token": "s3cr3t-token",
    }
    credentials.update(overrides)
    credentials = {key: value for key, value in credentials.items() if value is not None}
    return Secret.model_validate(
        {
            "metadata": {"name": CREDENTIALS_SECRET, "namespace": CREDENTIALS_NAMESPACE},
            "data": {CREDENTIALS_KEY: json.dumps(credentials).encode()},
        }
    )


# A status recording a fresh certificate materialized in "web-tls"
FRESH_STATUS = {
    "guid": "guid-0000",
    "validFrom": "2026-05-01T00:00:00Z",
    "validTo": "2027-05-01T00:00:00Z",
    "signatureHashAlgorithm": "SHA256-RSA",
    "secretName": "web-tls",
}
