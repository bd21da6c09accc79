"""Abstract base class for the cluster resource store."""

from abc import ABC, abstractmethod

from certificate_operator.models import Certificate, CertificateConfig, Secret


class ClusterStore(ABC):
    """Abstract interface to the cluster-held objects the operator touches.

    Writes use optimistic concurrency: an object carrying a stale
    resource version is rejected with ConflictError. Every write returns
    the object as stored, with its new resource version.

    All methods raise NotFoundError when the object does not exist and
    ClusterError for any other store failure.
    """

    @abstractmethod
    def get_certificate(self, namespace: str, name: str) -> Certificate:
        """Read a Certificate."""
        ...

    @abstractmethod
    def list_certificates(self, config_name: str) -> list[Certificate]:
        """List Certificates, in all namespaces, referencing a CertificateConfig.

        Args:
            config_name: Name of the CertificateConfig (spec.configRef.name).
        """
        ...

    @abstractmethod
    def update_certificate_status(self, certificate: Certificate) -> Certificate:
        """Write the status of a Certificate (status subresource).

        Raises:
            ConflictError: If the resource version is stale.
        """
        ...

    @abstractmethod
    def get_certificate_config(self, name: str) -> CertificateConfig:
        """Read a cluster-scoped CertificateConfig."""
        ...

    @abstractmethod
    def update_certificate_config_finalizers(self, config: CertificateConfig) -> CertificateConfig:
        """Write the finalizers of a CertificateConfig.

        Raises:
            ConflictError: If the resource version is stale.
        """
        ...

    @abstractmethod
    def get_secret(self, namespace: str, name: str) -> Secret:
        """Read a Secret, with its data base64-decoded."""
        ...

    @abstractmethod
    def create_secret(self, secret: Secret) -> Secret:
        """Create a Secret.

        Raises:
            ConflictError: If a Secret with the same name already exists.
        """
        ...

    @abstractmethod
    def update_secret(self, secret: Secret) -> Secret:
        """Replace an existing Secret.

        Raises:
            ConflictError: If the resource version is stale.
        """
        ...
