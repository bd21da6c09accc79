"""Abstract base class for issuance service clients."""

from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping

from certificate_operator.models import (
    CertificateConfig,
    CertificateData,
    DownloadResponse,
    ValidityResponse,
)


class IssuanceClient(ABC):
    """Abstract interface to the external certificate issuance service.

    Issuance is a three-step protocol: a creation request returns a
    guid, the guid is used to read the certificate validity, and
    finally to download the password-protected archive.
    """

    @abstractmethod
    def issue(self, certificate_data: CertificateData) -> str:
        """Request a new certificate.

        Args:
            certificate_data: Desired subject, SAN and template.

        Returns:
            The guid identifying the issuance request.

        Raises:
            TransportError: On network failure or non-200 response.
            ProtocolError: If the response body is not the expected JSON.
        """
        ...

    @abstractmethod
    def fetch_validity(self, guid: str) -> ValidityResponse:
        """Fetch the validity window of an issued certificate.

        Args:
            guid: Identifier returned by issue().

        Returns:
            Raw validFrom / validTo strings and signature hash algorithm.

        Raises:
            TransportError: On network failure or non-200 response. An
                upstream 404 surfaces with "Not Found" in the message.
            ProtocolError: If the response body is not the expected JSON.
        """
        ...

    @abstractmethod
    def download(self, guid: str, form: str) -> DownloadResponse:
        """Download the certificate archive.

        Args:
            guid: Identifier returned by issue().
            form: Archive form (e.g. "pfx").

        Returns:
            Base64 archive data and its password.

        Raises:
            TransportError: On network failure or non-200 response.
            ProtocolError: If the response body is not the expected JSON.
        """
        ...


# Builds a client from a CertificateConfig and the data of its credentials Secret
ClientBuilder = Callable[[CertificateConfig, Mapping[str, bytes]], IssuanceClient]
