"""Certificate operator exceptions."""


class CertificateOperatorError(Exception):
    """Base exception for all certificate operator errors."""

    pass


# =============================================================================
# Configuration errors
# =============================================================================


class ConfigurationError(CertificateOperatorError):
    """Invalid operator settings or unusable credentials."""

    pass


class MissingCredentialError(ConfigurationError):
    """A mandatory key is absent from the credentials bundle.

    Args:
        key: Name of the missing credentials key.
        message: Human readable error text.
    """

    def __init__(self, key: str, message: str):
        self.key = key
        super().__init__(message)


# =============================================================================
# Issuance service errors
# =============================================================================


class IssuanceError(CertificateOperatorError):
    """Error talking to the external certificate issuance service."""

    pass


class TransportError(IssuanceError):
    """Network level failure (connection refused, timeout, TLS failure)."""

    pass


class ProtocolError(IssuanceError):
    """The service answered with something outside the fixed JSON contract."""

    pass


class UnexpectedStatusError(TransportError, ProtocolError):
    """The service answered with a non-200 status.

    The message always contains the standard HTTP status text (e.g.
    "Not Found") so callers can pattern-match it.

    Args:
        status_code: HTTP status code of the response.
        status_text: Standard reason phrase for the status code.
        message: Full error text; defaults to the status text.
    """

    def __init__(self, status_code: int, status_text: str, message: str | None = None):
        self.status_code = status_code
        self.status_text = status_text
        super().__init__(message or status_text)


# =============================================================================
# Domain errors
# =============================================================================


class DomainError(CertificateOperatorError):
    """Data received or computed is not usable."""

    pass


class DecodeError(DomainError):
    """The downloaded archive could not be decoded."""

    pass


class CastError(DomainError):
    """The archive private key is not of the expected (RSA) family."""

    pass


class TimestampParseError(DomainError):
    """A validity timestamp does not match the fixed wire format."""

    pass


class OwnerReferenceError(DomainError):
    """An owner reference cannot be attached to the dependent object."""

    pass


# =============================================================================
# Cluster errors
# =============================================================================


class ClusterError(CertificateOperatorError):
    """Failed read or write against the cluster resource store."""

    pass


class NotFoundError(ClusterError):
    """The requested object does not exist."""

    pass


class ConflictError(ClusterError):
    """A write was rejected because the object changed since it was read."""

    pass


# =============================================================================
# Reconciliation control
# =============================================================================


class CertificatesExistError(CertificateOperatorError):
    """A CertificateConfig cannot be deleted while Certificates reference it."""

    def __init__(self, count: int):
        self.count = count
        super().__init__("cannot delete CertificateConfig because associated Certificates exist")


class ReconcileError(CertificateOperatorError):
    """A reconcile pass was aborted.

    The underlying failure is available as __cause__.

    Args:
        message: Error text.
        reason: Reason of the Error condition recorded for this failure,
            or None when no condition could be recorded.
    """

    def __init__(self, message: str, reason: str | None = None):
        self.reason = reason
        super().__init__(message)


class RequeueAfterError(CertificateOperatorError):
    """Reconcile failed and must be retried after an explicit delay.

    Args:
        message: Error text (the text of the underlying failure).
        delay: Seconds to wait before the next attempt.
    """

    def __init__(self, message: str, delay: float):
        self.delay = delay
        super().__init__(message)
