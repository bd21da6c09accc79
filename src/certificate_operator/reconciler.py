"""Reconciliation engine for Certificate resources.

One reconcile pass walks a linear state machine with early exits:

    load Certificate and CertificateConfig
    -> build the issuance client from the referenced credentials
    -> renewal decision (stop here when the certificate and its Secret are current)
    -> issue -> fetch validity -> download -> decode -> materialize Secret
    -> clear the Error condition

Every failing step records the singleton Error condition on the
Certificate status before the error is raised to the caller.
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from enum import StrEnum

from certificate_operator._logging import (
    Timer,
    get_logger,
    get_resource_extra,
    reset_resource,
    set_resource,
)
from certificate_operator.clients.base import ClientBuilder, IssuanceClient
from certificate_operator.clients.certapi import new_client_from_config
from certificate_operator.cluster.base import ClusterStore
from certificate_operator.crypto import decode_archive
from certificate_operator.exceptions import (
    ClusterError,
    ConfigurationError,
    DomainError,
    IssuanceError,
    NotFoundError,
    OwnerReferenceError,
    ReconcileError,
    RequeueAfterError,
    TimestampParseError,
)
from certificate_operator.models import (
    CONDITION_ERROR,
    Certificate,
    CertificateConfig,
    Condition,
    ConditionReason,
    ConditionStatus,
    TLSMaterial,
    parse_wire_time,
)
from certificate_operator.secrets import (
    build_tls_secret,
    create_or_update_tls_secret,
    set_owner_reference,
)

logger = get_logger(__name__)

# HTTP status text of an upstream 404, matched inside error messages
NOT_FOUND_TEXT = "Not Found"

DEFAULT_NOT_FOUND_REQUEUE = 5.0  # seconds


class ReconcileOutcome(StrEnum):
    """How a reconcile pass ended."""

    GONE = "Gone"
    UP_TO_DATE = "UpToDate"
    ISSUED = "Issued"


def is_certificate_valid(
    certificate: Certificate, config: CertificateConfig, now: datetime
) -> bool:
    """Check the renewal window.

    A certificate is valid when validTo is set and lies after
    now - daysBeforeRenewal.
    """
    valid_to = certificate.status.valid_to
    if valid_to is None:
        return False
    if valid_to.tzinfo is None:
        valid_to = valid_to.replace(tzinfo=UTC)
    return valid_to > now - timedelta(days=config.spec.days_before_renewal)


def has_not_found_condition(certificate: Certificate) -> bool:
    """True if the Error condition records an upstream "Not Found" response."""
    condition = certificate.status.get_condition(CONDITION_ERROR)
    return condition is not None and NOT_FOUND_TEXT in condition.message


class CertificateReconciler:
    """Reconciles Certificates against the issuance service.

    The issuance client is rebuilt from the current credentials on every
    pass, so credential rotation applies on the next reconcile. The
    reconciler holds no per-resource state and may serve concurrent
    reconciles of distinct Certificates.

    Args:
        store: Cluster store holding Certificates, configs and Secrets.
        client_builder: Builds an issuance client from a config and the
            data of its credentials Secret.
        not_found_requeue: Delay in seconds before retrying after the
            issuance service reported the certificate as not found.
        clock: Returns the current time (timezone-aware).
    """

    def __init__(
        self,
        store: ClusterStore,
        client_builder: ClientBuilder = new_client_from_config,
        not_found_requeue: float = DEFAULT_NOT_FOUND_REQUEUE,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.client_builder = client_builder
        self.not_found_requeue = not_found_requeue
        self.clock = clock or (lambda: datetime.now(UTC))

    def reconcile(self, namespace: str, name: str) -> ReconcileOutcome:
        """Run one reconcile pass for a Certificate.

        Args:
            namespace: Namespace of the Certificate.
            name: Name of the Certificate.

        Returns:
            How the pass ended.

        Raises:
            RequeueAfterError: If the pass must be retried after a fixed delay.
            ReconcileError: If a step failed; the cause is chained.
            ClusterError: If the cluster store could not be read.
        """
        token = set_resource(namespace, name)
        try:
            logger.info("Starting reconcile", extra=get_resource_extra())
            with Timer() as timer:
                outcome = self._reconcile(namespace, name)
            logger.info(
                "Reconcile finished",
                extra={
                    "outcome": str(outcome),
                    "elapsed_ms": round(timer.elapsed_ms, 1),
                    **get_resource_extra(),
                },
            )
            return outcome
        finally:
            reset_resource(token)

    def _reconcile(self, namespace: str, name: str) -> ReconcileOutcome:
        try:
            certificate = self.store.get_certificate(namespace, name)
        except NotFoundError:
            logger.info("Certificate no longer exists", extra=get_resource_extra())
            return ReconcileOutcome.GONE
        except ClusterError as e:
            raise ReconcileError(f"failed to get Certificate: {e}") from e

        config_name = certificate.spec.config_ref.name
        try:
            config = self.store.get_certificate_config(config_name)
        except ClusterError as e:
            raise self._fail(
                certificate,
                ConditionReason.CONFIG_RETRIEVAL_FAILED,
                e,
                f"failed to create Certificate: {e}",
            ) from e

        client = self._build_client(config)

        if is_certificate_valid(certificate, config, self.clock()):
            self._remove_error_condition(certificate)
            if config.spec.force_expiration_update:
                self._force_expiration_update(client, certificate)
            if self._is_secret_up_to_date(certificate, namespace):
                logger.debug("Certificate is up to date", extra=get_resource_extra())
                return ReconcileOutcome.UP_TO_DATE

        self._issue(client, certificate)

        try:
            self._update_validity(client, certificate)
        except ReconcileError as e:
            # An upstream 404 only surfaces as its status text
            if NOT_FOUND_TEXT in str(e):
                logger.info(
                    "Certificate not yet known upstream, requeueing",
                    extra={"delay": self.not_found_requeue, **get_resource_extra()},
                )
                raise RequeueAfterError(str(e), self.not_found_requeue) from e
            raise

        tls_material = self._download(client, certificate)
        self._materialize(certificate, tls_material, namespace)
        self._remove_error_condition(certificate)

        logger.info(
            "Certificate issued",
            extra={
                "guid": certificate.status.guid,
                "secret": certificate.status.secret_name,
                **get_resource_extra(),
            },
        )
        return ReconcileOutcome.ISSUED

    # =========================================================================
    # Status bookkeeping
    # =========================================================================

    def _write_status(self, certificate: Certificate) -> None:
        stored = self.store.update_certificate_status(certificate)
        certificate.metadata.resource_version = stored.metadata.resource_version

    def _fail(
        self,
        certificate: Certificate,
        reason: ConditionReason,
        cause: Exception,
        message: str,
    ) -> ReconcileError:
        """Record the Error condition for a failed step.

        Returns:
            The error to raise. Its reason is None when the condition
            itself could not be written.
        """
        logger.warning(
            "Reconcile step failed",
            extra={"reason": str(reason), "error": str(cause), **get_resource_extra()},
        )
        certificate.status.set_condition(
            Condition(
                type=CONDITION_ERROR,
                status=ConditionStatus.TRUE,
                reason=reason,
                message=str(cause),
                observed_generation=certificate.metadata.generation,
            ),
            now=self.clock(),
        )
        try:
            self._write_status(certificate)
        except ClusterError as e:
            return ReconcileError(f"failed to update Certificate status: {e}")
        return ReconcileError(message, reason)

    def _remove_error_condition(self, certificate: Certificate) -> None:
        if not certificate.status.remove_condition(CONDITION_ERROR):
            return
        try:
            self._write_status(certificate)
        except ClusterError as e:
            raise ReconcileError(f"failed to update Certificate status: {e}") from e

    # =========================================================================
    # Steps
    # =========================================================================

    def _build_client(self, config: CertificateConfig) -> IssuanceClient:
        secret_ref = config.spec.secret_ref
        try:
            credentials = self.store.get_secret(secret_ref.namespace, secret_ref.name)
        except ClusterError as e:
            raise ReconcileError(f"failed to get secret: {e}") from e

        try:
            return self.client_builder(config, credentials.data)
        except ConfigurationError as e:
            raise ReconcileError(f"failed to build Cert client: {e}") from e

    def _is_secret_up_to_date(self, certificate: Certificate, namespace: str) -> bool:
        """True when the recorded Secret matches the desired name and still exists."""
        recorded = certificate.status.secret_name or ""
        if recorded != certificate.spec.secret_name:
            logger.info(
                "Secret name changed",
                extra={
                    "old_secret": recorded,
                    "secret": certificate.spec.secret_name,
                    **get_resource_extra(),
                },
            )
            return False

        try:
            self.store.get_secret(namespace, recorded)
        except NotFoundError:
            logger.info("Secret is missing", extra={"secret": recorded, **get_resource_extra()})
            return False
        return True

    def _force_expiration_update(self, client: IssuanceClient, certificate: Certificate) -> None:
        """Refresh the validity window; a failure is recorded, not raised."""
        try:
            self._update_validity(client, certificate)
        except ReconcileError as e:
            if e.reason is None:
                raise
            logger.warning(
                "Forced validity refresh failed",
                extra={"error": str(e), **get_resource_extra()},
            )

    def _issue(self, client: IssuanceClient, certificate: Certificate) -> None:
        if has_not_found_condition(certificate):
            logger.info(
                "Skipping issuance, previous request is not yet known upstream",
                extra={"guid": certificate.status.guid, **get_resource_extra()},
            )
            return

        try:
            guid = client.issue(certificate.spec.certificate_data)
        except IssuanceError as e:
            raise self._fail(
                certificate,
                ConditionReason.POST_TO_CERT_API_FAILED,
                e,
                f"failed to create Certificate: {e}",
            ) from e

        certificate.status.guid = guid
        try:
            self._write_status(certificate)
        except ClusterError as e:
            raise self._fail(
                certificate,
                ConditionReason.STATUS_UPDATE_FAILED,
                e,
                f"failed to create Certificate: {e}",
            ) from e

    def _update_validity(self, client: IssuanceClient, certificate: Certificate) -> None:
        try:
            validity = client.fetch_validity(certificate.status.guid or "")
        except IssuanceError as e:
            raise self._fail(
                certificate, ConditionReason.GET_CERT_DATA_FROM_CERT_API_FAILED, e, str(e)
            ) from e

        try:
            valid_to = parse_wire_time(validity.valid_to)
        except TimestampParseError as e:
            raise self._fail(
                certificate,
                ConditionReason.PARSE_VALID_TO_FAILED,
                e,
                f"failed to parse validTo: {e}",
            ) from e

        try:
            valid_from = parse_wire_time(validity.valid_from)
        except TimestampParseError as e:
            raise self._fail(
                certificate,
                ConditionReason.PARSE_VALID_FROM_FAILED,
                e,
                f"failed to parse validFrom: {e}",
            ) from e

        certificate.status.set_validity(valid_from, valid_to, validity.signature_hash_algorithm)
        if has_not_found_condition(certificate):
            certificate.status.remove_condition(CONDITION_ERROR)

        try:
            self._write_status(certificate)
        except ClusterError as e:
            raise self._fail(
                certificate,
                ConditionReason.STATUS_UPDATE_FAILED,
                e,
                f"failed to update Certificate status: {e}",
            ) from e

        logger.info(
            "Certificate validity updated",
            extra={"valid_to": validity.valid_to, **get_resource_extra()},
        )

    def _download(self, client: IssuanceClient, certificate: Certificate) -> TLSMaterial:
        try:
            response = client.download(
                certificate.status.guid or "", certificate.spec.certificate_data.form
            )
        except IssuanceError as e:
            raise self._fail(
                certificate,
                ConditionReason.DOWNLOAD_CERT_FROM_CERT_API_FAILED,
                e,
                f"failed downloading certificate: {e}",
            ) from e

        try:
            return decode_archive(response.data, response.password)
        except DomainError as e:
            raise self._fail(
                certificate,
                ConditionReason.DECODE_CERT_FAILED,
                e,
                f"failed downloading certificate: {e}",
            ) from e

    def _materialize(
        self, certificate: Certificate, tls_material: TLSMaterial, namespace: str
    ) -> None:
        secret = build_tls_secret(tls_material, certificate, namespace)
        try:
            set_owner_reference(certificate, secret)
        except OwnerReferenceError as e:
            raise self._fail(
                certificate,
                ConditionReason.SET_OWNER_REF_FAILED,
                e,
                f"failed to set owner reference for secret {secret.metadata.name}: {e}",
            ) from e

        try:
            create_or_update_tls_secret(self.store, secret)
        except ClusterError as e:
            raise self._fail(
                certificate,
                ConditionReason.CREATE_OR_UPDATE_TLS_SECRET_FAILED,
                e,
                f"failed to create or update tls secret: {e}",
            ) from e

        certificate.status.secret_name = certificate.spec.secret_name
        try:
            self._write_status(certificate)
        except ClusterError as e:
            raise self._fail(
                certificate,
                ConditionReason.STATUS_UPDATE_FAILED,
                e,
                f"failed to update Certificate status: {e}",
            ) from e
