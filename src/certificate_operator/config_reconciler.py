"""Dependency finalizer for CertificateConfig resources."""

from certificate_operator._logging import (
    get_logger,
    get_resource_extra,
    reset_resource,
    set_resource,
)
from certificate_operator.cluster.base import ClusterStore
from certificate_operator.exceptions import (
    CertificatesExistError,
    ClusterError,
    NotFoundError,
    ReconcileError,
)
from certificate_operator.models import API_GROUP, CertificateConfig

logger = get_logger(__name__)

DEPENDENCIES_FINALIZER = f"{API_GROUP}/check-dependencies"


class CertificateConfigReconciler:
    """Blocks deletion of a CertificateConfig while Certificates use it.

    A finalizer is kept on every CertificateConfig. Once the config is
    marked for deletion the finalizer is only removed when no
    Certificate references the config any more.

    Args:
        store: Cluster store.
    """

    def __init__(self, store: ClusterStore):
        self.store = store

    def reconcile(self, name: str) -> None:
        """Reconcile one CertificateConfig.

        Args:
            name: Name of the cluster-scoped CertificateConfig.

        Raises:
            CertificatesExistError: If the config is being deleted while
                Certificates still reference it.
            ReconcileError: If the store could not be read or written.
        """
        token = set_resource(None, name)
        try:
            self._reconcile(name)
        finally:
            reset_resource(token)

    def _reconcile(self, name: str) -> None:
        try:
            config = self.store.get_certificate_config(name)
        except NotFoundError:
            logger.info("CertificateConfig no longer exists", extra=get_resource_extra())
            return
        except ClusterError as e:
            raise ReconcileError(f'failed to get CertificateConfig "{name}": {e}') from e

        secret_ref = config.spec.secret_ref
        try:
            self.store.get_secret(secret_ref.namespace, secret_ref.name)
        except ClusterError as e:
            raise ReconcileError(f"failed to get secret: {e}") from e

        if config.is_being_deleted:
            self._handle_delete(config)
        else:
            self._ensure_finalizer(config)

    def _ensure_finalizer(self, config: CertificateConfig) -> None:
        if DEPENDENCIES_FINALIZER in config.metadata.finalizers:
            return
        config.metadata.finalizers.append(DEPENDENCIES_FINALIZER)
        try:
            self.store.update_certificate_config_finalizers(config)
        except ClusterError as e:
            raise ReconcileError(
                "error occurred while setting the finalizers of the "
                f"CertificateConfig resource: {e}"
            ) from e
        logger.debug("Finalizer added", extra=get_resource_extra())

    def _handle_delete(self, config: CertificateConfig) -> None:
        logger.info(
            "Deletion detected, checking dependent Certificates", extra=get_resource_extra()
        )
        name = config.metadata.name
        try:
            certificates = self.store.list_certificates(name)
        except ClusterError as e:
            raise ReconcileError(f"failed to list Certificates: {e}") from e

        if certificates:
            logger.info(
                "Associated Certificates found",
                extra={"count": len(certificates), **get_resource_extra()},
            )
            raise CertificatesExistError(len(certificates))

        if DEPENDENCIES_FINALIZER not in config.metadata.finalizers:
            return
        config.metadata.finalizers.remove(DEPENDENCIES_FINALIZER)
        try:
            self.store.update_certificate_config_finalizers(config)
        except ClusterError as e:
            raise ReconcileError(
                "error occurred while deleting the finalizers of the CertificateConfig resource"
            ) from e
        logger.info(
            f"Cleaned up the {DEPENDENCIES_FINALIZER!r} finalizer", extra=get_resource_extra()
        )
