"""kopf handlers wiring the reconcilers into the Kubernetes event loop.

Run with:

    kopf run -m certificate_operator.operator --all-namespaces
"""

from functools import partial
from typing import Any

import kopf
from kubernetes import client
from kubernetes import config as kube_config

from certificate_operator._logging import configure_logging, get_logger
from certificate_operator.clients.certapi import new_client_from_config
from certificate_operator.cluster.kube import KubernetesClusterStore
from certificate_operator.config_reconciler import CertificateConfigReconciler
from certificate_operator.exceptions import CertificatesExistError, RequeueAfterError
from certificate_operator.models import (
    API_GROUP,
    API_VERSION,
    CERTIFICATE_CONFIG_PLURAL,
    CERTIFICATE_PLURAL,
    ObjectMeta,
)
from certificate_operator.reconciler import CertificateReconciler
from certificate_operator.secrets import certificate_owner_name
from certificate_operator.settings import OperatorSettings

logger = get_logger(__name__)

SETTINGS = OperatorSettings.from_env()

# Retry delay while dependent Certificates block a CertificateConfig deletion
CERTIFICATES_EXIST_DELAY = 30


def _load_api_client() -> client.ApiClient:
    try:
        kube_config.load_incluster_config()
    except kube_config.ConfigException:
        kube_config.load_kube_config()
    return client.ApiClient()


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, memo: kopf.Memo, **_: Any) -> None:
    configure_logging(SETTINGS.log_level)
    settings.execution.max_workers = SETTINGS.max_workers

    store = KubernetesClusterStore(_load_api_client())
    memo.certificate_reconciler = CertificateReconciler(
        store,
        client_builder=partial(new_client_from_config, skip_tls_verify=SETTINGS.skip_tls_verify),
        not_found_requeue=SETTINGS.not_found_requeue,
    )
    memo.config_reconciler = CertificateConfigReconciler(store)

    logger.info(
        "Certificate operator started",
        extra={
            "max_workers": SETTINGS.max_workers,
            "resync_interval": SETTINGS.resync_interval,
            "skip_tls_verify": SETTINGS.skip_tls_verify,
        },
    )


def _reconcile_certificate(memo: kopf.Memo, namespace: str, name: str) -> None:
    reconciler: CertificateReconciler = memo.certificate_reconciler
    try:
        reconciler.reconcile(namespace, name)
    except RequeueAfterError as e:
        raise kopf.TemporaryError(str(e), delay=e.delay) from e


# ---------------------------------------------------------------------------
# Certificate
# ---------------------------------------------------------------------------


@kopf.on.create(API_GROUP, API_VERSION, CERTIFICATE_PLURAL)
@kopf.on.update(API_GROUP, API_VERSION, CERTIFICATE_PLURAL)
@kopf.on.resume(API_GROUP, API_VERSION, CERTIFICATE_PLURAL)
def certificate_changed(namespace: str, name: str, memo: kopf.Memo, **_: Any) -> None:
    """Reconcile a Certificate whose spec changed."""
    _reconcile_certificate(memo, namespace, name)


@kopf.timer(API_GROUP, API_VERSION, CERTIFICATE_PLURAL, interval=SETTINGS.resync_interval)
def certificate_resync(namespace: str, name: str, memo: kopf.Memo, **_: Any) -> None:
    """Periodic reconcile, so renewals happen without spec changes."""
    _reconcile_certificate(memo, namespace, name)


def _owned_by_certificate(body: kopf.Body, **_: Any) -> bool:
    metadata = ObjectMeta.model_validate(dict(body.get("metadata", {})))
    return certificate_owner_name(metadata) is not None


@kopf.on.event("v1", "secrets", when=_owned_by_certificate)
def owned_secret_event(
    type: str, body: kopf.Body, namespace: str, memo: kopf.Memo, **_: Any
) -> None:
    """Recreate the TLS Secret of a Certificate when it is deleted."""
    if type != "DELETED":
        return
    owner = certificate_owner_name(ObjectMeta.model_validate(dict(body["metadata"])))
    if owner is None:
        return
    logger.info(
        "Owned secret deleted",
        extra={"namespace": namespace, "secret": body["metadata"]["name"], "resource": owner},
    )
    _reconcile_certificate(memo, namespace, owner)


# ---------------------------------------------------------------------------
# CertificateConfig
# ---------------------------------------------------------------------------


def _reconcile_config(memo: kopf.Memo, name: str) -> None:
    reconciler: CertificateConfigReconciler = memo.config_reconciler
    try:
        reconciler.reconcile(name)
    except CertificatesExistError as e:
        raise kopf.TemporaryError(str(e), delay=CERTIFICATES_EXIST_DELAY) from e


@kopf.on.create(API_GROUP, API_VERSION, CERTIFICATE_CONFIG_PLURAL)
@kopf.on.update(API_GROUP, API_VERSION, CERTIFICATE_CONFIG_PLURAL)
@kopf.on.resume(API_GROUP, API_VERSION, CERTIFICATE_CONFIG_PLURAL)
def config_changed(name: str, memo: kopf.Memo, **_: Any) -> None:
    """Keep the dependency finalizer on a CertificateConfig."""
    _reconcile_config(memo, name)


@kopf.on.delete(API_GROUP, API_VERSION, CERTIFICATE_CONFIG_PLURAL, optional=True)
def config_deleted(name: str, memo: kopf.Memo, **_: Any) -> None:
    """Release the dependency finalizer once no Certificate references the config."""
    _reconcile_config(memo, name)
