"""Certificate operator - issues TLS certificates from the Cert API into Kubernetes Secrets."""

from certificate_operator.clients import CertApiClient, IssuanceClient, new_client_from_config
from certificate_operator.cluster import ClusterStore, KubernetesClusterStore
from certificate_operator.config_reconciler import CertificateConfigReconciler
from certificate_operator.reconciler import CertificateReconciler, ReconcileOutcome

__all__ = [
    "CertApiClient",
    "CertificateConfigReconciler",
    "CertificateReconciler",
    "ClusterStore",
    "IssuanceClient",
    "KubernetesClusterStore",
    "ReconcileOutcome",
    "new_client_from_config",
]
__version__ = "0.1.0"
