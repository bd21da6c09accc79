"""Access to cluster-held objects."""

from certificate_operator.cluster.base import ClusterStore
from certificate_operator.cluster.kube import KubernetesClusterStore

__all__ = ["ClusterStore", "KubernetesClusterStore"]
