"""ClusterStore backed by the Kubernetes API."""

import base64
import json
from typing import Any

from kubernetes import client
from kubernetes.client import ApiException

from certificate_operator._logging import get_logger
from certificate_operator.cluster.base import ClusterStore
from certificate_operator.exceptions import ClusterError, ConflictError, NotFoundError
from certificate_operator.models import (
    API_GROUP,
    API_VERSION,
    CERTIFICATE_CONFIG_PLURAL,
    CERTIFICATE_PLURAL,
    Certificate,
    CertificateConfig,
    Secret,
)

logger = get_logger(__name__)


def _translate(error: ApiException, resource: str, name: str) -> ClusterError:
    """Map an ApiException onto the ClusterError hierarchy."""
    message = f"{error.status} {error.reason}"
    if error.body:
        try:
            message = json.loads(error.body).get("message", message)
        except (ValueError, AttributeError):
            pass

    if error.status == 404:
        return NotFoundError(f'{resource} "{name}" not found')
    if error.status == 409:
        return ConflictError(message)
    return ClusterError(message)


class KubernetesClusterStore(ClusterStore):
    """ClusterStore using the official kubernetes client.

    Certificates and CertificateConfigs are read and written as custom
    objects; Secrets through the core v1 API. Secret data is decoded
    from base64 on read and encoded on write.

    Args:
        api_client: Configured ApiClient; the default configuration is
            used when omitted.
    """

    def __init__(self, api_client: client.ApiClient | None = None):
        self._api_client = api_client or client.ApiClient()
        self._custom = client.CustomObjectsApi(self._api_client)
        self._core_v1 = client.CoreV1Api(self._api_client)

    # =========================================================================
    # Certificates
    # =========================================================================

    def get_certificate(self, namespace: str, name: str) -> Certificate:
        try:
            obj = self._custom.get_namespaced_custom_object(
                API_GROUP, API_VERSION, namespace, CERTIFICATE_PLURAL, name
            )
        except ApiException as e:
            raise _translate(e, CERTIFICATE_PLURAL, name) from e
        return Certificate.model_validate(obj)

    def list_certificates(self, config_name: str) -> list[Certificate]:
        try:
            result = self._custom.list_cluster_custom_object(
                API_GROUP, API_VERSION, CERTIFICATE_PLURAL
            )
        except ApiException as e:
            raise _translate(e, CERTIFICATE_PLURAL, "") from e

        certificates = [Certificate.model_validate(item) for item in result.get("items", [])]
        return [c for c in certificates if c.spec.config_ref.name == config_name]

    def update_certificate_status(self, certificate: Certificate) -> Certificate:
        body = certificate.model_dump(mode="json", by_alias=True, exclude_none=True)
        name = certificate.metadata.name
        try:
            obj = self._custom.replace_namespaced_custom_object_status(
                API_GROUP,
                API_VERSION,
                certificate.metadata.namespace,
                CERTIFICATE_PLURAL,
                name,
                body,
            )
        except ApiException as e:
            raise _translate(e, CERTIFICATE_PLURAL, name) from e

        logger.debug(
            "Certificate status written",
            extra={"namespace": certificate.metadata.namespace, "resource": name},
        )
        return Certificate.model_validate(obj)

    # =========================================================================
    # CertificateConfigs
    # =========================================================================

    def get_certificate_config(self, name: str) -> CertificateConfig:
        try:
            obj = self._custom.get_cluster_custom_object(
                API_GROUP, API_VERSION, CERTIFICATE_CONFIG_PLURAL, name
            )
        except ApiException as e:
            raise _translate(e, CERTIFICATE_CONFIG_PLURAL, name) from e
        return CertificateConfig.model_validate(obj)

    def update_certificate_config_finalizers(self, config: CertificateConfig) -> CertificateConfig:
        name = config.metadata.name
        body = {
            "metadata": {
                "finalizers": config.metadata.finalizers,
                "resourceVersion": config.metadata.resource_version,
            }
        }
        try:
            obj = self._custom.patch_cluster_custom_object(
                API_GROUP, API_VERSION, CERTIFICATE_CONFIG_PLURAL, name, body
            )
        except ApiException as e:
            raise _translate(e, CERTIFICATE_CONFIG_PLURAL, name) from e
        return CertificateConfig.model_validate(obj)

    # =========================================================================
    # Secrets
    # =========================================================================

    def _to_secret(self, obj: Any) -> Secret:
        data = self._api_client.sanitize_for_serialization(obj)
        return Secret.model_validate(
            {
                "metadata": data["metadata"],
                "type": data.get("type") or "Opaque",
                "data": {
                    key: base64.b64decode(value) for key, value in (data.get("data") or {}).items()
                },
            }
        )

    @staticmethod
    def _to_body(secret: Secret) -> dict[str, Any]:
        return {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": secret.metadata.model_dump(mode="json", by_alias=True, exclude_none=True),
            "type": secret.type,
            "data": {key: base64.b64encode(value).decode() for key, value in secret.data.items()},
        }

    def get_secret(self, namespace: str, name: str) -> Secret:
        try:
            obj = self._core_v1.read_namespaced_secret(name, namespace)
        except ApiException as e:
            raise _translate(e, "secrets", name) from e
        return self._to_secret(obj)

    def create_secret(self, secret: Secret) -> Secret:
        name = secret.metadata.name
        try:
            obj = self._core_v1.create_namespaced_secret(
                secret.metadata.namespace, self._to_body(secret)
            )
        except ApiException as e:
            raise _translate(e, "secrets", name) from e
        return self._to_secret(obj)

    def update_secret(self, secret: Secret) -> Secret:
        name = secret.metadata.name
        try:
            obj = self._core_v1.replace_namespaced_secret(
                name, secret.metadata.namespace, self._to_body(secret)
            )
        except ApiException as e:
            raise _translate(e, "secrets", name) from e
        return self._to_secret(obj)
