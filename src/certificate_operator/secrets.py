"""Build, own and upsert the TLS Secret produced for a Certificate."""

from certificate_operator._logging import get_logger, get_resource_extra
from certificate_operator.cluster.base import ClusterStore
from certificate_operator.exceptions import ClusterError, NotFoundError, OwnerReferenceError
from certificate_operator.models import (
    API_GROUP,
    CERTIFICATE_KIND,
    SECRET_TYPE_TLS,
    TLS_CERT_KEY,
    TLS_PRIVATE_KEY_KEY,
    Certificate,
    ObjectMeta,
    OwnerReference,
    Secret,
    TLSMaterial,
)

logger = get_logger(__name__)


def build_tls_secret(tls_material: TLSMaterial, certificate: Certificate, namespace: str) -> Secret:
    """Build the TLS Secret for a Certificate.

    Args:
        tls_material: Decoded certificate and private key.
        certificate: Owner Certificate; its desired secret name is used.
        namespace: Namespace being reconciled.

    Returns:
        An unsaved Secret of type kubernetes.io/tls.
    """
    return Secret(
        metadata=ObjectMeta(name=certificate.spec.secret_name, namespace=namespace),
        type=SECRET_TYPE_TLS,
        data={
            TLS_CERT_KEY: tls_material.certificate_bytes,
            TLS_PRIVATE_KEY_KEY: tls_material.private_key_bytes,
        },
    )


def _group(api_version: str) -> str:
    return api_version.split("/", 1)[0] if "/" in api_version else ""


def set_owner_reference(owner: Certificate, secret: Secret) -> None:
    """Make the Certificate an owner of the Secret.

    An existing reference to the same owner (group, kind and name) is
    replaced; otherwise the reference is appended.

    Raises:
        OwnerReferenceError: If the Secret lives in another namespace.
    """
    owner_namespace = owner.metadata.namespace or ""
    secret_namespace = secret.metadata.namespace or ""
    if owner_namespace != secret_namespace:
        raise OwnerReferenceError(
            "cross-namespace owner references are disallowed, "
            f"owner's namespace {owner_namespace}, obj's namespace {secret_namespace}"
        )

    reference = OwnerReference(
        api_version=owner.api_version,
        kind=owner.kind,
        name=owner.metadata.name,
        uid=owner.metadata.uid or "",
    )
    references = secret.metadata.owner_references
    for index, existing in enumerate(references):
        if (
            _group(existing.api_version) == _group(reference.api_version)
            and existing.kind == reference.kind
            and existing.name == reference.name
        ):
            references[index] = reference
            return
    references.append(reference)


def create_or_update_tls_secret(store: ClusterStore, secret: Secret) -> Secret:
    """Create the Secret, or overwrite the data of the existing one.

    Only the data of an existing Secret is replaced; its labels,
    annotations and owner references are left as they are.

    Args:
        store: Cluster store.
        secret: Desired Secret.

    Returns:
        The Secret as stored.

    Raises:
        ClusterError: If the Secret cannot be read, created or updated.
    """
    name = secret.metadata.name
    namespace = secret.metadata.namespace

    try:
        existing = store.get_secret(namespace, name)
    except NotFoundError:
        try:
            created = store.create_secret(secret)
        except ClusterError as e:
            raise ClusterError(
                f'cannot create secret "{name}" in the namespace "{namespace}": {e}'
            ) from e
        logger.info("TLS secret created", extra={"secret": name, **get_resource_extra()})
        return created
    except ClusterError as e:
        raise ClusterError(f'cannot get secret "{name}" in the namespace "{namespace}": {e}') from e

    existing.data = dict(secret.data)
    try:
        updated = store.update_secret(existing)
    except ClusterError as e:
        raise ClusterError(
            f'cannot update secret "{name}" in the namespace "{namespace}": {e}'
        ) from e

    logger.info("TLS secret updated", extra={"secret": name, **get_resource_extra()})
    return updated


def certificate_owner_name(metadata: ObjectMeta) -> str | None:
    """Return the name of the Certificate owning an object, if any."""
    for reference in metadata.owner_references:
        if _group(reference.api_version) == API_GROUP and reference.kind == CERTIFICATE_KIND:
            return reference.name
    return None
