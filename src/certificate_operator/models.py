"""Pydantic models for Certificate resources and the issuance API."""

import re
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_serializer, field_validator

from certificate_operator.exceptions import TimestampParseError

API_GROUP = "cert.dana.io"
API_VERSION = "v1alpha1"
CERTIFICATE_KIND = "Certificate"
CERTIFICATE_PLURAL = "certificates"
CERTIFICATE_CONFIG_KIND = "CertificateConfig"
CERTIFICATE_CONFIG_PLURAL = "certificateconfigs"

CONDITION_ERROR = "Error"

SECRET_TYPE_TLS = "kubernetes.io/tls"
TLS_CERT_KEY = "tls.crt"
TLS_PRIVATE_KEY_KEY = "tls.key"
CREDENTIALS_KEY = "credentials"

DEFAULT_WAIT_TIMEOUT = 60.0  # seconds
DEFAULT_FORM = "pfx"

# Fixed timestamp format used by the issuance service (no zone, no fraction)
WIRE_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"
_WIRE_TIME_SHAPE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}T[0-9]{2}:[0-9]{2}:[0-9]{2}")

_DURATION_PART = re.compile(r"([0-9]+(?:\.[0-9]*)?|\.[0-9]+)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


# =============================================================================
# Enums
# =============================================================================


class ConditionReason(StrEnum):
    """Reasons recorded on the singleton Error condition."""

    CONFIG_RETRIEVAL_FAILED = "ConfigRetrievalFailed"
    POST_TO_CERT_API_FAILED = "PostToCertAPIFailed"
    GET_CERT_DATA_FROM_CERT_API_FAILED = "GetCertDataFromCertAPIFailed"
    STATUS_UPDATE_FAILED = "StatusUpdateFailed"
    PARSE_VALID_TO_FAILED = "ParseValidToFailed"
    PARSE_VALID_FROM_FAILED = "ParseValidFromFailed"
    SET_OWNER_REF_FAILED = "SetOwnerRefFailed"
    DOWNLOAD_CERT_FROM_CERT_API_FAILED = "DownloadCertFromCertAPIFailed"
    DECODE_CERT_FAILED = "DecodeCertFailed"
    CREATE_OR_UPDATE_TLS_SECRET_FAILED = "CreateOrUpdateTLSSecretFailed"


class ConditionStatus(StrEnum):
    """Kubernetes condition statuses."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


# =============================================================================
# Helpers
# =============================================================================


def format_time(value: datetime | None) -> str | None:
    """Format a datetime as an RFC 3339 UTC timestamp (Kubernetes style)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_wire_time(value: str) -> datetime:
    """Parse a timestamp in the issuance service format.

    The format is exactly YYYY-MM-DDTHH:MM:SS. The value is interpreted
    as UTC.

    Args:
        value: Timestamp string from the service.

    Returns:
        Timezone-aware datetime in UTC.

    Raises:
        TimestampParseError: If the value does not have the exact shape
            or is not a valid calendar time.
    """
    if not _WIRE_TIME_SHAPE.fullmatch(value):
        raise TimestampParseError(f'cannot parse "{value}" as "YYYY-MM-DDTHH:MM:SS"')
    try:
        parsed = datetime.strptime(value, WIRE_TIME_FORMAT)
    except ValueError as e:
        raise TimestampParseError(f'cannot parse "{value}" as "YYYY-MM-DDTHH:MM:SS": {e}') from e
    return parsed.replace(tzinfo=UTC)


def parse_duration(value: str) -> float:
    """Parse a Kubernetes duration string ("90s", "1m30s", "1h") into seconds.

    Raises:
        ValueError: If the string is not a valid duration.
    """
    text = value.strip()
    if text == "0":
        return 0.0

    total = 0.0
    position = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()

    if position == 0 or position != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    return total


# =============================================================================
# Kubernetes object metadata
# =============================================================================


class OwnerReference(BaseModel):
    """Back-reference from a dependent object to its owner."""

    api_version: str = Field(alias="apiVersion")
    kind: str
    name: str
    uid: str
    controller: bool | None = None
    block_owner_deletion: bool | None = Field(default=None, alias="blockOwnerDeletion")

    model_config = {"populate_by_name": True}


class ObjectMeta(BaseModel):
    """Subset of Kubernetes ObjectMeta used by the operator."""

    name: str
    namespace: str | None = None
    uid: str | None = None
    resource_version: str | None = Field(default=None, alias="resourceVersion")
    generation: int | None = None
    labels: dict[str, str] | None = None
    annotations: dict[str, str] | None = None
    owner_references: list[OwnerReference] = Field(default_factory=list, alias="ownerReferences")
    finalizers: list[str] = Field(default_factory=list)
    deletion_timestamp: datetime | None = Field(default=None, alias="deletionTimestamp")

    model_config = {"populate_by_name": True}

    @field_validator("owner_references", "finalizers", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_serializer("deletion_timestamp")
    def _serialize_deletion_timestamp(self, value: datetime | None) -> str | None:
        return format_time(value)


# =============================================================================
# Certificate resource
# =============================================================================


class Subject(BaseModel):
    """Subject of the requested certificate."""

    common_name: str = Field(default="", alias="commonName")
    country: str = ""
    state: str = ""
    locality: str = ""
    organization: str = ""
    organizational_unit: str = Field(default="", alias="organizationUnit")

    model_config = {"populate_by_name": True}


class San(BaseModel):
    """Subject Alternative Names of the requested certificate."""

    dns: list[str] = Field(default_factory=list)
    ips: list[str] = Field(default_factory=list)


class CertificateData(BaseModel):
    """Data sent to the issuance service to create a certificate."""

    subject: Subject = Field(default_factory=Subject)
    san: San = Field(default_factory=San)
    template: str = ""
    form: str = DEFAULT_FORM


class ConfigReference(BaseModel):
    """Reference to the cluster-scoped CertificateConfig."""

    name: str = ""


class CertificateSpec(BaseModel):
    """Desired state of a Certificate."""

    certificate_data: CertificateData = Field(
        default_factory=CertificateData, alias="certificateData"
    )
    secret_name: str = Field(default="", alias="secretName")
    config_ref: ConfigReference = Field(default_factory=ConfigReference, alias="configRef")

    model_config = {"populate_by_name": True}


class Condition(BaseModel):
    """A typed, reason-coded status entry."""

    type: str
    status: ConditionStatus
    reason: str
    message: str = ""
    last_transition_time: datetime | None = Field(default=None, alias="lastTransitionTime")
    observed_generation: int | None = Field(default=None, alias="observedGeneration")

    model_config = {"populate_by_name": True}

    @field_serializer("last_transition_time")
    def _serialize_last_transition_time(self, value: datetime | None) -> str | None:
        return format_time(value)


class CertificateStatus(BaseModel):
    """Observed state of a Certificate.

    Conditions are held as a mapping keyed by condition type, so at most
    one condition of each type exists. They are emitted as a list in
    insertion order.
    """

    conditions: dict[str, Condition] = Field(default_factory=dict)
    valid_from: datetime | None = Field(default=None, alias="validFrom")
    valid_to: datetime | None = Field(default=None, alias="validTo")
    issuer: str | None = None
    guid: str | None = None
    signature_hash_algorithm: str | None = Field(default=None, alias="signatureHashAlgorithm")
    secret_name: str | None = Field(default=None, alias="secretName")

    model_config = {"populate_by_name": True}

    @field_validator("conditions", mode="before")
    @classmethod
    def _index_conditions(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, list):
            indexed: dict[str, Any] = {}
            for item in value:
                condition_type = item["type"] if isinstance(item, dict) else item.type
                indexed[condition_type] = item
            return indexed
        return value

    @field_serializer("conditions")
    def _serialize_conditions(self, conditions: dict[str, Condition]) -> list[Condition]:
        return list(conditions.values())

    @field_serializer("valid_from", "valid_to")
    def _serialize_validity(self, value: datetime | None) -> str | None:
        return format_time(value)

    def get_condition(self, condition_type: str) -> Condition | None:
        """Return the condition of the given type, if present."""
        return self.conditions.get(condition_type)

    def set_condition(self, condition: Condition, now: datetime | None = None) -> None:
        """Add or replace the condition of the same type.

        The last transition time only moves when the status changes.
        """
        existing = self.conditions.get(condition.type)
        if existing is not None and existing.status == condition.status:
            transition_time = existing.last_transition_time
        else:
            transition_time = None
        if transition_time is None:
            transition_time = condition.last_transition_time or now or datetime.now(UTC)
        self.conditions[condition.type] = condition.model_copy(
            update={"last_transition_time": transition_time}
        )

    def remove_condition(self, condition_type: str) -> bool:
        """Remove the condition of the given type.

        Returns:
            True if a condition was removed.
        """
        return self.conditions.pop(condition_type, None) is not None

    def set_validity(
        self, valid_from: datetime, valid_to: datetime, signature_hash_algorithm: str
    ) -> None:
        """Record the validity window returned by the issuance service."""
        self.valid_from = valid_from
        self.valid_to = valid_to
        self.signature_hash_algorithm = signature_hash_algorithm


class Certificate(BaseModel):
    """The Certificate custom resource."""

    api_version: str = Field(default=f"{API_GROUP}/{API_VERSION}", alias="apiVersion")
    kind: str = CERTIFICATE_KIND
    metadata: ObjectMeta
    spec: CertificateSpec = Field(default_factory=CertificateSpec)
    status: CertificateStatus = Field(default_factory=CertificateStatus)

    model_config = {"populate_by_name": True}

    @field_validator("spec", "status", mode="before")
    @classmethod
    def _none_as_default(cls, value: Any) -> Any:
        return {} if value is None else value


# =============================================================================
# CertificateConfig resource
# =============================================================================


class SecretRef(BaseModel):
    """Reference to the Secret holding issuance service credentials."""

    name: str
    namespace: str


class CertificateConfigSpec(BaseModel):
    """Desired state of a CertificateConfig."""

    secret_ref: SecretRef = Field(alias="secretRef")
    days_before_renewal: int = Field(alias="daysBeforeRenewal")
    wait_timeout: str | None = Field(default=None, alias="waitTimeout")
    force_expiration_update: bool = Field(default=False, alias="forceExpirationUpdate")

    model_config = {"populate_by_name": True}

    @field_validator("wait_timeout")
    @classmethod
    def _check_wait_timeout(cls, value: str | None) -> str | None:
        if value is not None:
            parse_duration(value)
        return value

    @property
    def timeout_seconds(self) -> float | None:
        """Request timeout for the issuance service, in seconds.

        A zero duration disables the timeout and yields None.
        """
        if self.wait_timeout is None:
            return DEFAULT_WAIT_TIMEOUT
        return parse_duration(self.wait_timeout) or None


class CertificateConfig(BaseModel):
    """The cluster-scoped CertificateConfig custom resource."""

    api_version: str = Field(default=f"{API_GROUP}/{API_VERSION}", alias="apiVersion")
    kind: str = CERTIFICATE_CONFIG_KIND
    metadata: ObjectMeta
    spec: CertificateConfigSpec

    model_config = {"populate_by_name": True}

    @property
    def is_being_deleted(self) -> bool:
        """True once the API server has marked the object for deletion."""
        return self.metadata.deletion_timestamp is not None


# =============================================================================
# Secrets and credentials
# =============================================================================


class Secret(BaseModel):
    """A Kubernetes Secret with data already base64-decoded."""

    metadata: ObjectMeta
    type: str = "Opaque"
    data: dict[str, bytes] = Field(default_factory=dict)

    @field_validator("data", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return {} if value is None else value


class Credentials(BaseModel):
    """Issuance service credentials stored in the referenced Secret."""

    api_endpoint: str = Field(default="", alias="apiEndpoint")
    download_endpoint: str = Field(default="", alias="downloadEndpoint")
    token: str = ""

    model_config = {"populate_by_name": True}


class TLSMaterial(BaseModel):
    """PEM-encoded certificate and private key decoded from an archive."""

    certificate_bytes: bytes
    private_key_bytes: bytes

    model_config = {"frozen": True}


# =============================================================================
# Issuance service wire format
# =============================================================================


class IssueSubject(BaseModel):
    """Subject as sent to the issuance service."""

    common_name: str = Field(default="", alias="commonName")
    country: str = ""
    state: str = ""
    locality: str = ""
    organization: str = ""
    organizational_unit: str = Field(default="", alias="organizationalUnit")

    model_config = {"populate_by_name": True}


class IssueRequest(BaseModel):
    """Body of the certificate creation request."""

    subject: IssueSubject
    san: San
    template: str = ""

    @classmethod
    def from_certificate_data(cls, data: CertificateData) -> "IssueRequest":
        """Derive the creation request from a Certificate's desired data."""
        return cls(
            subject=IssueSubject.model_validate(data.subject.model_dump()),
            san=data.san.model_copy(deep=True),
            template=data.template,
        )

    def to_body(self) -> dict[str, Any]:
        """Render the JSON body, omitting empty fields."""
        subject = self.subject.model_dump(by_alias=True)
        san = self.san.model_dump()
        body: dict[str, Any] = {
            "subject": {key: value for key, value in subject.items() if value},
            "san": {key: value for key, value in san.items() if value},
        }
        if self.template:
            body["template"] = self.template
        return body


class IssueResponse(BaseModel):
    """Response to the certificate creation request."""

    task_id: str = Field(alias="taskId")

    model_config = {"populate_by_name": True}


class ValidityResponse(BaseModel):
    """Validity data of an issued certificate."""

    valid_to: str = Field(default="", alias="validTo")
    valid_from: str = Field(default="", alias="validFrom")
    signature_hash_algorithm: str = Field(default="", alias="signatureHashAlgorithm")

    model_config = {"populate_by_name": True}


class DownloadResponse(BaseModel):
    """Downloaded certificate archive."""

    form: str = ""
    format: str = ""
    data: str = ""
    password: str = ""
