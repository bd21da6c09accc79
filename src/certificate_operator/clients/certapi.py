"""Issuance client for the Cert REST API."""

import json
from collections.abc import Mapping
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from certificate_operator._logging import Timer, get_logger, get_resource_extra
from certificate_operator.clients.base import IssuanceClient
from certificate_operator.exceptions import (
    ConfigurationError,
    MissingCredentialError,
    ProtocolError,
    TransportError,
    UnexpectedStatusError,
)
from certificate_operator.models import (
    CREDENTIALS_KEY,
    DEFAULT_WAIT_TIMEOUT,
    CertificateConfig,
    CertificateData,
    Credentials,
    DownloadResponse,
    IssueRequest,
    IssueResponse,
    ValidityResponse,
)

logger = get_logger(__name__)

ResponseT = TypeVar("ResponseT", bound=BaseModel)

ERR_POST_FAILED = "POST to cert failed"
ERR_GET_FAILED = "GET request to Cert API failed"
ERR_DOWNLOAD_FAILED = "download request to Cert API failed"
ERR_UNMARSHAL = "failed to unmarshal response body"


class CertApiClient(IssuanceClient):
    """Client for the Cert REST API.

    Every request carries a bearer token and asks for JSON. Requests are
    synchronous and bounded by the configured timeout. Only a 200
    response is a success.

    Args:
        api_endpoint: Base URL; the guid is appended directly to it.
        download_endpoint: Path segment between the guid and the form.
        token: Bearer token.
        timeout: Request timeout in seconds; None waits indefinitely.
        skip_tls_verify: Disable TLS certificate verification.
    """

    def __init__(
        self,
        api_endpoint: str,
        download_endpoint: str,
        token: str,
        timeout: float | None = DEFAULT_WAIT_TIMEOUT,
        skip_tls_verify: bool = True,
    ):
        self.api_endpoint = api_endpoint
        self.download_endpoint = download_endpoint
        self.token = token
        self.timeout = timeout
        self.skip_tls_verify = skip_tls_verify

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/json",
        }

    def _send(
        self,
        method: str,
        url: str,
        error_prefix: str,
        body: dict[str, Any] | None = None,
    ) -> str:
        """Send a request and return the body of a 200 response.

        Args:
            method: HTTP method.
            url: Full request URL.
            error_prefix: Operation description prepended to error text.
            body: Optional JSON body.

        Returns:
            The response body as text.

        Raises:
            TransportError: If the request could not be completed.
            UnexpectedStatusError: If the status is not 200.
        """
        try:
            with Timer() as timer:
                response = httpx.request(
                    method,
                    url,
                    headers=self._headers(),
                    json=body,
                    timeout=self.timeout,
                    verify=not self.skip_tls_verify,
                )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(
                "Cert API request failed",
                extra={"method": method, "url": url, "error": str(e), **get_resource_extra()},
            )
            raise TransportError(f'{error_prefix}: http request to "{url}" failed: {e}') from e

        logger.info(
            "Cert API request sent",
            extra={
                "method": method,
                "url": url,
                "status_code": response.status_code,
                "elapsed_ms": round(timer.elapsed_ms, 1),
                **get_resource_extra(),
            },
        )

        if response.status_code != httpx.codes.OK:
            status_text = httpx.codes.get_reason_phrase(response.status_code)
            status_text = status_text or f"status code {response.status_code}"
            logger.warning(
                "Cert API returned an error status",
                extra={"method": method, "url": url, "status_code": response.status_code},
            )
            raise UnexpectedStatusError(
                response.status_code,
                status_text,
                f"{error_prefix}: {status_text}",
            )

        return response.text

    def _parse(self, body: str, model: type[ResponseT]) -> ResponseT:
        """Parse a response body into the expected fixed-shape model.

        Raises:
            ProtocolError: If the body is not a JSON object or does not
                match the model.
        """
        try:
            payload = json.loads(body)
        except json.JSONDecodeError:
            payload = None

        if not isinstance(payload, dict):
            raise ProtocolError(f"{ERR_UNMARSHAL}: response body is not JSON")

        try:
            return model.model_validate(payload)
        except ValidationError as e:
            details = "; ".join(
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                for error in e.errors()
            )
            raise ProtocolError(f"{ERR_UNMARSHAL}: {details}") from e

    def issue(self, certificate_data: CertificateData) -> str:
        """Send the creation request and return the issued guid."""
        request = IssueRequest.from_certificate_data(certificate_data)
        body = self._send("POST", self.api_endpoint, ERR_POST_FAILED, body=request.to_body())
        response = self._parse(body, IssueResponse)

        logger.info(
            "Certificate requested",
            extra={"guid": response.task_id, **get_resource_extra()},
        )
        return response.task_id

    def fetch_validity(self, guid: str) -> ValidityResponse:
        """Read the validity window of the certificate identified by guid."""
        url = f"{self.api_endpoint}{guid}"
        body = self._send("GET", url, ERR_GET_FAILED)
        return self._parse(body, ValidityResponse)

    def download(self, guid: str, form: str) -> DownloadResponse:
        """Download the certificate archive identified by guid."""
        url = f"{self.api_endpoint}{guid}{self.download_endpoint}{form}"
        body = self._send("GET", url, ERR_DOWNLOAD_FAILED)
        return self._parse(body, DownloadResponse)


def parse_credentials(secret_data: Mapping[str, bytes]) -> Credentials:
    """Parse the credentials bundle stored in a Secret.

    The bundle is JSON under the "credentials" key with mandatory keys
    apiEndpoint, downloadEndpoint and token, checked in that order.

    Args:
        secret_data: Decoded data of the credentials Secret.

    Returns:
        The parsed credentials.

    Raises:
        ConfigurationError: If the bundle is absent or is not a JSON object
            of strings.
        MissingCredentialError: If a mandatory key is absent or empty.
    """
    raw = secret_data.get(CREDENTIALS_KEY)
    if raw is None:
        raise ConfigurationError(
            f"cannot unmarshal credentials as JSON: secret has no {CREDENTIALS_KEY!r} key"
        )

    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"cannot unmarshal credentials as JSON: {e}") from e

    if not isinstance(payload, dict):
        raise ConfigurationError("cannot unmarshal credentials as JSON: expected an object")

    try:
        credentials = Credentials.model_validate(payload)
    except ValidationError as e:
        raise ConfigurationError(f"cannot unmarshal credentials as JSON: {e}") from e

    if not credentials.api_endpoint:
        raise MissingCredentialError("apiEndpoint", "missing API Endpoint in secret")
    if not credentials.download_endpoint:
        raise MissingCredentialError("downloadEndpoint", "missing Download API Endpoint in secret")
    if not credentials.token:
        raise MissingCredentialError("token", "missing token in secret")

    return credentials


def new_client_from_config(
    config: CertificateConfig,
    secret_data: Mapping[str, bytes],
    skip_tls_verify: bool = True,
) -> CertApiClient:
    """Build a CertApiClient from a CertificateConfig and its credentials.

    Args:
        config: Configuration providing the request timeout.
        secret_data: Decoded data of the credentials Secret.
        skip_tls_verify: Disable TLS certificate verification.

    Returns:
        A client ready to talk to the Cert API.

    Raises:
        ConfigurationError: If the credentials are unusable.
    """
    credentials = parse_credentials(secret_data)
    return CertApiClient(
        api_endpoint=credentials.api_endpoint,
        download_endpoint=credentials.download_endpoint,
        token=credentials.token,
        timeout=config.spec.timeout_seconds,
        skip_tls_verify=skip_tls_verify,
    )
