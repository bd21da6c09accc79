"""Clients for the external certificate issuance service."""

from certificate_operator.clients.base import ClientBuilder, IssuanceClient
from certificate_operator.clients.certapi import (
    CertApiClient,
    new_client_from_config,
    parse_credentials,
)

__all__ = [
    "CertApiClient",
    "ClientBuilder",
    "IssuanceClient",
    "new_client_from_config",
    "parse_credentials",
]
