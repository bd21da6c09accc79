"""Decoding of password-protected certificate archives (PKCS#12)."""

import base64

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12

from certificate_operator._logging import get_logger
from certificate_operator.exceptions import CastError, DecodeError
from certificate_operator.models import TLSMaterial

logger = get_logger(__name__)


def decode_archive(data: str, password: str) -> TLSMaterial:
    """Decode a base64-encoded PKCS#12 archive into PEM TLS material.

    The archive must contain an RSA private key and a leaf certificate.
    The certificate is re-encoded as a PEM "CERTIFICATE" block and the
    key as a PEM "RSA PRIVATE KEY" block (PKCS#1).

    Args:
        data: Base64 (standard alphabet) encoded archive. Line breaks
            are ignored.
        password: Archive password.

    Returns:
        TLSMaterial with PEM certificate and private key bytes.

    Raises:
        DecodeError: If the base64 payload or the archive is malformed,
            the password is wrong, or the key or certificate is missing.
        CastError: If the private key is not an RSA key.
    """
    try:
        archive = base64.b64decode(data.replace("\r", "").replace("\n", ""), validate=True)
    except ValueError as e:
        raise DecodeError(f"cannot decode base64-encoded PKCS#12 data: {e}") from e

    try:
        private_key, certificate, _ = pkcs12.load_key_and_certificates(
            archive,
            password.encode() or None,
        )
    except ValueError as e:
        raise DecodeError(f"cannot decode PKCS#12 data: {e}") from e

    if private_key is None or certificate is None:
        raise DecodeError(
            "cannot decode PKCS#12 data: archive must hold a private key and a certificate"
        )

    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise CastError("cannot cast to RSA Private Key")

    certificate_bytes = certificate.public_bytes(serialization.Encoding.PEM)
    private_key_bytes = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )

    logger.debug(
        "Archive decoded",
        extra={"serial_number": certificate.serial_number, "key_size": private_key.key_size},
    )
    return TLSMaterial(certificate_bytes=certificate_bytes, private_key_bytes=private_key_bytes)
