"""Operator process settings loaded from environment variables."""

import os
from collections.abc import Mapping

from pydantic import BaseModel, Field, ValidationError, field_validator

from certificate_operator.exceptions import ConfigurationError

ENV_PREFIX = "CERTIFICATE_OPERATOR_"

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class OperatorSettings(BaseModel):
    """Settings of the operator process.

    Attributes:
        log_level: Level of the certificate_operator logger.
        resync_interval: Seconds between periodic reconciles of a Certificate.
        max_workers: Upper bound on concurrently running handlers.
        skip_tls_verify: Reach the issuance service without verifying its
            TLS certificate.
        not_found_requeue: Seconds to wait before retrying after the
            issuance service reported the certificate as not found.
    """

    log_level: str = "INFO"
    resync_interval: float = Field(default=300.0, gt=0)
    max_workers: int = Field(default=4, ge=1)
    skip_tls_verify: bool = True
    not_found_requeue: float = Field(default=5.0, gt=0)

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"unknown log level {value!r}")
        return level

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "OperatorSettings":
        """Load settings from CERTIFICATE_OPERATOR_* environment variables.

        Args:
            environ: Mapping to read instead of os.environ.

        Raises:
            ConfigurationError: If a variable holds an invalid value.
        """
        environ = os.environ if environ is None else environ
        values = {}
        for field_name in cls.model_fields:
            key = f"{ENV_PREFIX}{field_name.upper()}"
            if key in environ:
                values[field_name] = environ[key]

        try:
            return cls.model_validate(values)
        except ValidationError as e:
            details = "; ".join(
                f"{ENV_PREFIX}{str(error['loc'][0]).upper()}: {error['msg']}"
                for error in e.errors()
            )
            raise ConfigurationError(f"invalid operator settings: {details}") from e
