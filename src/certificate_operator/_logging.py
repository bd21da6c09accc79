"""Logging utilities for certificate_operator."""

import logging
import sys
import time
from contextvars import ContextVar, Token

# NullHandler on root logger (library best practice)
_root = logging.getLogger("certificate_operator")
_root.addHandler(logging.NullHandler())

# Resource being reconciled by the current worker, as (namespace, name)
_current_resource: ContextVar[tuple[str | None, str] | None] = ContextVar(
    "current_resource", default=None
)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def set_resource(namespace: str | None, name: str) -> Token[tuple[str | None, str] | None]:
    """Set the resource being reconciled for logging context.

    Args:
        namespace: Namespace of the resource (None for cluster-scoped).
        name: Name of the resource.

    Returns:
        Token to reset the context.
    """
    return _current_resource.set((namespace, name))


def reset_resource(token: Token[tuple[str | None, str] | None]) -> None:
    """Reset resource context.

    Args:
        token: Token from set_resource() call.
    """
    _current_resource.reset(token)


def get_resource_extra() -> dict[str, str]:
    """Get resource info for log extra fields.

    Returns:
        Dict with 'resource' and, for namespaced resources, 'namespace'.
        Empty dict when no reconcile is in progress.
    """
    resource = _current_resource.get()
    if resource is None:
        return {}
    namespace, name = resource
    if namespace is None:
        return {"resource": name}
    return {"namespace": namespace, "resource": name}


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the certificate_operator namespace.

    Args:
        name: The module name (typically __name__).

    Returns:
        A logger instance for the module.
    """
    return logging.getLogger(name)


def configure_logging(level: str = "INFO") -> None:
    """Attach a stream handler to the certificate_operator logger.

    Only meant for process entry points; library code never calls it.

    Args:
        level: Level name such as "DEBUG" or "INFO".
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    _root.addHandler(handler)
    _root.setLevel(level.upper())


class Timer:
    """Context manager for timing operations.

    Usage:
        with Timer() as t:
            # do work
        print(f"Elapsed: {t.elapsed_ms}ms")
    """

    def __init__(self) -> None:
        self.elapsed_ms: float = 0
        self._start: float = 0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, *args: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000
