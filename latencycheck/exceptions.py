"""Exception hierarchy for latencycheck.

Every stage failure is fatal for the run::

    LatencyCheckError (base)
    ├── ResolutionError
    ├── ConnectionError
    ├── HandshakeError
    ├── TransferError
    └── StageTimeoutError

``ConnectionError`` deliberately shares its name with the builtin; import it
qualified (``exceptions.ConnectionError``) where the builtin is also in play.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "LatencyCheckError",
    "ResolutionError",
    "ConnectionError",
    "HandshakeError",
    "TransferError",
    "StageTimeoutError",
]


class LatencyCheckError(Exception):
    """Base class for all pipeline failures."""

    stage = "pipeline"

    def __init__(
        self,
        message: str,
        host: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.host = host
        self.cause = cause

    def __str__(self) -> str:
        if self.cause is not None and str(self.cause):
            return f"{self.message}: {self.cause}"
        return self.message


class ResolutionError(LatencyCheckError):
    """The hostname could not be resolved."""

    stage = "resolve"


class ConnectionError(LatencyCheckError):  # noqa: A001
    """The TCP connection could not be established."""

    stage = "connect"


class HandshakeError(LatencyCheckError):
    """The TLS handshake failed (certificate, protocol, reset)."""

    stage = "handshake"


class TransferError(LatencyCheckError):
    """The HTTP request or body read failed."""

    stage = "transfer"


class StageTimeoutError(LatencyCheckError):
    """A stage exceeded its deadline."""

    def __init__(self, stage: str, timeout: float, host: Optional[str] = None):
        super().__init__(f"{stage} stage timed out after {timeout:g}s", host=host)
        self.stage = stage
        self.timeout = timeout
