"""Custom exception hierarchy for rpcstress."""

from __future__ import annotations


class RpcStressError(Exception):
    """Base exception for all rpcstress errors.

    Every custom exception in the package inherits from this class, so a
    single ``except RpcStressError`` catches anything raised by rpcstress
    itself.
    """


class ConfigError(RpcStressError):
    """Raised when configuration is invalid or missing.

    Examples:
        - The configuration file does not exist or is not valid TOML.
        - A method entry requests zero workers.
        - The HTTP timeout is not positive.
    """


class EngineError(RpcStressError):
    """Raised when the load test engine fails unexpectedly."""


class DiagnosticError(RpcStressError):
    """Raised when the preliminary ping diagnostic cannot be performed."""


class TransportError(RpcStressError):
    """Base class for failures while sending a single JSON-RPC request.

    Transport errors are never fatal to a run. Workers catch them and
    convert them into a ``RequestOutcome``.
    """


class HttpStatusError(TransportError):
    """The server answered with a non-2xx HTTP status.

    Attributes:
        status: HTTP status code.
        reason: Reason phrase associated with the status.
    """

    def __init__(self, status: int, reason: str) -> None:
        super().__init__(f"HTTP {status} {reason}")
        self.status = status
        self.reason = reason


class RpcTimeoutError(TransportError):
    """The request exceeded the configured HTTP timeout."""


class EnvelopeDecodeError(TransportError):
    """The response body is not a valid JSON-RPC 2.0 envelope."""


class NetworkError(TransportError):
    """Any other transport failure (DNS, refused connection, TLS, reset)."""
