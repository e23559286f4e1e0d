"""Outcome taxonomy for one logical request."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING

from rpcstress._internal.errors import (
    EnvelopeDecodeError,
    HttpStatusError,
    RpcTimeoutError,
)

if TYPE_CHECKING:
    from rpcstress._internal.errors import TransportError
    from rpcstress.rpc.client import RpcEnvelope


class OutcomeKind(Enum):
    """Closed set of request outcomes."""

    SUCCESS = auto()
    RPC_ERROR = auto()
    HTTP_ERROR = auto()
    TIMEOUT = auto()
    DECODE_ERROR = auto()
    NETWORK_ERROR = auto()


@dataclass(frozen=True)
class RequestOutcome:
    """Result of one logical request, as charged to the statistics.

    Attributes:
        kind: Outcome category.
        latency_us: End-to-end latency in microseconds. Only meaningful
            for ``SUCCESS``.
        status: HTTP status code for ``HTTP_ERROR``, 0 otherwise.
        reason: HTTP reason phrase for ``HTTP_ERROR``, empty otherwise.
        detail: Free-form description used for debug logging.
    """

    kind: OutcomeKind
    latency_us: int = 0
    status: int = 0
    reason: str = ""
    detail: str = ""

    @classmethod
    def success(cls, latency_us: int = 0) -> RequestOutcome:
        return cls(OutcomeKind.SUCCESS, latency_us=latency_us)

    @classmethod
    def rpc_error(cls, detail: str = "") -> RequestOutcome:
        return cls(OutcomeKind.RPC_ERROR, detail=detail)

    @classmethod
    def http_error(cls, status: int, reason: str) -> RequestOutcome:
        return cls(OutcomeKind.HTTP_ERROR, status=status, reason=reason)

    @property
    def is_success(self) -> bool:
        """Return True for the ``SUCCESS`` outcome."""
        return self.kind is OutcomeKind.SUCCESS

    def with_latency(self, latency_us: int) -> RequestOutcome:
        """Return a copy carrying the given latency."""
        return RequestOutcome(
            kind=self.kind,
            latency_us=latency_us,
            status=self.status,
            reason=self.reason,
            detail=self.detail,
        )


def classify_envelope(envelope: RpcEnvelope) -> RequestOutcome:
    """Map a decoded envelope to ``SUCCESS`` or ``RPC_ERROR``.

    Args:
        envelope: Decoded JSON-RPC response.

    Returns:
        The outcome, with zero latency. The caller attaches the latency.
    """
    if envelope.error is not None:
        return RequestOutcome.rpc_error(
            detail=f"code={envelope.error.code} message={envelope.error.message}",
        )
    return RequestOutcome.success()


def classify_failure(exc: TransportError) -> RequestOutcome:
    """Map a transport failure to its outcome.

    Args:
        exc: Failure raised by ``RpcClient.send``.

    Returns:
        ``HTTP_ERROR``, ``TIMEOUT``, ``DECODE_ERROR`` or ``NETWORK_ERROR``.
    """
    if isinstance(exc, HttpStatusError):
        return RequestOutcome.http_error(exc.status, exc.reason)
    if isinstance(exc, RpcTimeoutError):
        return RequestOutcome(OutcomeKind.TIMEOUT, detail=str(exc))
    if isinstance(exc, EnvelopeDecodeError):
        return RequestOutcome(OutcomeKind.DECODE_ERROR, detail=str(exc))
    return RequestOutcome(OutcomeKind.NETWORK_ERROR, detail=str(exc))
