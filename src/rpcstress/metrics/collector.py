"""Shared, lock-minimal statistics collector for all workers."""

from __future__ import annotations

import threading
from collections import deque

import numpy as np

from rpcstress._internal.logging import get_logger
from rpcstress.metrics.models import Report
from rpcstress.rpc.outcome import OutcomeKind, RequestOutcome

logger = get_logger("metrics.collector")


class AtomicCounter:
    """Monotonic integer counter guarded by its own lock."""

    __slots__ = ("_lock", "_value")

    def __init__(self) -> None:
        self._value = 0
        self._lock = threading.Lock()

    def increment(self, amount: int = 1) -> None:
        """Add ``amount`` to the counter."""
        with self._lock:
            self._value += amount

    @property
    def value(self) -> int:
        """Return the current count."""
        with self._lock:
            return self._value


def _compute_latency_stats(
    latencies_us: list[int],
) -> tuple[float, float, float, float, float, float]:
    """Compute latency statistics from microsecond samples.

    Args:
        latencies_us: Latency samples in microseconds.

    Returns:
        Tuple of (avg, min, max, p50, p90, p99) in milliseconds.
    """
    if not latencies_us:
        return (0.0, 0.0, 0.0, 0.0, 0.0, 0.0)

    arr = np.array(latencies_us, dtype=np.float64) / 1000.0
    percentiles = np.percentile(arr, [50.0, 90.0, 99.0])

    return (
        float(np.mean(arr)),
        float(np.min(arr)),
        float(np.max(arr)),
        float(percentiles[0]),
        float(percentiles[1]),
        float(percentiles[2]),
    )


class StatsCollector:
    """Aggregates request outcomes from any number of concurrent workers.

    Every scalar field is an ``AtomicCounter`` so recording never takes a
    lock wider than one field. HTTP errors are counted per
    ``"<status> <reason>"`` key; the key map lock is held only while a new
    key is created. Latencies are appended to a ``deque``, which is atomic
    in CPython, and drained once by ``render_report``.

    Workers only write. ``render_report`` is meant to be called once,
    after all workers have stopped.
    """

    def __init__(self) -> None:
        """Initialize an empty collector."""
        self._total = AtomicCounter()
        self._successful = AtomicCounter()
        self._timeouts = AtomicCounter()
        self._decode_errors = AtomicCounter()
        self._network_errors = AtomicCounter()
        self._rpc_errors = AtomicCounter()
        self._http_errors: dict[str, AtomicCounter] = {}
        self._http_errors_lock = threading.Lock()
        self._latencies: deque[int] = deque()

    # -- recording ---------------------------------------------------------

    def record_success(self, latency_us: int) -> None:
        """Record a successful request and its latency.

        Args:
            latency_us: End-to-end latency in microseconds.
        """
        self._total.increment()
        self._successful.increment()
        self._latencies.append(latency_us)

    def record_http_error(self, status: int, reason: str) -> None:
        """Record a non-2xx HTTP response.

        Args:
            status: HTTP status code.
            reason: HTTP reason phrase.
        """
        self._total.increment()
        key = f"{status} {reason}"
        counter = self._http_errors.get(key)
        if counter is None:
            with self._http_errors_lock:
                counter = self._http_errors.setdefault(key, AtomicCounter())
        counter.increment()

    def record_timeout(self) -> None:
        """Record a request that exceeded the HTTP timeout."""
        self._total.increment()
        self._timeouts.increment()

    def record_decode_error(self) -> None:
        """Record a response that was not a valid envelope."""
        self._total.increment()
        self._decode_errors.increment()

    def record_network_error(self) -> None:
        """Record any other transport failure."""
        self._total.increment()
        self._network_errors.increment()

    def record_rpc_error(self) -> None:
        """Record a JSON-RPC error response."""
        self._total.increment()
        self._rpc_errors.increment()

    def record(self, outcome: RequestOutcome) -> None:
        """Record an outcome in the counter matching its kind.

        Args:
            outcome: Classified result of one logical request.
        """
        kind = outcome.kind
        if kind is OutcomeKind.SUCCESS:
            self.record_success(outcome.latency_us)
        elif kind is OutcomeKind.HTTP_ERROR:
            self.record_http_error(outcome.status, outcome.reason)
        elif kind is OutcomeKind.TIMEOUT:
            self.record_timeout()
        elif kind is OutcomeKind.DECODE_ERROR:
            self.record_decode_error()
        elif kind is OutcomeKind.NETWORK_ERROR:
            self.record_network_error()
        else:
            self.record_rpc_error()

    # -- inspection --------------------------------------------------------

    @property
    def total(self) -> int:
        return self._total.value

    @property
    def successful(self) -> int:
        return self._successful.value

    @property
    def timeouts(self) -> int:
        return self._timeouts.value

    @property
    def decode_errors(self) -> int:
        return self._decode_errors.value

    @property
    def network_errors(self) -> int:
        return self._network_errors.value

    @property
    def rpc_errors(self) -> int:
        return self._rpc_errors.value

    @property
    def http_errors(self) -> dict[str, int]:
        """Return a copy of the HTTP error counts, ordered by key."""
        with self._http_errors_lock:
            items = list(self._http_errors.items())
        return {key: counter.value for key, counter in sorted(items)}

    @property
    def pending_latencies(self) -> int:
        """Return the number of latency samples not yet drained."""
        return len(self._latencies)

    # -- reporting ---------------------------------------------------------

    def render_report(self) -> Report:
        """Drain the latency samples and compute the final report.

        The drain is destructive: a second call sees no latencies.

        Returns:
            The final Report.
        """
        drained: list[int] = []
        while self._latencies:
            drained.append(self._latencies.popleft())

        total = self.total
        successful = self.successful
        success_rate = successful / total * 100 if total > 0 else 0.0

        avg, lat_min, lat_max, p50, p90, p99 = _compute_latency_stats(drained)

        report = Report(
            total=total,
            successful=successful,
            success_rate=success_rate,
            timeouts=self.timeouts,
            decode_errors=self.decode_errors,
            network_errors=self.network_errors,
            rpc_errors=self.rpc_errors,
            http_errors=self.http_errors,
            latency_avg=avg,
            latency_min=lat_min,
            latency_max=lat_max,
            latency_p50=p50,
            latency_p90=p90,
            latency_p99=p99,
            latency_samples=len(drained),
        )
        if report.accounted != report.total:
            logger.warning(
                "Report counters disagree: total=%d accounted=%d",
                report.total,
                report.accounted,
            )
        return report
