"""Result dataclasses for rpcstress."""

from __future__ import annotations

from dataclasses import dataclass, field

__all__ = [
    "Report",
    "RunResult",
]


@dataclass(frozen=True)
class Report:
    """Final aggregate statistics of a run.

    All latency values are in milliseconds and are 0.0 when no request
    succeeded.

    Attributes:
        total: Logical requests issued.
        successful: Requests that returned an envelope without an error.
        success_rate: ``successful / total * 100``, 0.0 when total is 0.
        timeouts: Requests that exceeded the HTTP timeout.
        decode_errors: Responses that were not a valid JSON-RPC envelope.
        network_errors: Other transport failures.
        rpc_errors: Envelopes carrying a JSON-RPC error object, plus
            composite requests whose first step failed.
        http_errors: Count per ``"<status> <reason>"`` key, ordered by key.
        latency_avg: Mean latency of successful requests.
        latency_min: Minimum latency of successful requests.
        latency_max: Maximum latency of successful requests.
        latency_p50: 50th percentile latency.
        latency_p90: 90th percentile latency.
        latency_p99: 99th percentile latency.
        latency_samples: Number of latency measurements drained.
    """

    total: int = 0
    successful: int = 0
    success_rate: float = 0.0
    timeouts: int = 0
    decode_errors: int = 0
    network_errors: int = 0
    rpc_errors: int = 0
    http_errors: dict[str, int] = field(default_factory=dict)
    latency_avg: float = 0.0
    latency_min: float = 0.0
    latency_max: float = 0.0
    latency_p50: float = 0.0
    latency_p90: float = 0.0
    latency_p99: float = 0.0
    latency_samples: int = 0

    @property
    def total_errors(self) -> int:
        """Return the number of requests in any failure category."""
        return (
            self.timeouts
            + self.decode_errors
            + self.network_errors
            + self.rpc_errors
            + sum(self.http_errors.values())
        )

    @property
    def accounted(self) -> int:
        """Return successes plus failures; equals ``total`` after a run."""
        return self.successful + self.total_errors


@dataclass
class RunResult:
    """Complete result of a load test run.

    Attributes:
        report: Final aggregate statistics.
        start_time: Monotonic time when workers were spawned.
        end_time: Monotonic time when the last worker stopped.
        duration_seconds: Wall-clock duration of the run.
        worker_count: Number of workers that took part.
    """

    report: Report
    start_time: float
    end_time: float
    duration_seconds: float
    worker_count: int

    @property
    def requests_per_second(self) -> float:
        """Return the average logical request rate over the run."""
        return self.report.total / max(self.duration_seconds, 0.001)
