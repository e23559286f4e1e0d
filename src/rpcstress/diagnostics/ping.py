"""Preliminary ICMP ping diagnostic against the target host."""

from __future__ import annotations

import re
import shutil
import subprocess
from dataclasses import dataclass, field
from urllib.parse import urlparse

from rpcstress._internal.errors import DiagnosticError
from rpcstress._internal.logging import get_logger

logger = get_logger("diagnostics.ping")

DEFAULT_PING_COUNT = 10

# Matches "time=12.345 ms", "time=12.345ms" and "time<1 ms"
_TIME_RE = re.compile(r"time[=<]\s*([0-9]+(?:\.[0-9]+)?)\s*ms")


@dataclass
class PingResult:
    """Round-trip times collected by one ping run.

    Attributes:
        host: Host that was pinged.
        sent: Number of echo requests sent.
        latencies: Round-trip times in milliseconds, one per reply.
    """

    host: str
    sent: int
    latencies: list[float] = field(default_factory=list)

    @property
    def received(self) -> int:
        return len(self.latencies)

    @property
    def lost(self) -> int:
        return max(self.sent - self.received, 0)

    @property
    def min(self) -> float:
        return min(self.latencies, default=0.0)

    @property
    def max(self) -> float:
        return max(self.latencies, default=0.0)

    @property
    def avg(self) -> float:
        if not self.latencies:
            return 0.0
        return sum(self.latencies) / len(self.latencies)


def extract_host(url: str) -> str | None:
    """Return the host part of a URL without port, or None.

    Args:
        url: Endpoint URL, e.g. ``https://api.example.com:8899/rpc``.

    Returns:
        The host name, or None if the URL has no scheme or host.
    """
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.hostname:
        return None
    return parsed.hostname


def parse_ping_output(output: str) -> list[float]:
    """Extract round-trip times from ``ping`` output.

    Args:
        output: Standard output of the ping command.

    Returns:
        Round-trip times in milliseconds, in reply order.
    """
    latencies: list[float] = []
    for line in output.splitlines():
        match = _TIME_RE.search(line)
        if match:
            latencies.append(float(match.group(1)))
    return latencies


def run_ping(host: str, count: int = DEFAULT_PING_COUNT, *, timeout: float = 30.0) -> PingResult:
    """Ping ``host`` with the system ``ping`` command.

    Args:
        host: Host name or address.
        count: Number of echo requests.
        timeout: Seconds to wait for the command to finish.

    Returns:
        PingResult with one latency per reply received.

    Raises:
        DiagnosticError: If ``ping`` is unavailable, times out or exits
            with a failure status.
    """
    executable = shutil.which("ping")
    if executable is None:
        msg = "the 'ping' command is not available on this system"
        raise DiagnosticError(msg)

    logger.debug("Pinging %s with %d packets", host, count)
    try:
        # S603: arguments are a fixed command and a parsed host name
        proc = subprocess.run(  # noqa: S603
            [executable, "-c", str(count), host],
            check=False,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as exc:
        msg = f"ping {host} did not finish within {timeout:.0f}s"
        raise DiagnosticError(msg) from exc

    if proc.returncode != 0:
        msg = f"ping failed: {proc.stderr.strip() or proc.stdout.strip()}"
        raise DiagnosticError(msg)

    return PingResult(host=host, sent=count, latencies=parse_ping_output(proc.stdout))
