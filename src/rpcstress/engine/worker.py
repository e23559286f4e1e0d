"""Worker: one paced request loop bound to a single method configuration."""

from __future__ import annotations

import asyncio
import contextlib
import time
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING

from rpcstress._internal.errors import ConfigError
from rpcstress._internal.logging import get_logger
from rpcstress.engine.composite import select_strategy
from rpcstress.rpc.client import RpcClient
from rpcstress.rpc.outcome import OutcomeKind, RequestOutcome

if TYPE_CHECKING:
    from rpcstress._internal.types import Params
    from rpcstress.metrics.collector import StatsCollector
    from rpcstress.rpc.client import RpcSender

logger = get_logger("engine.worker")

DEFAULT_PARTITION_WIDTH = 1_000_000


@dataclass(frozen=True)
class WorkerConfig:
    """Immutable configuration assigned to a worker at spawn time.

    Attributes:
        url: Target JSON-RPC endpoint.
        method: Method name, or ``getLatestBlock`` for the composite workload.
        params: Ordered positional parameters.
        pacing_seconds: Fixed delay between consecutive logical requests.
        duration_seconds: Run duration; 0 means run until cancelled.
        worker_id: Stable identity, unique within the run.
        worker_count: Total number of workers in the run.
        http_timeout: Per-request HTTP timeout in seconds.
    """

    url: str
    method: str
    params: Params = ()
    pacing_seconds: float = 0.001
    duration_seconds: float = 0.0
    worker_id: int = 0
    worker_count: int = 1
    http_timeout: float = 30.0

    def __post_init__(self) -> None:
        if not isinstance(self.params, tuple):
            object.__setattr__(self, "params", tuple(self.params))
        if self.pacing_seconds < 0:
            msg = f"pacing_seconds must be >= 0, got: {self.pacing_seconds}"
            raise ConfigError(msg)
        if self.duration_seconds < 0:
            msg = f"duration_seconds must be >= 0, got: {self.duration_seconds}"
            raise ConfigError(msg)
        if self.http_timeout <= 0:
            msg = f"http_timeout must be positive, got: {self.http_timeout}"
            raise ConfigError(msg)
        if not 0 <= self.worker_id < self.worker_count:
            msg = f"worker_id must be in [0, {self.worker_count}), got: {self.worker_id}"
            raise ConfigError(msg)

    @property
    def is_unbounded(self) -> bool:
        """Return True if the worker only stops on cancellation."""
        return self.duration_seconds == 0


class RequestIdAllocator:
    """Coordination-free request ids, unique across all workers of a run.

    Worker ``w`` starts at ``w * width + 1`` and counts up. Once its
    sequence reaches ``width`` it moves to block
    ``epoch * worker_count + w`` so its ids never enter another worker's
    range.
    """

    def __init__(
        self,
        worker_id: int,
        worker_count: int = 1,
        width: int = DEFAULT_PARTITION_WIDTH,
    ) -> None:
        """Initialize the allocator.

        Args:
            worker_id: Identity of the owning worker.
            worker_count: Number of workers sharing the id space.
            width: Ids per block.

        Raises:
            ValueError: If the identity is outside ``[0, worker_count)`` or
                the width is not positive.
        """
        if not 0 <= worker_id < worker_count:
            msg = f"worker_id must be in [0, {worker_count}), got {worker_id}"
            raise ValueError(msg)
        if width < 1:
            msg = f"width must be positive, got {width}"
            raise ValueError(msg)

        self._worker_id = worker_id
        self._worker_count = worker_count
        self._width = width
        self._sequence = 0
        self._overflowed = False

    @property
    def issued(self) -> int:
        """Return how many ids have been handed out."""
        return self._sequence

    def next_id(self) -> int:
        """Return the next request id."""
        self._sequence += 1
        epoch, offset = divmod(self._sequence, self._width)
        if epoch and not self._overflowed:
            self._overflowed = True
            logger.warning(
                "Worker %d issued more than %d request ids; continuing in a higher id block",
                self._worker_id,
                self._width - 1,
            )
        return (epoch * self._worker_count + self._worker_id) * self._width + offset


class WorkerState(Enum):
    """Lifecycle of a worker."""

    CREATED = auto()
    RUNNING = auto()
    STOPPED = auto()


class Worker:
    """A single request loop.

    Each iteration checks for termination, sends one logical request,
    records its outcome in the shared collector, then waits for the
    pacing interval. Failures are recorded and never retried.

    State machine: CREATED -> RUNNING -> STOPPED

    Attributes:
        config: The worker's immutable configuration.
    """

    def __init__(
        self,
        config: WorkerConfig,
        stats: StatsCollector,
        stop_event: asyncio.Event,
        *,
        client: RpcSender | None = None,
    ) -> None:
        """Initialize the worker.

        Args:
            config: Worker configuration.
            stats: Shared collector receiving every outcome.
            stop_event: Cancellation signal shared by all workers.
            client: Optional sender. When omitted, the worker opens its own
                ``RpcClient`` for the duration of ``run``.
        """
        self.config = config
        self._stats = stats
        self._stop_event = stop_event
        self._client = client
        self._strategy = select_strategy(config.method, config.params)
        self._ids = RequestIdAllocator(config.worker_id, config.worker_count)
        self._state = WorkerState.CREATED
        self._request_count = 0
        self._log_extra = {"worker_id": config.worker_id, "method": config.method}

    @property
    def state(self) -> WorkerState:
        """Return the current worker state."""
        return self._state

    @property
    def request_count(self) -> int:
        """Return the number of logical requests recorded so far."""
        return self._request_count

    async def run(self) -> int:
        """Run the request loop until the duration elapses or stop is signalled.

        Returns:
            Number of logical requests issued by this worker.
        """
        if self._client is not None:
            await self._loop(self._client)
        else:
            async with RpcClient(self.config.url, timeout=self.config.http_timeout) as client:
                await self._loop(client)
        return self._request_count

    async def _loop(self, client: RpcSender) -> None:
        self._state = WorkerState.RUNNING
        start_time = time.monotonic()
        logger.debug(
            "Worker %d started: method=%s, pacing=%.3fs",
            self.config.worker_id,
            self.config.method,
            self.config.pacing_seconds,
            extra=self._log_extra,
        )
        try:
            while not self._should_stop(start_time):
                outcome = await self._issue(client)
                self._stats.record(outcome)
                self._request_count += 1
                self._log_outcome(outcome)
                await self._pace()
        finally:
            self._state = WorkerState.STOPPED
            logger.debug(
                "Worker %d stopped after %d requests",
                self.config.worker_id,
                self._request_count,
                extra=self._log_extra,
            )

    def _should_stop(self, start_time: float) -> bool:
        if self._stop_event.is_set():
            return True
        if self.config.is_unbounded:
            return False
        return time.monotonic() - start_time >= self.config.duration_seconds

    async def _issue(self, client: RpcSender) -> RequestOutcome:
        """Send one logical request and time it end to end."""
        request_start = time.monotonic()
        try:
            outcome = await self._strategy.execute(client, self._ids.next_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(
                "Worker %d: unexpected failure in %s",
                self.config.worker_id,
                self.config.method,
                exc_info=True,
                extra=self._log_extra,
            )
            return RequestOutcome(OutcomeKind.NETWORK_ERROR, detail=f"{type(exc).__name__}: {exc}")
        latency_us = int((time.monotonic() - request_start) * 1_000_000)
        if outcome.is_success:
            return outcome.with_latency(latency_us)
        return outcome

    async def _pace(self) -> None:
        """Wait one pacing interval, returning early when stop is signalled."""
        if self.config.pacing_seconds <= 0:
            await asyncio.sleep(0)
            return
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._stop_event.wait(), timeout=self.config.pacing_seconds)

    def _log_outcome(self, outcome: RequestOutcome) -> None:
        if outcome.is_success:
            logger.debug(
                "Worker %d: success in %.2fms",
                self.config.worker_id,
                outcome.latency_us / 1000,
                extra=self._log_extra,
            )
        elif outcome.kind is OutcomeKind.HTTP_ERROR:
            logger.debug(
                "Worker %d: HTTP error %d %s",
                self.config.worker_id,
                outcome.status,
                outcome.reason,
                extra=self._log_extra,
            )
        else:
            logger.debug(
                "Worker %d: %s %s",
                self.config.worker_id,
                outcome.kind.name,
                outcome.detail,
                extra=self._log_extra,
            )
