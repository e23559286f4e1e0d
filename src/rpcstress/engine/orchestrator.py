"""Run lifecycle: spawn workers, enforce the deadline, join, report."""

from __future__ import annotations

import asyncio
import signal
import sys
import time
from enum import Enum, auto
from typing import TYPE_CHECKING

from rpcstress._internal.errors import EngineError
from rpcstress._internal.logging import get_logger
from rpcstress.engine.worker import Worker, WorkerConfig
from rpcstress.metrics.collector import StatsCollector
from rpcstress.metrics.models import RunResult

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from rpcstress._internal.config import RunSettings
    from rpcstress.rpc.client import RpcSender

logger = get_logger("engine.orchestrator")


class RunState(Enum):
    """State machine for a run."""

    CREATED = auto()
    RUNNING = auto()
    STOPPING = auto()
    COMPLETED = auto()
    FAILED = auto()


def build_worker_configs(settings: RunSettings) -> list[WorkerConfig]:
    """Expand resolved settings into one WorkerConfig per worker.

    Workers are numbered consecutively from 0 in method order.

    Args:
        settings: Validated run settings.

    Returns:
        Worker configurations, ``settings.total_workers`` long.
    """
    worker_count = settings.total_workers
    configs: list[WorkerConfig] = []
    for entry in settings.methods:
        for _ in range(entry.workers):
            configs.append(
                WorkerConfig(
                    url=settings.url,
                    method=entry.method,
                    params=entry.params,
                    pacing_seconds=settings.pacing_ms / 1000,
                    duration_seconds=float(settings.duration),
                    worker_id=len(configs),
                    worker_count=worker_count,
                    http_timeout=settings.http_timeout,
                )
            )
    return configs


class Orchestrator:
    """Supervises all workers of one run.

    Owns the shared ``StatsCollector`` and the stop signal. ``run`` starts
    every worker at once, waits for the run deadline (or ``stop``), joins
    the workers and renders the report exactly once.

    State machine: CREATED -> RUNNING -> STOPPING -> COMPLETED
                                      -> FAILED (on error)
    """

    def __init__(
        self,
        worker_configs: Sequence[WorkerConfig],
        *,
        shutdown_grace: float = 5.0,
        client_factory: Callable[[WorkerConfig], RpcSender] | None = None,
        handle_signals: bool = True,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            worker_configs: One configuration per worker.
            shutdown_grace: Seconds to let in-flight requests finish after
                the stop signal before cancelling workers.
            client_factory: Optional factory building a sender per worker.
                When omitted every worker opens its own ``RpcClient``.
            handle_signals: Install SIGINT/SIGTERM handlers during ``run``.

        Raises:
            EngineError: If no worker configuration is given.
        """
        if not worker_configs:
            msg = "At least one worker configuration is required"
            raise EngineError(msg)

        self._configs = list(worker_configs)
        self._shutdown_grace = shutdown_grace
        self._client_factory = client_factory
        self._handle_signals = handle_signals

        self._state = RunState.CREATED
        self._stats = StatsCollector()
        self._stop_event = asyncio.Event()
        self._workers: list[Worker] = []

    @property
    def state(self) -> RunState:
        """Return the current run state."""
        return self._state

    @property
    def stats(self) -> StatsCollector:
        """Return the shared statistics collector."""
        return self._stats

    @property
    def workers(self) -> list[Worker]:
        """Return the spawned workers."""
        return list(self._workers)

    @property
    def deadline_seconds(self) -> float | None:
        """Return the run deadline in seconds.

        The deadline is the longest configured duration. It is None when any
        worker has duration 0, since that worker only stops on ``stop``.
        """
        if any(c.is_unbounded for c in self._configs):
            return None
        return max(c.duration_seconds for c in self._configs)

    async def run(self) -> RunResult:
        """Execute the run to completion.

        Returns:
            RunResult containing the final report.

        Raises:
            EngineError: If the orchestrator was already used or the run
                fails unexpectedly.
        """
        if self._state is not RunState.CREATED:
            msg = f"Orchestrator cannot run from state {self._state.name}"
            raise EngineError(msg)

        self._state = RunState.RUNNING
        logger.info(
            "Starting run: workers=%d, deadline=%s",
            len(self._configs),
            "unbounded" if self.deadline_seconds is None else f"{self.deadline_seconds:.1f}s",
        )

        tasks: list[asyncio.Task[int]] = []
        signals_installed = False

        try:
            self._workers = [
                Worker(
                    config,
                    self._stats,
                    self._stop_event,
                    client=self._client_factory(config) if self._client_factory else None,
                )
                for config in self._configs
            ]

            if self._handle_signals:
                signals_installed = True
                self._install_signal_handlers()

            start_time = time.monotonic()
            tasks = [
                asyncio.create_task(w.run(), name=f"rpcstress-worker-{w.config.worker_id}")
                for w in self._workers
            ]
            await self._wait_for_deadline(tasks, start_time)
        except Exception as exc:
            self._state = RunState.FAILED
            logger.exception("Run failed")
            raise EngineError("Run failed") from exc
        finally:
            if self._state is not RunState.FAILED:
                self._state = RunState.STOPPING
            await self._join(tasks)
            if signals_installed:
                self._remove_signal_handlers()

        end_time = time.monotonic()
        duration = end_time - start_time

        report = self._stats.render_report()
        self._state = RunState.COMPLETED

        logger.info(
            "Run completed: duration=%.1fs, total=%d, success_rate=%.2f%%, avg=%.2fms",
            duration,
            report.total,
            report.success_rate,
            report.latency_avg,
        )

        return RunResult(
            report=report,
            start_time=start_time,
            end_time=end_time,
            duration_seconds=duration,
            worker_count=len(self._workers),
        )

    def stop(self) -> None:
        """Request cooperative termination of every worker.

        Safe to call repeatedly and from signal handlers.
        """
        if self._state is RunState.RUNNING:
            logger.info("Graceful shutdown requested")
            self._state = RunState.STOPPING
        self._stop_event.set()

    async def _wait_for_deadline(
        self,
        tasks: list[asyncio.Task[int]],
        start_time: float,
    ) -> None:
        """Block until every worker finished, stop was requested, or the deadline passed."""
        deadline = self.deadline_seconds
        deadline_at = None if deadline is None else start_time + deadline
        stop_waiter = asyncio.create_task(self._stop_event.wait(), name="rpcstress-stop")
        pending = [t for t in tasks if not t.done()]
        try:
            while pending and not self._stop_event.is_set():
                timeout = None if deadline_at is None else deadline_at - time.monotonic()
                if timeout is not None and timeout <= 0:
                    break
                await asyncio.wait(
                    [*pending, stop_waiter],
                    timeout=timeout,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                pending = [t for t in pending if not t.done()]
        finally:
            stop_waiter.cancel()
            self._stop_event.set()

    async def _join(self, tasks: list[asyncio.Task[int]]) -> None:
        """Wait for workers to stop, cancelling any that outlive the grace period."""
        if not tasks:
            return

        _done, pending = await asyncio.wait(tasks, timeout=self._shutdown_grace)
        for task in pending:
            logger.warning("%s did not stop in time, cancelling", task.get_name())
            task.cancel()
        if pending:
            await asyncio.wait(pending, timeout=2.0)

        for task in tasks:
            if task.cancelled() or not task.done():
                continue
            exc = task.exception()
            if exc is not None:
                logger.error("%s failed: %s", task.get_name(), exc, exc_info=exc)

        logger.debug("All workers joined")

    def _install_signal_handlers(self) -> None:
        """Install SIGINT and SIGTERM handlers that call ``stop``."""
        loop = asyncio.get_running_loop()

        def _signal_handler() -> None:
            logger.info("Signal received, initiating graceful shutdown")
            self.stop()

        if sys.platform != "win32":
            loop.add_signal_handler(signal.SIGINT, _signal_handler)
            loop.add_signal_handler(signal.SIGTERM, _signal_handler)
        else:
            # Windows doesn't support add_signal_handler
            signal.signal(signal.SIGINT, lambda _s, _f: _signal_handler())
            signal.signal(signal.SIGTERM, lambda _s, _f: _signal_handler())

    def _remove_signal_handlers(self) -> None:
        """Remove custom signal handlers, restoring defaults."""
        if sys.platform != "win32":
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
        else:
            signal.signal(signal.SIGINT, signal.default_int_handler)
            signal.signal(signal.SIGTERM, signal.SIG_DFL)
