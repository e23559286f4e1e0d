"""Top-level synchronous entry point for a load test run."""

from __future__ import annotations

import asyncio
import sys
from typing import TYPE_CHECKING

from rpcstress._internal.logging import get_logger, setup_logging
from rpcstress.engine.orchestrator import Orchestrator, build_worker_configs

if TYPE_CHECKING:
    from collections.abc import Callable

    from rpcstress._internal.config import RunSettings
    from rpcstress.metrics.models import RunResult

logger = get_logger("engine.runner")


def _event_loop_factory() -> Callable[[], asyncio.AbstractEventLoop] | None:
    """Return uvloop's loop factory if available.

    Falls back to the default asyncio event loop on Windows or if uvloop
    is not installed.
    """
    if sys.platform == "win32":
        return None

    try:
        import uvloop
    except ImportError:
        logger.debug("uvloop not available, using default asyncio event loop")
        return None

    logger.debug("Using uvloop event loop")
    return uvloop.new_event_loop


def run_load_test(
    settings: RunSettings,
    *,
    shutdown_grace: float = 5.0,
    log_level: int = 20,
    json_logs: bool = False,
) -> RunResult:
    """Execute a load test in the current process.

    Sets up logging, expands the settings into worker configurations and
    runs an ``Orchestrator`` to completion.

    Args:
        settings: Validated run settings.
        shutdown_grace: Seconds to let in-flight requests finish on stop.
        log_level: Logging level (default: logging.INFO = 20).
        json_logs: Emit log records as JSON lines on stderr.

    Returns:
        RunResult with the final report.

    Raises:
        EngineError: If the run fails unexpectedly.
    """
    setup_logging(level=log_level, json_format=json_logs)

    configs = build_worker_configs(settings)
    logger.info(
        "Prepared %d workers against %s (pacing=%dms, duration=%ds)",
        len(configs),
        settings.url,
        settings.pacing_ms,
        settings.duration,
    )

    with asyncio.Runner(loop_factory=_event_loop_factory()) as runner:
        orchestrator = Orchestrator(configs, shutdown_grace=shutdown_grace)
        return runner.run(orchestrator.run())
