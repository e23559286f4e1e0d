"""rpcstress: concurrent load generator for JSON-RPC endpoints."""

from __future__ import annotations

from rpcstress._internal.config import MethodConfig, RunSettings, resolve_settings
from rpcstress.engine.composite import LATEST_BLOCK_METHOD
from rpcstress.engine.orchestrator import Orchestrator, build_worker_configs
from rpcstress.engine.runner import run_load_test
from rpcstress.engine.worker import RequestIdAllocator, Worker, WorkerConfig
from rpcstress.metrics.collector import StatsCollector
from rpcstress.metrics.models import Report, RunResult
from rpcstress.rpc.client import RpcClient, RpcEnvelope
from rpcstress.rpc.outcome import OutcomeKind, RequestOutcome

__version__ = "0.1.0"

__all__ = [
    "LATEST_BLOCK_METHOD",
    "MethodConfig",
    "Orchestrator",
    "OutcomeKind",
    "Report",
    "RequestIdAllocator",
    "RequestOutcome",
    "RpcClient",
    "RpcEnvelope",
    "RunResult",
    "RunSettings",
    "StatsCollector",
    "Worker",
    "WorkerConfig",
    "build_worker_configs",
    "resolve_settings",
    "run_load_test",
]
