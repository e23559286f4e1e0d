"""Integration tests for the Worker request loop."""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any

from rpcstress.engine.composite import default_block_options
from rpcstress.engine.worker import Worker, WorkerConfig, WorkerState
from rpcstress.metrics.collector import StatsCollector
from rpcstress.rpc.client import RpcEnvelope

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tests.conftest import MockRpcServer


def _make_worker(
    url: str,
    method: str = "getHealth",
    *,
    params: tuple[Any, ...] = (),
    duration: float = 0.3,
    pacing: float = 0.01,
    worker_id: int = 0,
    worker_count: int = 1,
    http_timeout: float = 5.0,
    stats: StatsCollector | None = None,
    stop_event: asyncio.Event | None = None,
) -> Worker:
    config = WorkerConfig(
        url=url,
        method=method,
        params=params,
        pacing_seconds=pacing,
        duration_seconds=duration,
        worker_id=worker_id,
        worker_count=worker_count,
        http_timeout=http_timeout,
    )
    return Worker(config, stats or StatsCollector(), stop_event or asyncio.Event())


# ============================================================================
# Lifecycle
# ============================================================================


async def test_stops_after_duration(rpc_server: MockRpcServer) -> None:
    stats = StatsCollector()
    worker = _make_worker(rpc_server.url, stats=stats)
    assert worker.state is WorkerState.CREATED

    start = time.monotonic()
    count = await worker.run()
    elapsed = time.monotonic() - start

    assert worker.state is WorkerState.STOPPED
    assert count > 0
    assert count == worker.request_count == stats.total == stats.successful
    assert 0.3 <= elapsed < 2.0


async def test_stop_event_ends_unbounded_worker(rpc_server: MockRpcServer) -> None:
    stop_event = asyncio.Event()
    worker = _make_worker(rpc_server.url, duration=0.0, pacing=0.05, stop_event=stop_event)
    task = asyncio.create_task(worker.run())

    await asyncio.sleep(0.3)
    assert not task.done()
    stop_event.set()

    count = await asyncio.wait_for(task, timeout=2.0)
    assert count > 0
    assert worker.state is WorkerState.STOPPED


async def test_long_pacing_is_interrupted_by_stop(rpc_server: MockRpcServer) -> None:
    stop_event = asyncio.Event()
    worker = _make_worker(rpc_server.url, duration=0.0, pacing=30.0, stop_event=stop_event)
    task = asyncio.create_task(worker.run())
    await asyncio.sleep(0.2)
    stop_event.set()
    assert await asyncio.wait_for(task, timeout=2.0) == 1


async def test_zero_pacing(rpc_server: MockRpcServer) -> None:
    worker = _make_worker(rpc_server.url, pacing=0.0, duration=0.2)
    assert await worker.run() > 0


# ============================================================================
# Outcomes
# ============================================================================


async def test_latency_recorded_per_success(rpc_server: MockRpcServer) -> None:
    stats = StatsCollector()
    await _make_worker(rpc_server.url, stats=stats).run()
    assert stats.pending_latencies == stats.successful
    report = stats.render_report()
    assert report.latency_min > 0
    assert report.latency_avg >= report.latency_min


async def test_rpc_errors(rpc_server: MockRpcServer) -> None:
    stats = StatsCollector()
    await _make_worker(rpc_server.url, "failingMethod", stats=stats).run()
    assert stats.total > 0
    assert stats.rpc_errors == stats.total
    assert stats.pending_latencies == 0


async def test_http_errors(rpc_server: MockRpcServer) -> None:
    stats = StatsCollector()
    await _make_worker(rpc_server.endpoint("/status/503"), stats=stats).run()
    assert stats.http_errors == {"503 Service Unavailable": stats.total}


async def test_decode_errors(rpc_server: MockRpcServer) -> None:
    stats = StatsCollector()
    await _make_worker(rpc_server.endpoint("/garbage"), stats=stats).run()
    assert stats.total > 0
    assert stats.decode_errors == stats.total


async def test_timeouts(rpc_server: MockRpcServer) -> None:
    stats = StatsCollector()
    worker = _make_worker(
        rpc_server.url,
        "sleep",
        params=(1.0,),
        duration=0.2,
        http_timeout=0.1,
        stats=stats,
    )
    await worker.run()
    assert stats.total >= 1
    assert stats.timeouts == stats.total


async def test_network_errors() -> None:
    stats = StatsCollector()
    await _make_worker("http://127.0.0.1:1", duration=0.2, http_timeout=1.0, stats=stats).run()
    assert stats.total > 0
    assert stats.network_errors == stats.total


async def test_unexpected_exception_is_recorded() -> None:
    class _BrokenSender:
        async def send(self, method: str, params: Sequence[Any], request_id: int) -> RpcEnvelope:
            msg = "unexpected"
            raise ValueError(msg)

    stats = StatsCollector()
    config = WorkerConfig(
        url="http://unused",
        method="getHealth",
        pacing_seconds=0.02,
        duration_seconds=0.1,
    )
    worker = Worker(config, stats, asyncio.Event(), client=_BrokenSender())
    count = await worker.run()
    assert count > 0
    assert stats.network_errors == stats.total == count


# ============================================================================
# Request ids and the latest-block workload
# ============================================================================


async def test_request_ids_unique_across_workers(rpc_server: MockRpcServer) -> None:
    stats = StatsCollector()
    stop_event = asyncio.Event()
    workers = [
        _make_worker(
            rpc_server.url,
            worker_id=w,
            worker_count=3,
            stats=stats,
            stop_event=stop_event,
        )
        for w in range(3)
    ]
    await asyncio.gather(*(w.run() for w in workers))

    ids = rpc_server.ids
    assert len(ids) == stats.total
    assert len(set(ids)) == len(ids)
    for request_id in ids:
        assert 1 <= request_id < 3_000_000


async def test_latest_block_sends_slot_then_block(rpc_server: MockRpcServer) -> None:
    stats = StatsCollector()
    count = await _make_worker(rpc_server.url, "getLatestBlock", stats=stats).run()

    assert count > 0
    assert stats.successful == count
    assert rpc_server.methods == ["getSlot", "getBlock"] * count
    block_requests = [r for r in rpc_server.requests if r["method"] == "getBlock"]
    assert all(r["params"] == [12345, default_block_options()] for r in block_requests)
    assert len(set(rpc_server.ids)) == 2 * count


async def test_latest_block_with_configured_options(rpc_server: MockRpcServer) -> None:
    options = {"commitment": "confirmed", "encoding": "base64"}
    await _make_worker(rpc_server.url, "getLatestBlock", params=(options,), duration=0.1).run()
    block_requests = [r for r in rpc_server.requests if r["method"] == "getBlock"]
    assert block_requests
    assert all(r["params"] == [12345, options] for r in block_requests)


async def test_latest_block_slot_failure_skips_block(rpc_server: MockRpcServer) -> None:
    rpc_server.errors["getSlot"] = (-32005, "Node is behind")
    stats = StatsCollector()
    count = await _make_worker(rpc_server.url, "getLatestBlock", stats=stats).run()

    assert count > 0
    assert stats.rpc_errors == stats.total == count
    assert set(rpc_server.methods) == {"getSlot"}
