"""Shared test fixtures for the rpcstress test suite."""

from __future__ import annotations

import asyncio
import logging
import socket
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import pytest
from aiohttp import web

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator


# =============================================================================
# Pytest configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-apply markers based on test directory structure."""
    for item in items:
        test_path = str(item.fspath)
        if "/unit/" in test_path:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
        elif "/e2e/" in test_path:
            item.add_marker(pytest.mark.e2e)


@pytest.fixture(autouse=True)
def _reset_rpcstress_logger() -> Iterator[None]:
    """Remove handlers installed by ``setup_logging`` during a test."""
    yield
    logger = logging.getLogger("rpcstress")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


# =============================================================================
# Network utilities
# =============================================================================


def _get_free_port() -> int:
    """Find an available port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("", 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


# =============================================================================
# Mock JSON-RPC server
# =============================================================================

SLOT = 12345


@dataclass
class MockRpcServer:
    """Handle to a running mock JSON-RPC server.

    Attributes:
        url: Base URL; POST JSON-RPC requests to it.
        requests: Every JSON-RPC request body received, in arrival order.
        results: Result returned per method name.
        errors: Methods answered with a JSON-RPC error ``(code, message)``.
    """

    url: str = ""
    requests: list[dict[str, Any]] = field(default_factory=list)
    results: dict[str, Any] = field(
        default_factory=lambda: {
            "getSlot": SLOT,
            "getHealth": "ok",
            "getVersion": {"solana-core": "1.18.0"},
        }
    )
    errors: dict[str, tuple[int, str]] = field(
        default_factory=lambda: {"failingMethod": (-32000, "Server error")}
    )

    def endpoint(self, path: str) -> str:
        """Return the URL of a special route such as ``/status/429``."""
        return f"{self.url}{path}"

    @property
    def methods(self) -> list[str]:
        return [r.get("method") for r in self.requests]

    @property
    def ids(self) -> list[int]:
        return [r.get("id") for r in self.requests]


_STATE_KEY = web.AppKey("state", MockRpcServer)


def _envelope(request_id: Any, **member: Any) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, **member}


async def _rpc_handler(request: web.Request) -> web.Response:
    """Answer a JSON-RPC request according to the server state."""
    state = request.app[_STATE_KEY]
    payload = await request.json()
    state.requests.append(payload)

    method = payload.get("method")
    params = payload.get("params") or []
    request_id = payload.get("id")

    if method in state.errors:
        code, message = state.errors[method]
        return web.json_response(_envelope(request_id, error={"code": code, "message": message}))

    if method == "sleep":
        await asyncio.sleep(float(params[0]) if params else 1.0)
        return web.json_response(_envelope(request_id, result="ok"))

    if method == "getBlock":
        return web.json_response(_envelope(request_id, result={"params": params}))

    if method in state.results:
        return web.json_response(_envelope(request_id, result=state.results[method]))

    return web.json_response(
        _envelope(request_id, error={"code": -32601, "message": "Method not found"}),
    )


async def _status_handler(request: web.Request) -> web.Response:
    """Return the HTTP status given in the path."""
    return web.Response(status=int(request.match_info["code"]), text="rejected")


async def _garbage_handler(request: web.Request) -> web.Response:
    """Return a body that is not JSON."""
    return web.Response(text="<html>definitely not json</html>", content_type="text/html")


async def _bad_envelope_handler(request: web.Request) -> web.Response:
    """Return JSON that is not a JSON-RPC envelope."""
    return web.json_response({"jsonrpc": "2.0", "id": "not-an-int", "result": 1})


def _create_rpc_app(state: MockRpcServer) -> web.Application:
    """Build the mock server app with all test routes."""
    app = web.Application()
    app[_STATE_KEY] = state
    app.router.add_post("/", _rpc_handler)
    app.router.add_post("/status/{code}", _status_handler)
    app.router.add_post("/garbage", _garbage_handler)
    app.router.add_post("/bad-envelope", _bad_envelope_handler)
    return app


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
async def rpc_server() -> AsyncIterator[MockRpcServer]:
    """Mock JSON-RPC server running on the test's event loop."""
    state = MockRpcServer()
    port = _get_free_port()
    runner = web.AppRunner(_create_rpc_app(state))
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()
    state.url = f"http://127.0.0.1:{port}"
    yield state
    await runner.cleanup()


@pytest.fixture
def sync_rpc_server() -> Iterator[MockRpcServer]:
    """Mock JSON-RPC server running in a background thread.

    Used by tests where the code under test runs its own event loop and
    blocks the main thread.
    """
    state = MockRpcServer()
    port = _get_free_port()
    started = threading.Event()
    loop_holder: list[asyncio.AbstractEventLoop] = []

    def _thread_target() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        runner = web.AppRunner(_create_rpc_app(state))
        loop.run_until_complete(runner.setup())
        site = web.TCPSite(runner, "127.0.0.1", port)
        loop.run_until_complete(site.start())
        loop_holder.append(loop)
        started.set()
        loop.run_forever()
        loop.run_until_complete(runner.cleanup())
        loop.close()

    thread = threading.Thread(target=_thread_target, daemon=True)
    thread.start()
    started.wait(timeout=5.0)

    state.url = f"http://127.0.0.1:{port}"
    yield state

    if loop_holder:
        loop_holder[0].call_soon_threadsafe(loop_holder[0].stop)
    thread.join(timeout=5.0)
