"""Async JSON-RPC 2.0 client over HTTP POST."""

from __future__ import annotations

import json
from dataclasses import dataclass
from http import HTTPStatus
from typing import TYPE_CHECKING, Protocol

import aiohttp

from rpcstress._internal.errors import (
    EnvelopeDecodeError,
    HttpStatusError,
    NetworkError,
    RpcTimeoutError,
)
from rpcstress._internal.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from rpcstress._internal.types import JsonObject, JsonValue

logger = get_logger("rpc.client")

JSONRPC_VERSION = "2.0"


@dataclass(frozen=True)
class RpcErrorObject:
    """The ``error`` member of a JSON-RPC response.

    Attributes:
        code: JSON-RPC error code.
        message: Human-readable error message.
    """

    code: int
    message: str


@dataclass(frozen=True)
class RpcEnvelope:
    """A decoded JSON-RPC 2.0 response.

    Attributes:
        jsonrpc: Protocol version string sent by the server.
        id: Request identifier echoed by the server.
        result: The ``result`` member, None when absent.
        error: The ``error`` member, None when absent.
    """

    jsonrpc: str
    id: int
    result: JsonValue = None
    error: RpcErrorObject | None = None

    @property
    def is_error(self) -> bool:
        """Return True if the envelope carries a JSON-RPC error object."""
        return self.error is not None


def build_request(method: str, params: Sequence[JsonValue], request_id: int) -> JsonObject:
    """Build a JSON-RPC 2.0 request object.

    Args:
        method: Method name.
        params: Positional parameters.
        request_id: Request identifier.

    Returns:
        The request as a JSON-serializable dict.
    """
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id,
        "method": method,
        "params": list(params),
    }


def parse_envelope(body: bytes) -> RpcEnvelope:
    """Decode a response body into an RpcEnvelope.

    Args:
        body: Raw HTTP response body.

    Returns:
        The decoded envelope.

    Raises:
        EnvelopeDecodeError: If the body is not JSON or does not have the
            JSON-RPC 2.0 response shape.
    """
    try:
        data = json.loads(body)
    except (ValueError, RecursionError) as exc:
        msg = f"response is not valid JSON: {exc}"
        raise EnvelopeDecodeError(msg) from exc

    if not isinstance(data, dict):
        msg = f"response must be a JSON object, got {type(data).__name__}"
        raise EnvelopeDecodeError(msg)

    jsonrpc = data.get("jsonrpc")
    if not isinstance(jsonrpc, str):
        msg = "response is missing the 'jsonrpc' member"
        raise EnvelopeDecodeError(msg)

    request_id = data.get("id")
    if isinstance(request_id, bool) or not isinstance(request_id, int):
        msg = f"response 'id' must be an integer, got {request_id!r}"
        raise EnvelopeDecodeError(msg)

    error: RpcErrorObject | None = None
    raw_error = data.get("error")
    if raw_error is not None:
        if not isinstance(raw_error, dict):
            msg = f"response 'error' must be an object, got {raw_error!r}"
            raise EnvelopeDecodeError(msg)
        code = raw_error.get("code")
        message = raw_error.get("message")
        if isinstance(code, bool) or not isinstance(code, int) or not isinstance(message, str):
            msg = f"malformed error object: {raw_error!r}"
            raise EnvelopeDecodeError(msg)
        error = RpcErrorObject(code=code, message=message)

    return RpcEnvelope(
        jsonrpc=jsonrpc,
        id=request_id,
        result=data.get("result"),
        error=error,
    )


def reason_phrase(status: int, server_reason: str | None = None) -> str:
    """Return the canonical reason phrase for an HTTP status.

    Falls back to the server-supplied reason, then to ``"Unknown"``.

    Args:
        status: HTTP status code.
        server_reason: Reason phrase sent by the server, if any.

    Returns:
        The reason phrase, e.g. ``"Too Many Requests"`` for 429.
    """
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return server_reason or "Unknown"


class RpcSender(Protocol):
    """Anything that can send a JSON-RPC request and return an envelope.

    ``RpcClient`` is the production implementation; tests substitute
    scripted fakes.
    """

    async def send(
        self,
        method: str,
        params: Sequence[JsonValue],
        request_id: int,
    ) -> RpcEnvelope:
        """Send one request."""
        ...


class RpcClient:
    """JSON-RPC client wrapping a pooled ``aiohttp.ClientSession``.

    The client is bound to one endpoint URL and must be used as an async
    context manager. ``send`` either returns a decoded envelope (with or
    without an ``error`` member) or raises a ``TransportError`` subclass.

    Attributes:
        url: Target JSON-RPC endpoint.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 30.0,
        connection_limit: int = 100,
    ) -> None:
        """Initialize the client.

        Args:
            url: Target JSON-RPC endpoint.
            timeout: Total per-request timeout in seconds.
            connection_limit: Maximum pooled connections.
        """
        self.url = url
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._connection_limit = connection_limit
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> RpcClient:
        """Open the underlying aiohttp session."""
        self._session = aiohttp.ClientSession(
            timeout=self._timeout,
            connector=aiohttp.TCPConnector(limit=self._connection_limit),
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        """Close the underlying aiohttp session."""
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def send(
        self,
        method: str,
        params: Sequence[JsonValue],
        request_id: int,
    ) -> RpcEnvelope:
        """Send one JSON-RPC request and decode the response.

        Args:
            method: Method name.
            params: Positional parameters.
            request_id: Identifier unique across the whole run.

        Returns:
            The decoded envelope, whether or not it carries an error.

        Raises:
            HttpStatusError: If the HTTP status is not 2xx.
            RpcTimeoutError: If the request exceeded the timeout.
            EnvelopeDecodeError: If the body is not a valid envelope.
            NetworkError: On any other transport failure.
            RuntimeError: If the client is used outside of an async
                context manager.
        """
        if self._session is None:
            msg = "RpcClient must be used as an async context manager"
            raise RuntimeError(msg)

        payload = build_request(method, params, request_id)

        try:
            async with self._session.post(self.url, json=payload) as resp:
                if not 200 <= resp.status < 300:
                    raise HttpStatusError(resp.status, reason_phrase(resp.status, resp.reason))
                body = await resp.read()
        except TimeoutError as exc:
            # aiohttp.ServerTimeoutError is both a TimeoutError and a ClientError
            msg = f"{method} timed out after {self._timeout.total}s"
            raise RpcTimeoutError(msg) from exc
        except (aiohttp.ClientError, OSError) as exc:
            msg = f"{type(exc).__name__}: {exc}"
            raise NetworkError(msg) from exc

        return parse_envelope(body)
