"""Request strategies: direct single calls and the two-step latest-block workload.

A worker asks ``select_strategy`` for the strategy matching its method.
Every strategy turns one logical request into exactly one
``RequestOutcome``; the worker measures latency around ``execute``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rpcstress._internal.errors import TransportError
from rpcstress._internal.logging import get_logger
from rpcstress.rpc.outcome import RequestOutcome, classify_envelope, classify_failure

if TYPE_CHECKING:
    from collections.abc import Callable

    from rpcstress._internal.types import JsonObject, JsonValue, Params
    from rpcstress.rpc.client import RpcEnvelope, RpcSender

logger = get_logger("engine.composite")

LATEST_BLOCK_METHOD = "getLatestBlock"
SLOT_METHOD = "getSlot"
BLOCK_METHOD = "getBlock"


def default_block_options() -> JsonObject:
    """Return a fresh copy of the default ``getBlock`` options."""
    return {
        "commitment": "finalized",
        "encoding": "json",
        "transactionDetails": "full",
        "maxSupportedTransactionVersion": 0,
        "rewards": False,
    }


def build_block_params(slot: int, params: Params) -> list[JsonValue]:
    """Build the ``getBlock`` parameters for a freshly fetched slot.

    A JSON object at the end of the configured parameters is reused
    verbatim as the block options; any slot value configured before it
    is ignored.

    Args:
        slot: Slot returned by ``getSlot``.
        params: Parameters configured for the worker.

    Returns:
        ``[slot, options]``.
    """
    if params and isinstance(params[-1], dict):
        return [slot, params[-1]]
    return [slot, default_block_options()]


def extract_slot(envelope: RpcEnvelope) -> int | None:
    """Return the slot carried by a ``getSlot`` response, or None.

    Args:
        envelope: Decoded ``getSlot`` response.

    Returns:
        The non-negative integer slot, or None if the response carries an
        error or a result that is not a slot number.
    """
    if envelope.error is not None:
        return None
    result = envelope.result
    if isinstance(result, bool) or not isinstance(result, int) or result < 0:
        return None
    return result


class DirectRequestStrategy:
    """Send the configured method once per logical request."""

    def __init__(self, method: str, params: Params) -> None:
        self.method = method
        self.params = params

    async def execute(self, client: RpcSender, next_id: Callable[[], int]) -> RequestOutcome:
        """Send one request and classify the result.

        Args:
            client: Sender used for the request.
            next_id: Allocator returning a fresh request id per call.

        Returns:
            The classified outcome, with zero latency.
        """
        request_id = next_id()
        try:
            envelope = await client.send(self.method, self.params, request_id)
        except TransportError as exc:
            return classify_failure(exc)
        logger.debug(
            "%s id=%d result=%s error=%s",
            self.method,
            request_id,
            envelope.result,
            envelope.error,
        )
        return classify_envelope(envelope)


class LatestBlockStrategy:
    """Fetch the current slot, then the block at that slot.

    Both calls count as one logical request. A failed ``getSlot`` in any
    form yields exactly one ``RPC_ERROR`` and ``getBlock`` is not sent.
    """

    method = LATEST_BLOCK_METHOD

    def __init__(self, params: Params) -> None:
        self.params = params

    async def execute(self, client: RpcSender, next_id: Callable[[], int]) -> RequestOutcome:
        """Run ``getSlot`` followed by ``getBlock``.

        Args:
            client: Sender used for both requests.
            next_id: Allocator returning a fresh request id per call.

        Returns:
            The outcome of ``getBlock``, or ``RPC_ERROR`` if the slot could
            not be obtained.
        """
        slot_id = next_id()
        try:
            slot_envelope = await client.send(SLOT_METHOD, [], slot_id)
        except TransportError as exc:
            logger.debug("getSlot id=%d failed: %s", slot_id, exc)
            return RequestOutcome.rpc_error(detail=f"getSlot failed: {exc}")

        slot = extract_slot(slot_envelope)
        if slot is None:
            logger.debug(
                "getSlot id=%d returned no slot: result=%r error=%s",
                slot_id,
                slot_envelope.result,
                slot_envelope.error,
            )
            return RequestOutcome.rpc_error(detail="getSlot returned no slot")

        logger.debug("Got latest slot %d", slot)

        block_id = next_id()
        try:
            envelope = await client.send(
                BLOCK_METHOD, build_block_params(slot, self.params), block_id
            )
        except TransportError as exc:
            return classify_failure(exc)
        logger.debug("getBlock id=%d slot=%d error=%s", block_id, slot, envelope.error)
        return classify_envelope(envelope)


def select_strategy(method: str, params: Params) -> DirectRequestStrategy | LatestBlockStrategy:
    """Return the strategy that implements ``method``.

    Args:
        method: Configured method name.
        params: Configured parameters.

    Returns:
        ``LatestBlockStrategy`` for ``getLatestBlock``, otherwise a
        ``DirectRequestStrategy``.
    """
    if method == LATEST_BLOCK_METHOD:
        return LatestBlockStrategy(params)
    return DirectRequestStrategy(method, params)
