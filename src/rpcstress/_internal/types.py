"""Shared type aliases for rpcstress."""

from __future__ import annotations

from typing import Any

# Any value that can appear in a JSON document.
JsonValue = Any

# Ordered JSON-RPC positional parameters.
Params = tuple[JsonValue, ...]

# A decoded JSON object.
JsonObject = dict[str, JsonValue]
