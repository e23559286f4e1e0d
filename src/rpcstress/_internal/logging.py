"""Logging setup for rpcstress.

Every module logs through ``get_logger``, which hands out children of the
``rpcstress`` logger. ``setup_logging`` attaches a single stderr handler to
that logger, rendering either plain text or one JSON object per line. JSON
lines carry any ``extra`` context passed by the caller, so worker records
include the worker id and the RPC method::

    {"ts": "...", "level": "DEBUG", "logger": "rpcstress.engine.worker",
     "msg": "Worker 3: success in 1.20ms", "worker_id": 3, "method": "getSlot"}
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime

ROOT_LOGGER = "rpcstress"

_TEXT_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"
_TEXT_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Attributes every LogRecord has; anything else came in through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class _JsonLineFormatter(logging.Formatter):
    """Render a record as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS and not key.startswith("_"):
                entry[key] = value
        if record.exc_info and record.exc_info[1] is not None:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _build_formatter(json_format: bool) -> logging.Formatter:
    if json_format:
        return _JsonLineFormatter()
    return logging.Formatter(_TEXT_FORMAT, datefmt=_TEXT_DATEFMT)


def setup_logging(
    level: int = logging.INFO,
    *,
    json_format: bool = False,
) -> logging.Logger:
    """Configure and return the ``rpcstress`` logger.

    Repeated calls reuse the existing handler, updating its level and
    output format in place.

    Args:
        level: Logging level, e.g. ``logging.DEBUG``.
        json_format: Emit JSON lines instead of plain text.

    Returns:
        The configured ``rpcstress`` logger.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.propagate = False

    if not logger.handlers:
        logger.addHandler(logging.StreamHandler(sys.stderr))

    formatter = _build_formatter(json_format)
    for handler in logger.handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Return the ``rpcstress.<name>`` logger, e.g. ``get_logger("engine.worker")``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
