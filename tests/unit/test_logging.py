"""Tests for logging setup."""

from __future__ import annotations

import json
import logging
import sys

import pytest

from rpcstress._internal.logging import _JsonLineFormatter, get_logger, setup_logging


def _record(msg: str, *args: object, **extra: object) -> logging.LogRecord:
    record = logging.makeLogRecord(
        {"name": "rpcstress.engine.worker", "levelno": logging.WARNING, "levelname": "WARNING"},
    )
    record.msg = msg
    record.args = args
    record.__dict__.update(extra)
    return record


def test_get_logger_namespace():
    assert get_logger("engine.worker").name == "rpcstress.engine.worker"


def test_setup_logging_is_idempotent():
    first = setup_logging(logging.INFO)
    second = setup_logging(logging.DEBUG)
    assert first is second
    assert len(second.handlers) == 1
    assert second.level == logging.DEBUG
    assert second.handlers[0].level == logging.DEBUG
    assert second.propagate is False


def test_setup_logging_switches_format():
    logger = setup_logging(logging.INFO)
    assert not isinstance(logger.handlers[0].formatter, _JsonLineFormatter)

    setup_logging(logging.INFO, json_format=True)
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, _JsonLineFormatter)


class TestJsonLineFormatter:
    def test_core_fields(self) -> None:
        entry = json.loads(_JsonLineFormatter().format(_record("Worker %d overflowed", 3)))
        assert entry["level"] == "WARNING"
        assert entry["logger"] == "rpcstress.engine.worker"
        assert entry["msg"] == "Worker 3 overflowed"
        assert "ts" in entry
        assert "exc" not in entry

    def test_extra_context_included(self) -> None:
        record = _record("Worker %d started", 3, worker_id=3, method="getSlot")
        entry = json.loads(_JsonLineFormatter().format(record))
        assert entry["worker_id"] == 3
        assert entry["method"] == "getSlot"
        assert "args" not in entry
        assert "lineno" not in entry

    def test_exception_included(self) -> None:
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _record("Run failed")
            record.exc_info = sys.exc_info()
        entry = json.loads(_JsonLineFormatter().format(record))
        assert "RuntimeError: boom" in entry["exc"]

    def test_unserializable_extra_is_stringified(self) -> None:
        record = _record("ok", target=object)
        entry = json.loads(_JsonLineFormatter().format(record))
        assert entry["target"] == str(object)


def test_worker_records_carry_context(capsys: pytest.CaptureFixture[str]):
    setup_logging(logging.DEBUG, json_format=True)
    get_logger("engine.worker").debug(
        "Worker %d: success",
        5,
        extra={"worker_id": 5, "method": "getHealth"},
    )
    lines = capsys.readouterr().err.strip().splitlines()
    entry = json.loads(lines[-1])
    assert entry["msg"] == "Worker 5: success"
    assert entry["worker_id"] == 5
    assert entry["method"] == "getHealth"
