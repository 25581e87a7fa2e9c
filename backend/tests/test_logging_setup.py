from __future__ import annotations

import json
import logging
import sys

from telemetry.logging_setup import JsonFormatter


def _record():
    return logging.LogRecord("worker.source", logging.INFO, __file__, 1, "load_data done", None, None)


def test_formatter_emits_one_json_object_with_extra():
    rec = _record()
    rec.extra = {"source": "s", "ms": 1.5}

    out = json.loads(JsonFormatter().format(rec))

    assert out["lvl"] == "INFO"
    assert out["name"] == "worker.source"
    assert out["msg"] == "load_data done"
    assert out["extra"] == {"source": "s", "ms": 1.5}
    assert isinstance(out["t"], int)


def test_formatter_includes_exception_text():
    try:
        raise ValueError("boom")
    except ValueError:
        rec = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())

    out = json.loads(JsonFormatter().format(rec))

    assert "extra" not in out
    assert "ValueError: boom" in out["exc_info"]
