from __future__ import annotations

import json
import logging
import os
import sys
import time

# Chatty third-party loggers kept at WARNING unless the root level is DEBUG.
_QUIET_LOGGERS = ("urllib3", "requests", "httpx")


class JsonFormatter(logging.Formatter):
    """
    One JSON object per log line.

    Notes:
    - Keys: `t` (epoch ms), `lvl`, `name`, `msg`, plus `extra` and `exc_info`
      when present.
    - Structured context is passed as `extra={"extra": {...}}`.
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: dict[str, object] = {
            "t": int(time.time() * 1000),
            "lvl": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload["extra"] = extra
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def _level_from(name: str | None) -> int:
    lvl = getattr(logging, (name or "INFO").upper(), None)
    return lvl if isinstance(lvl, int) else logging.INFO


def setup_logging(level: str | None = None) -> None:
    """
    Configure the root logger once for the worker process.

    Level comes from `level`, else `LOG_LEVEL`, else INFO.
    """
    root = logging.getLogger()
    if getattr(root, "_geojson_worker_configured", False):
        return

    lvl = _level_from(level or os.environ.get("LOG_LEVEL"))
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(lvl)
    if lvl > logging.DEBUG:
        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
    root._geojson_worker_configured = True  # type: ignore[attr-defined]
