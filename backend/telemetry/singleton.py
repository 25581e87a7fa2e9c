from __future__ import annotations

import logging
import threading
from typing import Any

import duckdb

from telemetry.config import telemetry_enabled, telemetry_path
from telemetry.store import TelemetryStore

log = logging.getLogger(__name__)

_STORE: TelemetryStore | None = None
_STORE_LOCK = threading.RLock()


def get_store() -> TelemetryStore | None:
    global _STORE
    if not telemetry_enabled():
        return None
    with _STORE_LOCK:
        path = telemetry_path()
        if _STORE is not None:
            # If the path changes during a session (or across tests),
            # reopen the store on the new path.
            if _STORE.path.resolve() == path.resolve():
                return _STORE
            _STORE.stop(timeout_s=2.0)
            _STORE.conn.close()
            _STORE = None

        path.parent.mkdir(parents=True, exist_ok=True)
        # Writes are serialized in a single writer thread.
        conn = duckdb.connect(str(path))
        _STORE = TelemetryStore(path=path, conn=conn)
        _STORE.ensure_schema()
        _STORE.start()
        return _STORE


def reset_store() -> None:
    global _STORE
    with _STORE_LOCK:
        if _STORE is not None:
            _STORE.reset()
            _STORE = None
        else:
            telemetry_path().unlink(missing_ok=True)


def record_event(**kwargs: Any) -> None:
    """
    Persist a worker event for later analysis (best-effort).

    Telemetry problems are logged and never surface to the caller.
    """
    try:
        store = get_store()
        if store is not None:
            store.record(**kwargs)
    except (duckdb.Error, OSError):
        log.debug("telemetry unavailable", exc_info=True)
