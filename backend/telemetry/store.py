from __future__ import annotations

import json
import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import duckdb

from telemetry.sql import CREATE_EVENTS_TABLE_SQL, INSERT_EVENTS_SQL, SUMMARY_SQL_TEMPLATE

log = logging.getLogger(__name__)


def _safe_float(v) -> float | None:
    try:
        if v is None:
            return None
        return float(v)
    except (TypeError, ValueError):
        return None


@dataclass
class TelemetryStore:
    """
    DuckDB event log for `load_data` and `tile` operations.

    Writes are queued and flushed in batches by one background thread, so
    recording never blocks the worker.
    """

    path: Path
    conn: duckdb.DuckDBPyConnection
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)
    _q: "queue.Queue[dict[str, Any] | threading.Event]" = field(default_factory=queue.Queue, repr=False)
    _stop: threading.Event = field(default_factory=threading.Event, repr=False)
    _worker: threading.Thread | None = field(default=None, repr=False)

    def ensure_schema(self) -> None:
        with self._lock:
            self.conn.execute(CREATE_EVENTS_TABLE_SQL)

    def start(self) -> None:
        if self._worker is not None:
            return
        self._stop.clear()
        self._worker = threading.Thread(
            target=self._run, name="telemetry-writer", daemon=True
        )
        self._worker.start()

    def stop(self, *, timeout_s: float = 2.0) -> None:
        """
        Stop the writer thread and prevent further flushes.
        """
        self._stop.set()
        w = self._worker
        if w is not None and w.is_alive():
            w.join(timeout=timeout_s)
        self._worker = None

    def record(
        self,
        *,
        op: str,
        source_id: str,
        outcome: str,
        index_kind: str | None = None,
        tile: tuple[int, int, int] | None = None,
        stats: dict[str, Any] | None = None,
    ) -> None:
        # Non-blocking: enqueue and return.
        self.start()
        z, x, y = tile if tile is not None else (None, None, None)
        try:
            self._q.put_nowait(
                {
                    "ts_ms": int(time.time() * 1000),
                    "op": str(op),
                    "source_id": str(source_id),
                    "index_kind": index_kind,
                    "z": z,
                    "x": x,
                    "y": y,
                    "outcome": str(outcome),
                    "stats_json": json.dumps(stats or {}, ensure_ascii=False, default=str),
                }
            )
        except queue.Full:
            # drop telemetry on overload
            pass

    def flush(self, *, timeout_s: float = 2.0) -> None:
        """
        Wait until queued events are written (used by tests).
        """
        if self._worker is None:
            return
        # The writer sets the marker once everything queued before it is written.
        done = threading.Event()
        self._q.put(done)
        done.wait(timeout=timeout_s)

    def query(self, sql: str, params: list[Any] | None = None) -> list[tuple]:
        """
        Run a read query inside the worker process.

        DuckDB holds a file lock, so readers go through this connection.
        """
        with self._lock:
            if params:
                return self.conn.execute(sql, params).fetchall()
            return self.conn.execute(sql).fetchall()

    def summary(
        self,
        *,
        op: str | None = None,
        source_id: str | None = None,
        since_ms: int | None = None,
    ) -> list[dict[str, Any]]:
        where = []
        params: list[Any] = []
        if op:
            where.append("op = ?")
            params.append(op)
        if source_id:
            where.append("source_id = ?")
            params.append(source_id)
        if since_ms is not None:
            where.append("ts_ms >= ?")
            params.append(int(since_ms))

        where_sql = f"WHERE {' AND '.join(where)}" if where else ""
        rows = self.query(SUMMARY_SQL_TEMPLATE.format(where_sql=where_sql), params)

        out: list[dict[str, Any]] = []
        for op_v, outcome_v, n, avg_ms, p50, p95, avg_bytes in rows:
            out.append(
                {
                    "op": op_v,
                    "outcome": outcome_v,
                    "n": int(n),
                    "avgTotalMs": _safe_float(avg_ms),
                    "p50TotalMs": _safe_float(p50),
                    "p95TotalMs": _safe_float(p95),
                    "avgPayloadKB": _safe_float(avg_bytes) / 1024.0
                    if avg_bytes is not None
                    else None,
                }
            )
        return out

    def reset(self) -> None:
        # Stop the writer first so it can't write to a closed connection.
        self.stop(timeout_s=2.0)
        with self._lock:
            self.conn.close()
            self.path.unlink(missing_ok=True)

    def _write(self, batch: list[dict[str, Any]]) -> None:
        if not batch:
            return
        rows = [
            (
                e["ts_ms"],
                e["op"],
                e["source_id"],
                e["index_kind"],
                e["z"],
                e["x"],
                e["y"],
                e["outcome"],
                e["stats_json"],
            )
            for e in batch
        ]
        try:
            with self._lock:
                self.conn.executemany(INSERT_EVENTS_SQL, rows)
                # Make results visible to readers immediately.
                self.conn.execute("CHECKPOINT;")
        except duckdb.Error:
            log.warning("telemetry write failed", exc_info=True)

    def _run(self) -> None:
        self.ensure_schema()
        batch: list[dict[str, Any]] = []
        last_write = time.time()

        while not self._stop.is_set():
            try:
                item = self._q.get(timeout=0.1)
            except queue.Empty:
                item = None

            marker = None
            if isinstance(item, threading.Event):
                marker = item
            elif item is not None:
                batch.append(item)

            # Write on size, age, or an explicit flush.
            now = time.time()
            if marker is not None or len(batch) >= 250 or (batch and now - last_write >= 0.5):
                self._write(batch)
                batch = []
                last_write = now
            if item is not None:
                self._q.task_done()
            if marker is not None:
                marker.set()

        # Drain whatever was queued before the stop.
        markers: list[threading.Event] = []
        while True:
            try:
                item = self._q.get_nowait()
            except queue.Empty:
                break
            if isinstance(item, threading.Event):
                markers.append(item)
            else:
                batch.append(item)
            self._q.task_done()
        self._write(batch)
        for marker in markers:
            marker.set()
