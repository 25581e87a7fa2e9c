from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable

from config.settings import WorkerSettings, get_settings
from sources.loader import DataLoader, DefaultDataLoader
from sources.types import (
    ClusterLeavesRequest,
    ClusterQueryRequest,
    LoadDataRequest,
    RemoveSourceRequest,
    TileRequest,
)
from worker.source import GeoJSONWorkerSource

log = logging.getLogger(__name__)

_STOP = object()


@dataclass
class WorkerActor:
    """
    Runs a `GeoJSONWorkerSource` on one dedicated thread.

    Every request and every fetch continuation executes on that thread, in
    arrival order, so the worker source never sees concurrent calls. Remote
    fetches run on a small pool and post their continuation back here.
    """

    settings: WorkerSettings = field(default_factory=get_settings)
    loader: DataLoader | None = None
    _q: "queue.Queue[Any]" = field(default_factory=queue.Queue, repr=False)
    _thread: threading.Thread | None = field(default=None, repr=False)
    _pool: ThreadPoolExecutor | None = field(default=None, repr=False)
    source: GeoJSONWorkerSource | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self._pool = ThreadPoolExecutor(
            max_workers=self.settings.fetchWorkers, thread_name_prefix="geojson-fetch"
        )
        loader = self.loader or DefaultDataLoader(
            timeout_s=self.settings.fetchTimeoutS, executor=self._pool, post=self.post
        )
        self.source = GeoJSONWorkerSource(loader=loader, settings=self.settings)

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="geojson-worker", daemon=True)
        self._thread.start()

    def close(self, *, timeout_s: float = 5.0) -> None:
        t = self._thread
        if t is not None:
            self._q.put(_STOP)
            t.join(timeout=timeout_s)
        self._thread = None
        if self._pool is not None:
            self._pool.shutdown(wait=False, cancel_futures=True)
        # Release every index along with the worker.
        if self.source is not None:
            self.source.registry.clear()

    def post(self, fn: Callable[[], None]) -> None:
        """Schedule `fn` on the worker thread."""
        self._q.put(fn)

    def send(self, method: str, request: Any) -> Future:
        """
        Dispatch `method` on the worker source; the future resolves with the
        callback result or fails with the callback error.
        """
        self.start()
        future: Future = Future()

        def _callback(err: Exception | None, result: Any = None) -> None:
            if future.done():
                return
            if err is not None:
                future.set_exception(err)
            else:
                future.set_result(result)

        def _call() -> None:
            src = self.source
            if method == "load_data":
                src.load_data(_as(LoadDataRequest, request), _callback)
            elif method == "load_tile":
                src.load_tile(_as(TileRequest, request), _callback)
            elif method == "reload_tile":
                # Resolves with (ReloadPath, outcome).
                req = _as(TileRequest, request)
                path = src.reloads.route(req.sourceId, req.uid)
                src.reload_tile(
                    req,
                    lambda err, res=None: _callback(err, None if err else (path, res)),
                )
            elif method == "remove_source":
                src.remove_source(_as(RemoveSourceRequest, request))
                _callback(None, None)
            elif method == "get_clusters":
                src.get_clusters(_as(ClusterQueryRequest, request), _callback)
            elif method == "get_cluster_leaves":
                src.get_cluster_leaves(_as(ClusterLeavesRequest, request), _callback)
            else:
                _callback(ValueError(f"Unknown worker method: {method}"))

        self.post(lambda: _guarded(_call, _callback))
        return future

    def _run(self) -> None:
        while True:
            item = self._q.get()
            if item is _STOP:
                break
            try:
                item()
            except Exception:
                log.exception("worker task failed")


def _as(model: type, request: Any) -> Any:
    if isinstance(request, model):
        return request
    return model.model_validate(request)


def _guarded(fn: Callable[[], None], callback: Callable[..., None]) -> None:
    # Validation errors and other faults go back through the request's future.
    try:
        fn()
    except Exception as e:
        callback(e)
