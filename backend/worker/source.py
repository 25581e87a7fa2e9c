from __future__ import annotations

import logging
import time
from typing import Any, Callable

from config.settings import WorkerSettings, get_settings
from geo.aoi import BBox
from geo.rewind import rewind
from index.builder import build_index
from sources.errors import IndexBuildError, InvalidInputError, NotClusteredError
from sources.loader import DataLoader, DefaultDataLoader
from sources.registry import SourceRegistry
from sources.types import (
    ClusterLeavesRequest,
    ClusterQueryRequest,
    LoadDataRequest,
    RemoveSourceRequest,
    TileRequest,
)
from telemetry.singleton import record_event
from tiles.reload import ReloadCoordinator, ReloadPath
from tiles.server import TileServer
from tiles.types import EmptyTile, NoSource, TransportTile

log = logging.getLogger(__name__)

Callback = Callable[[Exception | None, Any], None]


class GeoJSONWorkerSource:
    """
    Worker-side GeoJSON source: indexes data per source id and serves tiles.

    `load_data` must complete for a source before `load_tile` can serve
    anything for it. Results are delivered as `callback(error, result)`; no
    failure escapes these methods.

    A custom `loader` replaces the default fetch/parse step, e.g. to accept
    another format that converts to GeoJSON.
    """

    def __init__(
        self,
        *,
        registry: SourceRegistry | None = None,
        loader: DataLoader | None = None,
        settings: WorkerSettings | None = None,
    ):
        self.settings = settings or get_settings()
        self.registry = registry or SourceRegistry()
        self.loader = loader or DefaultDataLoader(timeout_s=self.settings.fetchTimeoutS)
        self.tiles = TileServer(registry=self.registry)
        self.reloads = ReloadCoordinator(registry=self.registry)

    def load_data(self, request: LoadDataRequest, callback: Callback) -> None:
        """
        Fetch (if needed), parse and index GeoJSON for `request.sourceId`.

        On success the source's entry is replaced and its served-tile records
        start empty. On failure any prior entry keeps serving.
        """
        source_id = request.sourceId
        generation = self.registry.begin_load(source_id)
        t0 = time.perf_counter()

        def _on_data(err: Exception | None, data: Any) -> None:
            if err is None and not isinstance(data, dict):
                err = InvalidInputError()
            if err is not None:
                return self._finish_load(request, generation, t0, err, callback)
            if not self.registry.is_current(source_id, generation):
                log.info(
                    "load superseded before indexing",
                    extra={"extra": {"source": source_id, "generation": generation}},
                )
                return callback(None, None)

            try:
                rewind(data, True)
                index = build_index(
                    data,
                    request,
                    supercluster_defaults=self.settings.superclusterDefaults,
                    geojson_vt_defaults=self.settings.geojsonVtDefaults,
                    tile_cache_size=self.settings.tileCacheSize,
                )
            except IndexBuildError as e:
                return self._finish_load(request, generation, t0, e, callback)
            except Exception as e:
                # Structurally broken GeoJSON trips the winding pass first.
                err = IndexBuildError(str(e) or e.__class__.__name__)
                err.__cause__ = e
                return self._finish_load(request, generation, t0, err, callback)

            self.registry.commit(source_id, generation, index)
            self._finish_load(request, generation, t0, None, callback, index_kind=index.kind)

        try:
            self.loader.load(request, _on_data)
        except Exception as e:
            # A custom loader raised instead of calling back.
            self._finish_load(request, generation, t0, e, callback)

    def _finish_load(
        self,
        request: LoadDataRequest,
        generation: int,
        t0: float,
        err: Exception | None,
        callback: Callback,
        *,
        index_kind: str | None = None,
    ) -> None:
        total_ms = (time.perf_counter() - t0) * 1000.0
        if err is not None:
            self.registry.fail(request.sourceId, generation)
            log.warning(
                "load_data failed",
                extra={"extra": {"source": request.sourceId, "error": str(err)}},
            )
        else:
            log.info(
                "load_data done",
                extra={
                    "extra": {
                        "source": request.sourceId,
                        "kind": index_kind,
                        "ms": round(total_ms, 1),
                    }
                },
            )
        record_event(
            op="load_data",
            source_id=request.sourceId,
            outcome="error" if err is not None else "ok",
            index_kind=index_kind,
            stats={
                "timingsMs": {"total": total_ms},
                "error": type(err).__name__ if err is not None else None,
            },
        )
        callback(err, None)

    def load_tile(self, request: TileRequest, callback: Callback) -> None:
        """
        Serve one tile fresh from the index.

        The result is `TransportTile`, `EmptyTile`, or `NoSource`. Served
        tiles and empty tiles are recorded as loaded for `(source, uid)`.
        """
        t0 = time.perf_counter()
        tile_id = request.tileId.to_tile_id()
        entry = self.registry.entry(request.sourceId)
        try:
            outcome = self.tiles.get_tile(request.sourceId, tile_id, request.maxZoom)
        except Exception as e:
            log.exception(
                "tile query failed",
                extra={"extra": {"source": request.sourceId, "uid": request.uid}},
            )
            return callback(e, None)

        log.debug(
            "tile served",
            extra={
                "extra": {
                    "source": request.sourceId,
                    "tile": [tile_id.z, tile_id.x, tile_id.y],
                    "outcome": type(outcome).__name__,
                }
            },
        )
        if entry is not None and not isinstance(outcome, NoSource):
            self.reloads.mark_loaded(request.sourceId, request.uid, entry.generation, outcome)

        self._record_tile(request, outcome, t0, ReloadPath.full)
        callback(None, outcome)

    def reload_tile(self, request: TileRequest, callback: Callback) -> ReloadPath:
        """
        Re-serve a tile the worker has already loaded, or load it fresh when
        it was never served under the source's current data.
        """
        return self.reloads.reload_tile(
            request,
            callback,
            full_load=self.load_tile,
            incremental=self._reload_loaded_tile,
        )

    def _reload_loaded_tile(self, request: TileRequest, callback: Callback) -> None:
        t0 = time.perf_counter()
        outcome = self.reloads.loaded_outcome(request.sourceId, request.uid)
        if outcome is None:
            return self.load_tile(request, callback)
        self._record_tile(request, outcome, t0, ReloadPath.incremental)
        callback(None, outcome)

    def remove_source(self, request: RemoveSourceRequest) -> None:
        self.registry.remove(request.sourceId)

    def get_clusters(self, request: ClusterQueryRequest, callback: Callback) -> None:
        """Clusters and points of a clustered source inside a bbox, as GeoJSON."""
        try:
            index = self._clustered(request.sourceId)
            if isinstance(index, NoSource):
                return callback(None, index)
            features = index.get_clusters(BBox.from_list(request.bbox), request.zoom)
        except (NotClusteredError, ValueError) as e:
            return callback(e, None)
        callback(None, {"type": "FeatureCollection", "features": features})

    def get_cluster_leaves(self, request: ClusterLeavesRequest, callback: Callback) -> None:
        try:
            index = self._clustered(request.sourceId)
            if isinstance(index, NoSource):
                return callback(None, index)
            leaves = index.get_leaves(request.clusterId, request.limit, request.offset)
            expansion_zoom = index.get_cluster_expansion_zoom(request.clusterId)
        except (NotClusteredError, KeyError) as e:
            return callback(e, None)
        callback(
            None,
            {
                "clusterId": request.clusterId,
                "expansionZoom": expansion_zoom,
                "features": leaves,
            },
        )

    def _clustered(self, source_id: str) -> Any:
        entry = self.registry.entry(source_id)
        if entry is None:
            return NoSource(source_id=source_id, reason=self.registry.missing_reason(source_id))
        if entry.index.kind != "cluster":
            raise NotClusteredError(f"Source {source_id!r} is not clustered")
        return entry.index

    def _record_tile(self, request: TileRequest, outcome: Any, t0: float, path: ReloadPath) -> None:
        if isinstance(outcome, TransportTile):
            label, payload, kind = "tile", len(outcome.raw_data), outcome.index_kind
            n_features = len(outcome.features)
        elif isinstance(outcome, EmptyTile):
            label, payload, kind = "empty", 0, None
            n_features = 0
        else:
            label, payload, kind = f"no_source:{outcome.reason.value}", 0, None
            n_features = 0
        t = request.tileId
        record_event(
            op="tile",
            source_id=request.sourceId,
            outcome=label,
            index_kind=kind,
            tile=(t.z, t.x, t.y),
            stats={
                "timingsMs": {"total": (time.perf_counter() - t0) * 1000.0},
                "payloadBytes": payload,
                "featureCount": n_features,
                "path": path.value,
            },
        )
