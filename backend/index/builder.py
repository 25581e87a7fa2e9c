from __future__ import annotations

import dataclasses
import logging
from typing import Any, Sequence

from config.settings import merged_options
from index.cluster_index import build_cluster_index
from index.options import ClusterOptions, TileIndexOptions
from index.tile_index import build_tile_index
from index.types import SpatialIndex
from sources.errors import IndexBuildError
from sources.types import LoadDataRequest

log = logging.getLogger(__name__)


def aggregation_options(options: ClusterOptions, keys: Sequence[str]) -> ClusterOptions:
    """
    Cluster options that collect the values of `keys` into every cluster.

    Returns a new options value; `options` is left untouched.
    """
    keys = tuple(keys)

    def initial() -> dict[str, Any]:
        return {key: [] for key in keys}

    def reduce(accumulated: dict[str, Any], props: dict[str, Any]) -> dict[str, Any]:
        for key in keys:
            value = props.get(key)
            if value is not None:
                accumulated[key].append(value)
        return accumulated

    return dataclasses.replace(options, initial=initial, reduce=reduce)


def build_index(
    data: dict[str, Any],
    request: LoadDataRequest,
    *,
    supercluster_defaults: dict[str, Any] | None = None,
    geojson_vt_defaults: dict[str, Any] | None = None,
    tile_cache_size: int = 256,
) -> SpatialIndex:
    """
    Index GeoJSON with the clustering engine (`request.cluster`) or the tiling engine.

    Any failure raised while building is reported as `IndexBuildError`.
    """
    try:
        if request.cluster:
            opts = ClusterOptions.from_mapping(
                merged_options(supercluster_defaults, request.superclusterOptions)
            )
            if request.clusterMapProperties:
                opts = aggregation_options(opts, request.clusterMapProperties)
            features = data.get("features")
            if not isinstance(features, list):
                raise ValueError("Clustering requires a FeatureCollection with a `features` list")
            return build_cluster_index(features, opts)

        opts_vt = TileIndexOptions.from_mapping(
            merged_options(geojson_vt_defaults, request.geojsonVtOptions)
        )
        return build_tile_index(data, opts_vt, cache_size=tile_cache_size)
    except IndexBuildError:
        raise
    except Exception as e:
        log.warning(
            "index build failed",
            extra={"extra": {"source": request.sourceId, "cluster": request.cluster}},
        )
        raise IndexBuildError(str(e) or e.__class__.__name__) from e
