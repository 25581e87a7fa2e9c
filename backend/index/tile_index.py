from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

import shapely
from shapely.affinity import affine_transform
from shapely.geometry import MultiLineString, MultiPoint, MultiPolygon, shape
from shapely.geometry import box as shapely_box
from shapely.geometry.base import BaseGeometry
from shapely.strtree import STRtree

from geo.projection import project_geometry_to_unit
from geo.tiles import MAX_TILE_ZOOM
from index.options import TileIndexOptions
from index.types import LINESTRING, POINT, POLYGON, FeatureSlice, IndexKind, TileFeature

log = logging.getLogger(__name__)

_TYPE_BY_GEOM = {
    "Point": POINT,
    "MultiPoint": POINT,
    "LineString": LINESTRING,
    "LinearRing": LINESTRING,
    "MultiLineString": LINESTRING,
    "Polygon": POLYGON,
    "MultiPolygon": POLYGON,
}

_MULTI_BY_TYPE = {POINT: MultiPoint, LINESTRING: MultiLineString, POLYGON: MultiPolygon}


@dataclass(frozen=True)
class _IndexedFeature:
    # Geometry in unit Web Mercator coordinates.
    geometry: BaseGeometry
    type: int
    tags: dict[str, Any]
    id: int | str | None


@dataclass
class TileIndex:
    """
    Spatial tiling of a GeoJSON object.

    Notes:
    - Features are projected once into the unit Web Mercator square and kept in
      an STRtree; tiles are cut lazily on first request and cached.
    - Geometries are clipped to the tile bounds widened by `buffer` pixels and
      simplified below `max_zoom`, then snapped to integer tile coordinates.
    """

    options: TileIndexOptions
    cache_size: int = 256
    kind: IndexKind = field(default="tile", init=False)

    _features: list[_IndexedFeature] = field(default_factory=list, repr=False)
    _tree: STRtree | None = field(default=None, repr=False)
    _tile_cache: dict[tuple[int, int, int], FeatureSlice | None] = field(
        default_factory=dict, repr=False
    )

    @property
    def feature_count(self) -> int:
        return len(self._features)

    def get_tile(self, z: int, x: int, y: int) -> FeatureSlice | None:
        z, x, y = int(z), int(x), int(y)
        if z < 0 or z > MAX_TILE_ZOOM:
            return None
        n = 2**z
        x = x % n
        if y < 0 or y >= n:
            return None

        key = (z, x, y)
        if key in self._tile_cache:
            return self._tile_cache[key]

        out = self._cut_tile(z, x, y)
        _bounded_cache_put(self._tile_cache, key, out, max_items=self.cache_size)
        return out

    def _cut_tile(self, z: int, x: int, y: int) -> FeatureSlice | None:
        if self._tree is None or not self._features:
            return None

        opts = self.options
        n = 2**z
        pad = opts.buffer / opts.extent
        min_x, min_y = (x - pad) / n, (y - pad) / n
        max_x, max_y = (x + 1 + pad) / n, (y + 1 + pad) / n
        clip_box = shapely_box(min_x, min_y, max_x, max_y)

        # No simplification at the deepest zoom.
        tolerance = 0.0 if z >= opts.max_zoom else opts.tolerance / (n * opts.extent)
        scale = float(n * opts.extent)
        matrix = [scale, 0.0, 0.0, scale, -x * opts.extent, -y * opts.extent]

        features: list[TileFeature] = []
        for i in sorted(_to_int_list(self._tree.query(clip_box))):
            f = self._features[i]
            if f.type == POINT:
                clipped = f.geometry.intersection(clip_box)
            else:
                clipped = shapely.clip_by_rect(f.geometry, min_x, min_y, max_x, max_y)
            clipped = _only_type(clipped, f.type)
            if clipped is None:
                continue
            if tolerance > 0.0 and f.type != POINT:
                clipped = clipped.simplify(tolerance, preserve_topology=f.type == POLYGON)
            local = shapely.set_precision(affine_transform(clipped, matrix), 1.0)
            local = _only_type(local, f.type)
            if local is None:
                continue
            features.append(TileFeature(type=f.type, geometry=local, tags=f.tags, id=f.id))

        if not features:
            return None
        return FeatureSlice(features=features, extent=opts.extent)


def build_tile_index(
    data: dict[str, Any], options: TileIndexOptions | None = None, *, cache_size: int = 256
) -> TileIndex:
    opts = options or TileIndexOptions()
    idx = TileIndex(options=opts, cache_size=cache_size)
    for feature in _iter_features(data):
        geom_json = feature.get("geometry")
        if not geom_json:
            continue
        props = feature.get("properties") or {}
        fid = feature.get("id")
        if not isinstance(fid, (int, str)) or isinstance(fid, bool):
            fid = None
        for part in _split_collection(shape(geom_json)):
            gtype = _TYPE_BY_GEOM.get(part.geom_type)
            if gtype is None or part.is_empty:
                continue
            idx._features.append(
                _IndexedFeature(
                    geometry=project_geometry_to_unit(part),
                    type=gtype,
                    tags=dict(props),
                    id=fid,
                )
            )

    idx._tree = STRtree([f.geometry for f in idx._features])
    log.debug("tile index built", extra={"extra": {"features": idx.feature_count}})
    return idx


def _iter_features(data: dict[str, Any]) -> Iterable[dict[str, Any]]:
    gtype = data.get("type")
    if gtype == "FeatureCollection":
        features = data.get("features")
        if not isinstance(features, list):
            raise ValueError("FeatureCollection is missing a `features` list")
        return [f for f in features if isinstance(f, dict)]
    if gtype == "Feature":
        return [data]
    # A bare geometry.
    return [{"type": "Feature", "geometry": data, "properties": {}}]


def _split_collection(geom: BaseGeometry) -> list[BaseGeometry]:
    if geom.geom_type == "GeometryCollection":
        out: list[BaseGeometry] = []
        for g in geom.geoms:
            out.extend(_split_collection(g))
        return out
    return [geom]


def _only_type(geom: BaseGeometry, gtype: int) -> BaseGeometry | None:
    """Drop collapsed parts whose dimension no longer matches the feature type."""
    if geom is None or geom.is_empty:
        return None
    if _TYPE_BY_GEOM.get(geom.geom_type) == gtype:
        return geom
    parts = [
        p
        for p in _split_collection(geom)
        if not p.is_empty and _TYPE_BY_GEOM.get(p.geom_type) == gtype
    ]
    if not parts:
        return None
    flat: list[BaseGeometry] = []
    for p in parts:
        flat.extend(p.geoms if p.geom_type.startswith("Multi") else [p])
    return flat[0] if len(flat) == 1 else _MULTI_BY_TYPE[gtype](flat)


def _to_int_list(idxs: Any) -> list[int]:
    if idxs is None:
        return []
    return [int(i) for i in idxs]


def _bounded_cache_put(cache: dict, key, value, *, max_items: int) -> None:
    cache[key] = value
    if len(cache) > max_items:
        oldest = next(iter(cache.keys()))
        if oldest != key:
            cache.pop(oldest, None)
