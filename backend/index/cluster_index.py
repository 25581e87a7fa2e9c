from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any

from shapely.geometry import Point
from shapely.geometry import box as shapely_box
from shapely.strtree import STRtree

from geo.aoi import BBox
from geo.projection import lonlat_to_unit, unit_to_lonlat
from index.options import ClusterOptions
from index.types import POINT, FeatureSlice, IndexKind, TileFeature

log = logging.getLogger(__name__)


@dataclass
class _Node:
    """A leaf point or a cluster, in unit Web Mercator coordinates."""

    x: float
    y: float
    # Leaf positions (into ClusterIndex._points) in encounter order.
    leaves: list[int]
    id: int | None = None
    # Zoom at which the node was last visited while clustering.
    zoom: float = math.inf
    parent_id: int | None = None
    # Zoom level the cluster was formed at; None for leaves.
    origin_zoom: int | None = None
    properties: dict[str, Any] | None = None

    @property
    def num_points(self) -> int:
        return len(self.leaves)

    @property
    def is_cluster(self) -> bool:
        return self.id is not None


@dataclass
class _Level:
    nodes: list[_Node]
    tree: STRtree


@dataclass
class ClusterIndex:
    """
    Greedy point clustering across zoom levels.

    For each zoom from `max_zoom` down to `min_zoom`, points (or clusters from
    the zoom above) are visited in order and absorb every unvisited neighbour
    within `radius` pixels. Cluster properties are folded with the optional
    `initial`/`reduce` pair over all leaves in encounter order.
    """

    options: ClusterOptions
    kind: IndexKind = field(default="cluster", init=False)

    # Original GeoJSON point features, in input order.
    _points: list[dict[str, Any]] = field(default_factory=list, repr=False)
    _levels: dict[int, _Level] = field(default_factory=dict, repr=False)
    _clusters: dict[int, _Node] = field(default_factory=dict, repr=False)
    _next_id: int = field(default=0, repr=False)

    @property
    def point_count(self) -> int:
        return len(self._points)

    def get_tile(self, z: int, x: int, y: int) -> FeatureSlice | None:
        opts = self.options
        z = int(z)
        if z < 0:
            return None
        level = self._levels.get(self._limit_zoom(z))
        if level is None:
            return None

        z2 = 2**z
        x, y = int(x), int(y)
        pad = opts.radius / opts.extent
        top = (y - pad) / z2
        bottom = (y + 1 + pad) / z2

        features: list[TileFeature] = []
        self._add_tile_features(
            features, level, ((x - pad) / z2, top, (x + 1 + pad) / z2, bottom), z2, x, y
        )
        # Wrap around the antimeridian.
        if x == 0:
            self._add_tile_features(
                features, level, (1 - pad / z2, top, 1.0, bottom), z2, z2, y
            )
        if x == z2 - 1:
            self._add_tile_features(features, level, (0.0, top, pad / z2, bottom), z2, -1, y)

        if not features:
            return None
        return FeatureSlice(features=features, extent=opts.extent)

    def get_clusters(self, bbox: BBox, zoom: int) -> list[dict[str, Any]]:
        """
        Clusters and points intersecting `bbox` at `zoom` as GeoJSON features.
        """
        level = self._levels.get(self._limit_zoom(int(zoom)))
        if level is None:
            return []
        b = bbox.normalized()
        west, east = b.min_lon, b.max_lon
        if east - west >= 360.0:
            west, east = -180.0, 180.0
        elif west < -180.0 or east > 180.0:
            west = ((west + 180.0) % 360.0) - 180.0
            east = ((east + 180.0) % 360.0) - 180.0
        if west > east:
            # bbox crosses the antimeridian: query both halves.
            return self.get_clusters(
                BBox(west, b.min_lat, 180.0, b.max_lat), zoom
            ) + self.get_clusters(BBox(-180.0, b.min_lat, east, b.max_lat), zoom)

        min_x, max_y = lonlat_to_unit(west, b.min_lat)
        max_x, min_y = lonlat_to_unit(east, b.max_lat)
        out: list[dict[str, Any]] = []
        for node in self._query(level, (min_x, min_y, max_x, max_y)):
            if node.is_cluster:
                lon, lat = unit_to_lonlat(node.x, node.y)
                out.append(
                    {
                        "type": "Feature",
                        "id": node.id,
                        "properties": self._cluster_properties(node),
                        "geometry": {"type": "Point", "coordinates": [lon, lat]},
                    }
                )
            else:
                out.append(self._points[node.leaves[0]])
        return out

    def get_leaves(
        self, cluster_id: int, limit: int = 10, offset: int = 0
    ) -> list[dict[str, Any]]:
        node = self._clusters.get(int(cluster_id))
        if node is None:
            raise KeyError(f"No cluster with the specified id: {cluster_id}")
        leaves = node.leaves[int(offset) :]
        if limit is not None and limit != math.inf:
            leaves = leaves[: int(limit)]
        return [self._points[i] for i in leaves]

    def get_cluster_expansion_zoom(self, cluster_id: int) -> int:
        """Lowest zoom at which the cluster breaks apart into its children."""
        node = self._clusters.get(int(cluster_id))
        if node is None:
            raise KeyError(f"No cluster with the specified id: {cluster_id}")
        return min(int(node.origin_zoom) + 1, self.options.max_zoom + 1)

    def _limit_zoom(self, z: int) -> int:
        return max(self.options.min_zoom, min(int(z), self.options.max_zoom + 1))

    def _query(self, level: _Level, bounds: tuple[float, float, float, float]) -> list[_Node]:
        idxs = level.tree.query(shapely_box(*bounds))
        min_x, min_y, max_x, max_y = bounds
        out = []
        for i in sorted(int(i) for i in idxs):
            node = level.nodes[i]
            if min_x <= node.x <= max_x and min_y <= node.y <= max_y:
                out.append(node)
        return out

    def _add_tile_features(
        self,
        features: list[TileFeature],
        level: _Level,
        bounds: tuple[float, float, float, float],
        z2: int,
        x: int,
        y: int,
    ) -> None:
        extent = self.options.extent
        for node in self._query(level, bounds):
            px = round(extent * (node.x * z2 - x))
            py = round(extent * (node.y * z2 - y))
            if node.is_cluster:
                tags = self._cluster_properties(node)
                fid: int | str | None = node.id
            else:
                point = self._points[node.leaves[0]]
                tags = dict(point.get("properties") or {})
                fid = point.get("id")
            features.append(
                TileFeature(type=POINT, geometry=Point(px, py), tags=tags, id=fid)
            )

    def _cluster_properties(self, node: _Node) -> dict[str, Any]:
        n = node.num_points
        if n >= 10000:
            abbrev: int | str = f"{round(n / 1000)}k"
        elif n >= 1000:
            abbrev = f"{round(n / 100) / 10}k"
        else:
            abbrev = n
        return {
            **(node.properties or {}),
            "cluster": True,
            "cluster_id": node.id,
            "point_count": n,
            "point_count_abbreviated": abbrev,
        }

    def _cluster(self, nodes: list[_Node], zoom: int) -> list[_Node]:
        opts = self.options
        r = opts.radius / (opts.extent * 2**zoom)
        r2 = r * r
        tree = STRtree([Point(n.x, n.y) for n in nodes])

        out: list[_Node] = []
        for node in nodes:
            if node.zoom <= zoom:
                continue
            node.zoom = zoom

            neighbours: list[_Node] = []
            for j in sorted(int(j) for j in tree.query(shapely_box(node.x - r, node.y - r, node.x + r, node.y + r))):
                b = nodes[j]
                if b is node or b.zoom <= zoom:
                    continue
                if (b.x - node.x) ** 2 + (b.y - node.y) ** 2 <= r2:
                    neighbours.append(b)

            if not neighbours:
                out.append(node)
                continue

            cluster_id = self._next_id
            self._next_id += 1
            wx = node.x * node.num_points
            wy = node.y * node.num_points
            leaves = list(node.leaves)
            for b in neighbours:
                b.zoom = zoom
                b.parent_id = cluster_id
                wx += b.x * b.num_points
                wy += b.y * b.num_points
                leaves.extend(b.leaves)
            node.parent_id = cluster_id

            cluster = _Node(
                x=wx / len(leaves),
                y=wy / len(leaves),
                leaves=leaves,
                id=cluster_id,
                origin_zoom=zoom,
                properties=self._reduce_leaves(leaves),
            )
            self._clusters[cluster_id] = cluster
            out.append(cluster)
        return out

    def _reduce_leaves(self, leaves: list[int]) -> dict[str, Any] | None:
        initial, reduce = self.options.initial, self.options.reduce
        if initial is None or reduce is None:
            return None
        acc = initial()
        for i in leaves:
            acc = reduce(acc, self._points[i].get("properties") or {})
        return acc


def build_cluster_index(
    features: list[dict[str, Any]], options: ClusterOptions | None = None
) -> ClusterIndex:
    idx = ClusterIndex(options=options or ClusterOptions())
    opts = idx.options

    nodes: list[_Node] = []
    skipped = 0
    for feature in features:
        geom = (feature or {}).get("geometry") or {}
        if geom.get("type") != "Point":
            skipped += 1
            continue
        coords = geom.get("coordinates")
        if not isinstance(coords, (list, tuple)) or len(coords) < 2:
            raise ValueError(f"Invalid Point coordinates: {coords!r}")
        ux, uy = lonlat_to_unit(float(coords[0]), float(coords[1]))
        nodes.append(_Node(x=ux, y=uy, leaves=[len(idx._points)]))
        idx._points.append(feature)

    if skipped:
        log.info(
            "cluster index skipped non-point features",
            extra={"extra": {"skipped": skipped}},
        )

    # Deepest level holds the raw points.
    idx._levels[opts.max_zoom + 1] = _Level(nodes=nodes, tree=_tree_for(nodes))
    for z in range(opts.max_zoom, opts.min_zoom - 1, -1):
        nodes = idx._cluster(nodes, z)
        idx._levels[z] = _Level(nodes=nodes, tree=_tree_for(nodes))
    return idx


def _tree_for(nodes: list[_Node]) -> STRtree:
    return STRtree([Point(n.x, n.y) for n in nodes])
