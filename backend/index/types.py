from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

from shapely.geometry.base import BaseGeometry

IndexKind = Literal["tile", "cluster"]

# Vector tile geometry types.
POINT = 1
LINESTRING = 2
POLYGON = 3


@dataclass(frozen=True)
class TileFeature:
    """
    One feature of a tile slice, in integer tile coordinates `[0, extent]`
    with y growing downwards.
    """

    type: int
    geometry: BaseGeometry
    tags: dict[str, Any] = field(default_factory=dict)
    id: int | str | None = None

    def as_dict(self) -> dict[str, Any]:
        """geojson-vt shaped representation: nested coordinate lists per type."""
        return {
            "type": self.type,
            "geometry": _nested_coords(self.geometry, self.type),
            "tags": dict(self.tags),
            **({"id": self.id} if self.id is not None else {}),
        }


@dataclass(frozen=True)
class FeatureSlice:
    features: list[TileFeature]
    extent: int

    def __len__(self) -> int:
        return len(self.features)


class SpatialIndex(Protocol):
    """
    Tile-cutout capability shared by every index engine.

    - TileIndex: clips and simplifies arbitrary geometries per tile
    - ClusterIndex: serves point clusters per zoom level
    """

    kind: IndexKind

    def get_tile(self, z: int, x: int, y: int) -> FeatureSlice | None: ...


def _nested_coords(geom: BaseGeometry, gtype: int) -> list:
    parts = list(geom.geoms) if hasattr(geom, "geoms") else [geom]
    if gtype == POINT:
        return [[int(x), int(y)] for p in parts for x, y in p.coords]
    if gtype == LINESTRING:
        return [[[int(x), int(y)] for x, y in line.coords] for line in parts]
    rings: list = []
    for poly in parts:
        rings.append([[int(x), int(y)] for x, y in poly.exterior.coords])
        for hole in poly.interiors:
            rings.append([[int(x), int(y)] for x, y in hole.coords])
    return rings
