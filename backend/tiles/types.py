from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from index.types import IndexKind, TileFeature
from sources.registry import NoSourceReason
from sources.types import TileId

# Reserved layer name shared by every GeoJSON-backed source.
GEOJSON_TILE_LAYER = "_geojsonTileLayer"


@dataclass(frozen=True)
class TransportTile:
    """
    A served tile in both forms: the feature slice and its encoded vector tile.
    """

    source_id: str
    tile_id: TileId
    name: str
    features: list[TileFeature]
    extent: int
    raw_data: bytes
    index_kind: IndexKind

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "extent": self.extent,
            "features": [f.as_dict() for f in self.features],
        }


@dataclass(frozen=True)
class EmptyTile:
    """The source is ready; this tile simply has no features."""

    source_id: str
    tile_id: TileId


@dataclass(frozen=True)
class NoSource:
    """No index is ready for the source; not an error."""

    source_id: str
    reason: NoSourceReason


TileOutcome = Union[TransportTile, EmptyTile, NoSource]
