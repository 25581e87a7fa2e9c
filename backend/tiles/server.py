from __future__ import annotations

import logging
from dataclasses import dataclass

from geo.tiles import clamp_query_zoom
from sources.registry import SourceRegistry
from sources.types import TileId
from tiles.encoder import encode_tile
from tiles.types import GEOJSON_TILE_LAYER, EmptyTile, NoSource, TileOutcome, TransportTile

log = logging.getLogger(__name__)


@dataclass
class TileServer:
    """
    Answers tile-cutout queries against the registry's indexes.
    """

    registry: SourceRegistry
    layer_name: str = GEOJSON_TILE_LAYER

    def get_tile(self, source_id: str, tile_id: TileId, max_zoom: int) -> TileOutcome:
        entry = self.registry.entry(source_id)
        if entry is None:
            return NoSource(source_id=source_id, reason=self.registry.missing_reason(source_id))

        zoom = clamp_query_zoom(tile_id.z, max_zoom)
        tile = entry.index.get_tile(zoom, tile_id.x, tile_id.y)
        if tile is None:
            log.debug(
                "empty tile",
                extra={"extra": {"source": source_id, "z": zoom, "x": tile_id.x, "y": tile_id.y}},
            )
            return EmptyTile(source_id=source_id, tile_id=tile_id)

        return TransportTile(
            source_id=source_id,
            tile_id=tile_id,
            name=self.layer_name,
            features=list(tile.features),
            extent=tile.extent,
            raw_data=encode_tile(self.layer_name, tile),
            index_kind=entry.index.kind,
        )
