from __future__ import annotations

import json
from typing import Any

import mapbox_vector_tile

from index.types import FeatureSlice


def wire_properties(tags: dict[str, Any]) -> dict[str, Any]:
    """
    Properties as the vector tile format can carry them.

    Scalars pass through, `None` is dropped, anything else is JSON-encoded.
    """
    out: dict[str, Any] = {}
    for key, value in tags.items():
        if value is None:
            continue
        if isinstance(value, (bool, int, float, str)):
            out[str(key)] = value
        else:
            out[str(key)] = json.dumps(value, ensure_ascii=False, default=str)
    return out


def encode_tile(layer_name: str, tile: FeatureSlice) -> bytes:
    """Encode a feature slice as a single-layer Mapbox Vector Tile."""
    features = []
    for f in tile.features:
        feature: dict[str, Any] = {
            "geometry": f.geometry,
            "properties": wire_properties(f.tags),
        }
        # Vector tile ids are unsigned integers.
        if isinstance(f.id, int) and not isinstance(f.id, bool) and f.id >= 0:
            feature["id"] = f.id
        features.append(feature)

    return mapbox_vector_tile.encode(
        [{"name": layer_name, "features": features}],
        default_options={
            # Geometries are already in tile coordinates, y pointing down.
            "quantize_bounds": None,
            "y_coord_down": True,
            "extents": int(tile.extent),
        },
    )
