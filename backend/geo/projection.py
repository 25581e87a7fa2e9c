from __future__ import annotations

from functools import lru_cache
from typing import Any

import numpy as np
from pyproj import Transformer
from shapely.ops import transform as shapely_transform

# Half the EPSG:3857 world width in meters.
_MERC_HALF_WORLD_M = 20037508.342789244
_MAX_MERCATOR_LAT = 85.05112878


@lru_cache(maxsize=1)
def transformer_4326_to_3857() -> Transformer:
    return Transformer.from_crs("EPSG:4326", "EPSG:3857", always_xy=True)


@lru_cache(maxsize=1)
def transformer_3857_to_4326() -> Transformer:
    return Transformer.from_crs("EPSG:3857", "EPSG:4326", always_xy=True)


def lonlat_to_unit(lon: Any, lat: Any) -> tuple[Any, Any]:
    """
    Project lon/lat (scalars or arrays) into the unit Web Mercator square.

    x grows eastwards from 0 at -180, y grows southwards from 0 at the top
    edge, which is the same orientation as slippy tile indices.
    """
    lat_c = np.clip(np.asarray(lat, dtype=float), -_MAX_MERCATOR_LAT, _MAX_MERCATOR_LAT)
    mx, my = transformer_4326_to_3857().transform(np.asarray(lon, dtype=float), lat_c)
    ux = np.asarray(mx) / (2.0 * _MERC_HALF_WORLD_M) + 0.5
    uy = 0.5 - np.asarray(my) / (2.0 * _MERC_HALF_WORLD_M)
    if np.ndim(ux) == 0:
        return float(ux), float(uy)
    return ux, uy


def unit_to_lonlat(ux: float, uy: float) -> tuple[float, float]:
    mx = (float(ux) - 0.5) * 2.0 * _MERC_HALF_WORLD_M
    my = (0.5 - float(uy)) * 2.0 * _MERC_HALF_WORLD_M
    lon, lat = transformer_3857_to_4326().transform(mx, my)
    return float(lon), float(lat)


def project_geometry_to_unit(geom):
    """Project a shapely geometry in EPSG:4326 into unit Web Mercator coordinates."""

    def _fn(xs, ys, zs=None):
        return lonlat_to_unit(xs, ys)

    return shapely_transform(_fn, geom)
