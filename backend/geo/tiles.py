from __future__ import annotations

import math

_MAX_MERCATOR_LAT = 85.05112878

# Deepest zoom any index can be asked for.
MAX_TILE_ZOOM = 24


def clamp_query_zoom(zoom: int, max_zoom: int) -> int:
    """
    Zoom used to query an index for a tile requested at `zoom`.

    Indexes are built up to a maximum zoom; deeper requests are served from
    the deepest level the index has.
    """
    return max(0, min(int(zoom), int(max_zoom)))


def lonlat_to_tile(zoom: int, lon: float, lat: float) -> tuple[int, int]:
    """
    Convert lon/lat in EPSG:4326 to slippy tile (x, y) at zoom.
    """
    z = int(zoom)
    n = 2**z

    # Clamp to WebMercator-supported latitudes.
    lat = max(-_MAX_MERCATOR_LAT, min(_MAX_MERCATOR_LAT, float(lat)))

    lon = float(lon)
    lat_rad = math.radians(lat)

    x = int(math.floor((lon + 180.0) / 360.0 * n))
    y = int(
        math.floor(
            (1.0 - math.log(math.tan(lat_rad) + (1.0 / math.cos(lat_rad))) / math.pi)
            / 2.0
            * n
        )
    )
    # Clamp indices to valid tile range.
    x = max(0, min(n - 1, x))
    y = max(0, min(n - 1, y))
    return x, y
