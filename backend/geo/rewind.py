from __future__ import annotations

from typing import Any

from shapely.errors import GEOSException
from shapely.geometry import LinearRing


def rewind(geojson: Any, outer_clockwise: bool = True) -> Any:
    """
    Normalize polygon ring winding in a GeoJSON object, in place.

    Outer rings are wound clockwise and holes counter-clockwise when
    `outer_clockwise` is set (the convention vector tiles expect once the
    y axis is flipped); the opposite otherwise. Returns the same object.
    """
    if not isinstance(geojson, dict):
        return geojson

    gtype = geojson.get("type")
    if gtype == "FeatureCollection":
        for feature in geojson.get("features") or []:
            rewind(feature, outer_clockwise)
    elif gtype == "Feature":
        rewind(geojson.get("geometry"), outer_clockwise)
    elif gtype == "GeometryCollection":
        for geom in geojson.get("geometries") or []:
            rewind(geom, outer_clockwise)
    elif gtype == "Polygon":
        _rewind_rings(geojson.get("coordinates"), outer_clockwise)
    elif gtype == "MultiPolygon":
        for polygon in geojson.get("coordinates") or []:
            _rewind_rings(polygon, outer_clockwise)
    return geojson


def _rewind_rings(rings: Any, outer_clockwise: bool) -> None:
    if not isinstance(rings, list):
        return
    for i, ring in enumerate(rings):
        # First ring is the shell; the rest are holes wound the other way.
        want_clockwise = outer_clockwise if i == 0 else not outer_clockwise
        _wind(ring, want_clockwise)


def _wind(ring: Any, clockwise: bool) -> None:
    if not isinstance(ring, list) or len(ring) < 3:
        return
    try:
        is_ccw = LinearRing([(float(p[0]), float(p[1])) for p in ring]).is_ccw
    except (TypeError, ValueError, IndexError, GEOSException):
        # Malformed rings are left for the index engines to reject.
        return
    if is_ccw == clockwise:
        ring.reverse()
