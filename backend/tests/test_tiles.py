from __future__ import annotations

from geo.tiles import clamp_query_zoom, lonlat_to_tile


def test_lonlat_to_tile_for_prague():
    # Pick a stable Prague-ish coordinate.
    assert lonlat_to_tile(12, 14.4378, 50.0755) == (2212, 1387)
    assert lonlat_to_tile(0, 14.4378, 50.0755) == (0, 0)


def test_lonlat_to_tile_clamps_to_the_grid():
    assert lonlat_to_tile(2, 180.0, 89.9) == (3, 0)
    assert lonlat_to_tile(2, -180.0, -89.9) == (0, 3)


def test_clamp_query_zoom_never_exceeds_max_zoom():
    assert clamp_query_zoom(20, 14) == 14
    assert clamp_query_zoom(14, 14) == 14
    assert clamp_query_zoom(3, 14) == 3
    assert clamp_query_zoom(-1, 14) == 0
