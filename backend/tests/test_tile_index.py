from __future__ import annotations

import pytest
from shapely.geometry import Point

from geo.tiles import lonlat_to_tile
from index.options import TileIndexOptions
from index.tile_index import build_tile_index
from index.types import LINESTRING, POINT, POLYGON
from samples import PRAGUE_SQUARE, collection, point, polygon


def test_point_lands_on_expected_tile_pixel():
    # lon 90 is 3/4 across the world; lat 45 is ~0.3597 down in Web Mercator.
    idx = build_tile_index(collection(point(90.0, 45.0, fid=7, name="a")))

    tile = idx.get_tile(1, 1, 0)

    assert tile is not None
    assert tile.extent == 4096
    [f] = tile.features
    assert f.type == POINT
    assert f.id == 7
    assert f.tags == {"name": "a"}
    assert isinstance(f.geometry, Point)
    assert f.geometry.x == pytest.approx(2048, abs=1)
    assert f.geometry.y == pytest.approx(2947, abs=1)


def test_tile_without_features_is_none():
    idx = build_tile_index(collection(point(90.0, 45.0)))

    assert idx.get_tile(1, 0, 1) is None


def test_polygon_covering_the_tile_is_clipped_to_the_buffer():
    lon, lat = 14.45, 50.075
    z = 14
    x, y = lonlat_to_tile(z, lon, lat)
    idx = build_tile_index(collection(polygon([list(p) for p in PRAGUE_SQUARE], kind="flood")))

    tile = idx.get_tile(z, x, y)

    assert tile is not None
    [f] = tile.features
    assert f.type == POLYGON
    min_x, min_y, max_x, max_y = f.geometry.bounds
    assert (min_x, min_y) == (-64, -64)
    assert (max_x, max_y) == (4096 + 64, 4096 + 64)
    assert f.as_dict()["tags"] == {"kind": "flood"}


def test_lines_are_typed_and_serialized_geojson_vt_style():
    line = {
        "type": "Feature",
        "geometry": {"type": "LineString", "coordinates": [[-10.0, 10.0], [10.0, -10.0]]},
        "properties": {},
    }
    idx = build_tile_index(collection(line))

    tile = idx.get_tile(0, 0, 0)

    assert tile is not None
    [f] = tile.features
    assert f.type == LINESTRING
    d = f.as_dict()
    assert d["type"] == LINESTRING
    assert len(d["geometry"]) == 1
    assert all(isinstance(c, int) for pt in d["geometry"][0] for c in pt)


def test_zoom_out_of_range_and_rows_outside_the_grid_are_none():
    idx = build_tile_index(collection(point(0.0, 0.0)))

    assert idx.get_tile(25, 0, 0) is None
    assert idx.get_tile(-1, 0, 0) is None
    assert idx.get_tile(1, 0, 5) is None


def test_x_wraps_around_the_world():
    idx = build_tile_index(collection(point(90.0, 45.0)))

    wrapped = idx.get_tile(1, 3, 0)

    assert wrapped is not None
    assert wrapped is idx.get_tile(1, 1, 0)


def test_single_feature_and_bare_geometry_inputs():
    feature = point(90.0, 45.0)

    assert build_tile_index(feature).get_tile(0, 0, 0) is not None
    assert build_tile_index(feature["geometry"]).get_tile(0, 0, 0) is not None


def test_features_without_geometry_are_skipped():
    data = collection({"type": "Feature", "geometry": None, "properties": {}}, point(0.0, 0.0))

    idx = build_tile_index(data)

    assert idx.feature_count == 1


def test_unknown_geometry_type_raises():
    bad = {"type": "Feature", "geometry": {"type": "Bogus", "coordinates": []}, "properties": {}}

    with pytest.raises(Exception):
        build_tile_index(collection(bad))


def test_options_accept_camel_case_and_validate():
    opts = TileIndexOptions.from_mapping({"maxZoom": 10, "extent": 512, "ignored": True})

    assert opts.max_zoom == 10
    assert opts.extent == 512
    with pytest.raises(ValueError):
        TileIndexOptions.from_mapping({"maxZoom": 30})
