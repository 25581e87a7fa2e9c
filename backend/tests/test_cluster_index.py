from __future__ import annotations

import pytest

from geo.aoi import BBox
from geo.tiles import lonlat_to_tile
from index.builder import aggregation_options
from index.cluster_index import build_cluster_index
from index.options import ClusterOptions
from index.types import POINT
from samples import PRAGUE_SQUARE, point, polygon


def _two_near_points():
    return [point(14.4378, 50.0755, name="A"), point(14.4388, 50.0755, name="B")]


def test_near_points_merge_into_one_cluster_at_low_zoom():
    idx = build_cluster_index(_two_near_points())

    tile = idx.get_tile(0, 0, 0)

    assert tile is not None
    assert tile.extent == 512
    [f] = tile.features
    assert f.type == POINT
    assert f.tags["cluster"] is True
    assert f.tags["point_count"] == 2
    assert f.tags["point_count_abbreviated"] == 2
    assert f.id == f.tags["cluster_id"]


def test_points_stay_apart_at_deep_zoom():
    idx = build_cluster_index(_two_near_points())

    tile = idx.get_tile(20, *lonlat_to_tile(20, 14.4378, 50.0755))

    assert tile is not None
    assert [f.tags.get("name") for f in tile.features] == ["A"]
    assert all("cluster" not in f.tags for f in tile.features)


def test_aggregated_properties_collect_values_in_encounter_order():
    opts = aggregation_options(ClusterOptions(), ["name"])
    idx = build_cluster_index(_two_near_points(), opts)

    [f] = idx.get_tile(0, 0, 0).features

    assert f.tags["name"] == ["A", "B"]


def test_aggregation_skips_missing_values():
    feats = [point(14.4378, 50.0755, name="A"), point(14.4388, 50.0755)]
    idx = build_cluster_index(feats, aggregation_options(ClusterOptions(), ["name", "other"]))

    [f] = idx.get_tile(0, 0, 0).features

    assert f.tags["name"] == ["A"]
    assert f.tags["other"] == []


def test_non_point_features_are_skipped():
    feats = [polygon([list(p) for p in PRAGUE_SQUARE]), point(14.4378, 50.0755)]

    idx = build_cluster_index(feats)

    assert idx.point_count == 1


def test_get_clusters_and_leaves():
    idx = build_cluster_index(_two_near_points())

    clusters = idx.get_clusters(BBox(-180.0, -85.0, 180.0, 85.0), 0)

    assert len(clusters) == 1
    cluster = clusters[0]
    assert cluster["properties"]["point_count"] == 2
    lon, lat = cluster["geometry"]["coordinates"]
    assert lon == pytest.approx(14.4383, abs=1e-3)
    assert lat == pytest.approx(50.0755, abs=1e-3)

    leaves = idx.get_leaves(cluster["id"], limit=10)
    assert [leaf["properties"]["name"] for leaf in leaves] == ["A", "B"]
    assert 1 <= idx.get_cluster_expansion_zoom(cluster["id"]) <= 17


def test_unknown_cluster_id_raises_key_error():
    idx = build_cluster_index(_two_near_points())

    with pytest.raises(KeyError):
        idx.get_leaves(12345)


def test_tile_without_points_is_none():
    idx = build_cluster_index(_two_near_points())

    # Southern hemisphere tile at zoom 1.
    assert idx.get_tile(1, 1, 1) is None


def test_invalid_point_coordinates_raise():
    bad = {"type": "Feature", "geometry": {"type": "Point", "coordinates": [1.0]}, "properties": {}}

    with pytest.raises(ValueError):
        build_cluster_index([bad])
