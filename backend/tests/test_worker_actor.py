from __future__ import annotations

import json
import threading

import pytest

from config.settings import WorkerSettings
from sources.errors import IndexBuildError, InvalidInputError
from sources.registry import NoSourceReason
from tiles.reload import ReloadPath
from tiles.types import NoSource, TransportTile
from worker.actor import WorkerActor
from samples import collection, point

DATA = collection(point(14.4378, 50.0755, name="A"))
TILE = {"sourceId": "s", "tileId": {"z": 0, "x": 0, "y": 0}, "maxZoom": 14, "uid": 1}


@pytest.fixture()
def actor():
    a = WorkerActor(settings=WorkerSettings())
    a.start()
    yield a
    a.close()


def test_requests_run_in_order_on_the_worker_thread(actor):
    assert actor.send("load_data", {"sourceId": "s", "data": DATA}).result(timeout=5) is None

    tile = actor.send("load_tile", TILE).result(timeout=5)

    assert isinstance(tile, TransportTile)


def test_reload_reports_the_path_taken(actor):
    actor.send("load_data", {"sourceId": "s", "data": DATA}).result(timeout=5)

    path, first = actor.send("reload_tile", TILE).result(timeout=5)
    again_path, again = actor.send("reload_tile", TILE).result(timeout=5)

    assert path == ReloadPath.full
    assert again_path == ReloadPath.incremental
    assert again is first


def test_errors_fail_the_future(actor):
    fut = actor.send("load_data", {"sourceId": "s", "data": "not json"})

    with pytest.raises(InvalidInputError):
        fut.result(timeout=5)


def test_invalid_request_and_unknown_method(actor):
    with pytest.raises(ValueError):
        actor.send("load_tile", {"sourceId": ""}).result(timeout=5)
    with pytest.raises(ValueError):
        actor.send("explode", {}).result(timeout=5)


def test_remove_then_tile_is_no_source(actor):
    actor.send("load_data", {"sourceId": "s", "data": DATA}).result(timeout=5)
    actor.send("remove_source", {"sourceId": "s"}).result(timeout=5)

    assert isinstance(actor.send("load_tile", TILE).result(timeout=5), NoSource)


def test_custom_loader_runs_on_the_worker_thread():
    seen = []

    class Loader:
        def load(self, request, callback):
            seen.append(threading.current_thread().name)
            callback(None, DATA)

    a = WorkerActor(settings=WorkerSettings(), loader=Loader())
    try:
        a.send("load_data", {"sourceId": "s", "url": "custom://x"}).result(timeout=5)
    finally:
        a.close()

    assert seen == ["geojson-worker"]


def test_broken_remote_file_fails_the_future(actor, tmp_path):
    path = tmp_path / "broken.geojson"
    path.write_text(json.dumps({"type": "FeatureCollection", "features": 5}), encoding="utf-8")

    fut = actor.send("load_data", {"sourceId": "s", "url": path.as_uri()})

    with pytest.raises(IndexBuildError):
        fut.result(timeout=5)
    out = actor.send("load_tile", TILE).result(timeout=5)
    assert out.reason == NoSourceReason.load_failed


def test_close_drops_every_source():
    a = WorkerActor(settings=WorkerSettings())
    a.send("load_data", {"sourceId": "s", "data": DATA}).result(timeout=5)

    a.close()

    assert a.source.registry.source_ids() == []
