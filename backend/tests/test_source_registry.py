from __future__ import annotations

from index.options import TileIndexOptions
from index.tile_index import TileIndex
from sources.registry import NoSourceReason, SourceRegistry


def _index():
    return TileIndex(options=TileIndexOptions())


def test_commit_installs_the_latest_generation():
    reg = SourceRegistry()
    gen = reg.begin_load("a")
    idx = _index()

    assert reg.commit("a", gen, idx) is True
    assert reg.get("a") is idx
    assert reg.entry("a").generation == gen
    assert reg.entry("a").loaded_tile_uids == set()


def test_stale_commit_is_discarded():
    reg = SourceRegistry()
    first = reg.begin_load("a")
    second = reg.begin_load("a")
    newer = _index()

    assert reg.commit("a", second, newer) is True
    assert reg.commit("a", first, _index()) is False
    assert reg.get("a") is newer


def test_replacement_resets_loaded_tiles():
    reg = SourceRegistry()
    entry = reg.add_or_replace("a", _index())
    entry.loaded_tiles["uid-1"] = object()

    reg.add_or_replace("a", _index())

    assert reg.entry("a").loaded_tile_uids == set()


def test_remove_is_idempotent_and_invalidates_in_flight_loads():
    reg = SourceRegistry()
    reg.remove("unknown")
    gen = reg.begin_load("a")
    reg.remove("a")
    reg.remove("a")

    assert reg.commit("a", gen, _index()) is False
    assert reg.get("a") is None
    assert reg.missing_reason("a") == NoSourceReason.never_loaded


def test_missing_reasons_are_distinct():
    reg = SourceRegistry()
    assert reg.missing_reason("a") == NoSourceReason.never_loaded

    gen = reg.begin_load("a")
    assert reg.missing_reason("a") == NoSourceReason.loading

    reg.fail("a", gen)
    assert reg.missing_reason("a") == NoSourceReason.load_failed

    reg.commit("a", reg.begin_load("a"), _index())
    assert reg.entry("a") is not None


def test_failed_reload_keeps_prior_entry():
    reg = SourceRegistry()
    prior = _index()
    reg.commit("a", reg.begin_load("a"), prior)

    reg.fail("a", reg.begin_load("a"))

    assert reg.get("a") is prior


def test_sources_are_independent():
    reg = SourceRegistry()
    reg.add_or_replace("b", _index())
    reg.add_or_replace("a", _index())
    reg.remove("b")

    assert reg.source_ids() == ["a"]
