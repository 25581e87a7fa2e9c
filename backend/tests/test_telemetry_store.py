from __future__ import annotations

import json

from telemetry.singleton import get_store, record_event, reset_store


def test_telemetry_store_writes_rows(tmp_path, monkeypatch):
    db_path = tmp_path / "telemetry.duckdb"
    monkeypatch.setenv("GEOJSON_WORKER_TELEMETRY_PATH", str(db_path))
    monkeypatch.setenv("GEOJSON_WORKER_TELEMETRY", "1")

    store = get_store()
    assert store is not None

    store.record(
        op="tile",
        source_id="roads",
        outcome="tile",
        index_kind="tile",
        tile=(3, 4, 5),
        stats={"payloadBytes": 123, "timingsMs": {"total": 9.9}},
    )
    store.flush(timeout_s=2.0)

    # Use the existing connection; DuckDB disallows opening the same file with different configs.
    n = int(store.conn.execute("select count(*) from events").fetchone()[0])
    assert n == 1

    row = store.conn.execute("select op, source_id, z, x, y, stats_json from events limit 1").fetchone()
    assert row[:5] == ("tile", "roads", 3, 4, 5)
    assert json.loads(row[5])["payloadBytes"] == 123

    reset_store()


def test_summary_groups_by_op_and_outcome(tmp_path, monkeypatch):
    monkeypatch.setenv("GEOJSON_WORKER_TELEMETRY_PATH", str(tmp_path / "t.duckdb"))
    monkeypatch.setenv("GEOJSON_WORKER_TELEMETRY", "1")

    record_event(op="load_data", source_id="s", outcome="ok", stats={"timingsMs": {"total": 4.0}})
    record_event(op="load_data", source_id="s", outcome="error", stats={"timingsMs": {"total": 1.0}})
    record_event(op="load_data", source_id="other", outcome="ok", stats={"timingsMs": {"total": 8.0}})
    store = get_store()
    store.flush(timeout_s=2.0)

    rows = store.summary(op="load_data", source_id="s")

    assert [(r["op"], r["outcome"], r["n"]) for r in rows] == [
        ("load_data", "error", 1),
        ("load_data", "ok", 1),
    ]
    assert rows[1]["avgTotalMs"] == 4.0

    reset_store()


def test_telemetry_reset_deletes_db(tmp_path, monkeypatch):
    db_path = tmp_path / "telemetry.duckdb"
    monkeypatch.setenv("GEOJSON_WORKER_TELEMETRY_PATH", str(db_path))
    monkeypatch.setenv("GEOJSON_WORKER_TELEMETRY", "1")

    store = get_store()
    assert store is not None
    store.record(op="tile", source_id="s", outcome="empty")
    assert store.path.resolve() == db_path.resolve()

    reset_store()
    assert not db_path.exists()


def test_disabled_telemetry_is_a_no_op(tmp_path, monkeypatch):
    monkeypatch.setenv("GEOJSON_WORKER_TELEMETRY_PATH", str(tmp_path / "t.duckdb"))

    assert get_store() is None
    record_event(op="tile", source_id="s", outcome="empty")
    assert not (tmp_path / "t.duckdb").exists()
