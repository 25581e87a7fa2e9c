from __future__ import annotations

CREATE_EVENTS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS events (
  ts_ms BIGINT,
  op TEXT,
  source_id TEXT,
  index_kind TEXT,
  z INTEGER,
  x INTEGER,
  y INTEGER,
  outcome TEXT,
  stats_json TEXT
);
"""

SUMMARY_SQL_TEMPLATE = """
SELECT
  op,
  outcome,
  COUNT(*) AS n,
  AVG(try_cast(json_extract(stats_json, '$.timingsMs.total') AS DOUBLE)) AS avg_total_ms,
  quantile_cont(try_cast(json_extract(stats_json, '$.timingsMs.total') AS DOUBLE), 0.50) AS p50_total_ms,
  quantile_cont(try_cast(json_extract(stats_json, '$.timingsMs.total') AS DOUBLE), 0.95) AS p95_total_ms,
  AVG(try_cast(json_extract(stats_json, '$.payloadBytes') AS DOUBLE)) AS avg_payload_bytes
FROM events
{where_sql}
GROUP BY op, outcome
ORDER BY op, outcome
"""

INSERT_EVENTS_SQL = """
INSERT INTO events
  (ts_ms, op, source_id, index_kind, z, x, y, outcome, stats_json)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
"""
