import sys
from pathlib import Path

import pytest


# Ensure `backend/` is on sys.path so tests can import local modules
# like `index.*`, `tiles.*`, and `main`.
BACKEND_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_ROOT))


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    # Unit tests never write telemetry or read a developer's config file.
    monkeypatch.setenv("GEOJSON_WORKER_TELEMETRY", "0")
    monkeypatch.delenv("GEOJSON_WORKER_CONFIG", raising=False)
    monkeypatch.delenv("GEOJSON_WORKER_FETCH_TIMEOUT_S", raising=False)
    monkeypatch.delenv("GEOJSON_WORKER_DEFAULT_MAX_ZOOM", raising=False)

    from config.settings import clear_settings_cache

    clear_settings_cache()
    yield
    clear_settings_cache()
