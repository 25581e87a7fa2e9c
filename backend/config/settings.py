from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


class WorkerSettings(BaseModel):
    fetchTimeoutS: float = Field(default=30.0, gt=0.0)
    # Used when a tile request does not carry its own maxZoom.
    defaultMaxZoom: int = Field(default=18, ge=0, le=24)
    tileCacheSize: int = Field(default=256, ge=1)
    fetchWorkers: int = Field(default=2, ge=1, le=32)
    corsOrigins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    # Engine option defaults; request options are merged over these.
    superclusterDefaults: dict[str, Any] = Field(default_factory=dict)
    geojsonVtDefaults: dict[str, Any] = Field(default_factory=dict)


def settings_path() -> Path | None:
    raw = (os.getenv("GEOJSON_WORKER_CONFIG") or "").strip()
    return Path(raw) if raw else None


def _load_yaml(path: Path) -> dict:
    raw = path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid worker config yaml root: {path}")
    return data


def _env_overrides() -> dict[str, Any]:
    out: dict[str, Any] = {}
    timeout = os.getenv("GEOJSON_WORKER_FETCH_TIMEOUT_S")
    if timeout:
        out["fetchTimeoutS"] = float(timeout)
    max_zoom = os.getenv("GEOJSON_WORKER_DEFAULT_MAX_ZOOM")
    if max_zoom:
        out["defaultMaxZoom"] = int(max_zoom)
    return out


@lru_cache(maxsize=1)
def get_settings() -> WorkerSettings:
    data: dict[str, Any] = {}
    path = settings_path()
    if path is not None:
        if not path.exists():
            raise FileNotFoundError(f"Worker config not found: {path}")
        data.update(_load_yaml(path))
    data.update(_env_overrides())
    return WorkerSettings.model_validate(data)


def clear_settings_cache() -> None:
    """
    Forget the cached settings so the next `get_settings()` re-reads file and env.
    """
    get_settings.cache_clear()


def merged_options(defaults: dict[str, Any] | None, overrides: dict[str, Any] | None) -> dict[str, Any]:
    """New dict with request-supplied options layered over configured defaults."""
    return {**(defaults or {}), **(overrides or {})}
