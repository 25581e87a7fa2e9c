from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Callable, Mapping

Initial = Callable[[], dict[str, Any]]
Reduce = Callable[[dict[str, Any], dict[str, Any]], dict[str, Any]]


def _snake(name: str) -> str:
    out = []
    for ch in name:
        if ch.isupper():
            out.append("_")
            out.append(ch.lower())
        else:
            out.append(ch)
    return "".join(out)


def _from_mapping(cls, options: Mapping[str, Any] | None):
    known = {f.name for f in fields(cls)}
    kwargs: dict[str, Any] = {}
    for key, value in (options or {}).items():
        name = _snake(str(key))
        if name in known:
            kwargs[name] = value
    return cls(**kwargs)


@dataclass(frozen=True)
class TileIndexOptions:
    max_zoom: int = 14
    # Simplification tolerance in tile pixels.
    tolerance: float = 3.0
    extent: int = 4096
    # Tile buffer in tile pixels on each side.
    buffer: int = 64

    def __post_init__(self) -> None:
        if not 0 <= int(self.max_zoom) <= 24:
            raise ValueError(f"maxZoom should be in the 0-24 range, got {self.max_zoom}")
        if int(self.extent) <= 0:
            raise ValueError(f"extent must be positive, got {self.extent}")

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any] | None) -> "TileIndexOptions":
        """Accepts geojson-vt style camelCase keys; unknown keys are ignored."""
        return _from_mapping(cls, options)


@dataclass(frozen=True)
class ClusterOptions:
    min_zoom: int = 0
    max_zoom: int = 16
    # Cluster radius in tile pixels.
    radius: float = 40.0
    extent: int = 512
    initial: Initial | None = None
    reduce: Reduce | None = None

    def __post_init__(self) -> None:
        if not 0 <= int(self.min_zoom) <= int(self.max_zoom) <= 24:
            raise ValueError(
                f"Invalid cluster zoom range: minZoom={self.min_zoom}, maxZoom={self.max_zoom}"
            )
        if float(self.radius) <= 0 or int(self.extent) <= 0:
            raise ValueError("radius and extent must be positive")

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any] | None) -> "ClusterOptions":
        """Accepts supercluster style camelCase keys; unknown keys are ignored."""
        return _from_mapping(cls, options)
